"""
Data records passed between tracking components.

Fix timestamps are epoch milliseconds throughout; durations are seconds.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from .config import ActivityType, DistanceUnit


class FixOrigin(str, Enum):
    REAL = "real"
    PREDICTED = "predicted"
    ESTIMATED = "estimated"


class Activity(str, Enum):
    STATIONARY = "stationary"
    WALK = "walk"
    RUN = "run"
    CYCLE = "cycle"
    UNKNOWN = "unknown"


def _first(mapping, *keys, default=None):
    for key in keys:
        value = mapping.get(key)
        if value is not None:
            return value
    return default


@dataclass(frozen=True)
class RawFix:
    """One position sample as delivered by the location source."""

    latitude: float
    longitude: float
    accuracy: float
    timestamp: float
    altitude: Optional[float] = None
    speed: Optional[float] = None
    heading: Optional[float] = None
    origin: FixOrigin = FixOrigin.REAL

    @property
    def is_synthetic(self) -> bool:
        return self.origin is not FixOrigin.REAL

    @property
    def has_altitude(self) -> bool:
        return self.altitude is not None and not math.isnan(self.altitude)

    def has_valid_coordinates(self) -> bool:
        lat, lon = self.latitude, self.longitude
        if lat is None or lon is None or math.isnan(lat) or math.isnan(lon):
            return False
        return -90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], default_timestamp: Optional[float] = None) -> "RawFix":
        """
        Build a fix from a platform payload.

        Accepts flat payloads ({'latitude', 'longitude', ...}) as well as
        browser-style payloads with a nested 'coords' object. Missing accuracy
        is treated as unusable (999m) so the fix is dropped by the quality gate.
        """
        coords = data.get("coords") or {}
        merged = dict(coords)
        merged.update({k: v for k, v in data.items() if k != "coords" and v is not None})

        timestamp = _first(merged, "timestamp", "time", default=default_timestamp)
        if timestamp is None:
            raise ValueError("Fix has no timestamp")

        origin = FixOrigin.REAL
        if merged.get("isPredicted") or merged.get("is_predicted"):
            origin = FixOrigin.PREDICTED
        elif merged.get("isEstimated") or merged.get("is_estimated"):
            origin = FixOrigin.ESTIMATED
        elif merged.get("origin"):
            origin = FixOrigin(merged["origin"])

        def as_float(value):
            return None if value is None else float(value)

        return cls(
            latitude=float(_first(merged, "latitude", "lat", default=math.nan)),
            longitude=float(_first(merged, "longitude", "lon", "lng", default=math.nan)),
            accuracy=float(_first(merged, "accuracy", default=999.0)),
            timestamp=float(timestamp),
            altitude=as_float(merged.get("altitude")),
            speed=as_float(merged.get("speed")),
            heading=as_float(_first(merged, "heading", "bearing")),
            origin=origin,
        )


@dataclass(frozen=True)
class FilteredPosition:
    latitude: float
    longitude: float
    accuracy: float
    timestamp: float
    altitude: Optional[float] = None


@dataclass
class PositionRecord:
    """Accepted position kept in session history."""

    latitude: float
    longitude: float
    accuracy: float
    timestamp: float
    elapsed_s: float
    altitude: Optional[float] = None
    origin: FixOrigin = FixOrigin.REAL


@dataclass(frozen=True)
class Split:
    unit_index: int
    cumulative_duration: float
    pace: float
    is_partial: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "unit_index": self.unit_index,
            "cumulative_duration": self.cumulative_duration,
            "pace": self.pace,
            "is_partial": self.is_partial,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Split":
        return cls(
            unit_index=int(_first(data, "unit_index", "km")),
            cumulative_duration=float(_first(data, "cumulative_duration", "time")),
            pace=float(data["pace"]),
            is_partial=bool(_first(data, "is_partial", "isPartial", default=False)),
        )


@dataclass
class ElevationState:
    current: Optional[float] = None
    gain: float = 0.0
    loss: float = 0.0
    last_altitude: Optional[float] = None

    def copy(self) -> "ElevationState":
        return ElevationState(self.current, self.gain, self.loss, self.last_altitude)

    def to_dict(self) -> Dict[str, Any]:
        return {"current": self.current, "gain": self.gain, "loss": self.loss}


@dataclass(frozen=True)
class Vector3:
    x: float
    y: float
    z: float

    @property
    def magnitude(self) -> float:
        return math.sqrt(self.x * self.x + self.y * self.y + self.z * self.z)


@dataclass(frozen=True)
class RotationRate:
    """Device rotation rate in degrees per second."""

    alpha: float
    beta: float
    gamma: float

    @property
    def magnitude(self) -> float:
        return math.sqrt(self.alpha ** 2 + self.beta ** 2 + self.gamma ** 2)


@dataclass(frozen=True)
class MotionSample:
    """Accelerometer reading (gravity included, m/s²) with optional rotation rate."""

    acceleration: Vector3
    timestamp: float
    rotation_rate: Optional[RotationRate] = None


@dataclass(frozen=True)
class ActivityLabel:
    activity: Activity
    confidence: float


@dataclass(frozen=True)
class Speed:
    value: float
    unit: str


@dataclass(frozen=True)
class RunResult:
    """Immutable record of a completed session, handed to persistence."""

    distance_m: float
    duration_s: float
    pace: float
    splits: tuple
    elevation_gain: float
    elevation_loss: float
    unit: DistanceUnit
    activity_type: ActivityType
    average_speed: Optional[Speed] = None
    estimated_total_steps: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "distance": self.distance_m,
            "duration": self.duration_s,
            "pace": self.pace,
            "splits": [split.to_dict() for split in self.splits],
            "elevation": {"gain": self.elevation_gain, "loss": self.elevation_loss},
            "unit": self.unit.value,
            "activity_type": self.activity_type.value,
        }
        if self.average_speed is not None:
            result["average_speed"] = {"value": self.average_speed.value, "unit": self.average_speed.unit}
        if self.estimated_total_steps is not None:
            result["estimated_total_steps"] = self.estimated_total_steps
        return result


@dataclass
class SessionSnapshot:
    """Persisted view of an in-progress session, used to rehydrate it."""

    distance_m: float
    duration_s: float
    pace: float
    timestamp: float
    splits: List[Split] = field(default_factory=list)
    elevation: ElevationState = field(default_factory=ElevationState)
    activity_type: ActivityType = ActivityType.RUN
    estimated_total_steps: int = 0
    average_speed: Optional[Speed] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "distance": self.distance_m,
            "duration": self.duration_s,
            "pace": self.pace,
            "timestamp": self.timestamp,
            "splits": [split.to_dict() for split in self.splits],
            "elevation": self.elevation.to_dict(),
            "activity_type": self.activity_type.value,
            "estimated_total_steps": self.estimated_total_steps,
        }
        if self.average_speed is not None:
            data["average_speed"] = {"value": self.average_speed.value, "unit": self.average_speed.unit}
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SessionSnapshot":
        elevation = data.get("elevation") or {}
        speed = data.get("average_speed")
        return cls(
            distance_m=float(data["distance"]),
            duration_s=float(data["duration"]),
            pace=float(data.get("pace") or 0.0),
            timestamp=float(data["timestamp"]),
            splits=[Split.from_dict(s) for s in data.get("splits", [])],
            elevation=ElevationState(
                current=elevation.get("current"),
                gain=float(elevation.get("gain", 0.0)),
                loss=float(elevation.get("loss", 0.0)),
            ),
            activity_type=ActivityType(data.get("activity_type") or ActivityType.RUN),
            estimated_total_steps=int(data.get("estimated_total_steps") or 0),
            average_speed=Speed(float(speed["value"]), speed["unit"]) if speed else None,
        )
