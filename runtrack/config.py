"""
Tracker configuration.

Configuration is an explicit value handed to the session at construction and
reconfiguration time. String values (as they come from settings storage or the
command line) are accepted by from_dict() and normalized to the enums below.
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from .errors import ConfigError

KM_METERS = 1000.0
MILE_METERS = 1609.344

# Default stride for the distance-based step estimate shown while walking
AVERAGE_STRIDE_LENGTH_M = 0.62
# Default step length used when projecting position by dead reckoning
DEAD_RECKONING_STEP_LENGTH_M = 0.75


class DistanceUnit(str, Enum):
    KM = "km"
    MILE = "mile"

    @property
    def meters(self) -> float:
        return KM_METERS if self is DistanceUnit.KM else MILE_METERS

    @property
    def speed_label(self) -> str:
        return "km/h" if self is DistanceUnit.KM else "mph"


class FilterMode(str, Enum):
    KALMAN = "kalman"
    WEIGHTED = "weighted"


class ActivityType(str, Enum):
    RUN = "run"
    WALK = "walk"
    CYCLE = "cycle"


def _coerce(enum_cls, value, field_name):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ConfigError(f"Invalid {field_name}: {value!r} (expected one of: {allowed})") from None


def normalize_goal(meters) -> Optional[float]:
    """Return a positive goal in meters, or None when unset or non-positive."""
    if meters is None:
        return None
    try:
        meters = float(meters)
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid distance goal: {meters!r}") from None
    return meters if meters > 0 else None


@dataclass(frozen=True)
class TrackerConfig:
    """Settings read at session start; most can be changed mid-session."""

    distance_unit: DistanceUnit = DistanceUnit.KM
    filter_mode: FilterMode = FilterMode.KALMAN
    activity_type: ActivityType = ActivityType.RUN
    distance_goal_m: Optional[float] = None
    stride_length_m: float = AVERAGE_STRIDE_LENGTH_M
    step_length_m: float = DEAD_RECKONING_STEP_LENGTH_M
    weighted_window: int = 5
    max_accuracy_m: float = 20.0
    movement_threshold_m: float = 0.5

    def __post_init__(self):
        object.__setattr__(self, "distance_unit", _coerce(DistanceUnit, self.distance_unit, "distance_unit"))
        object.__setattr__(self, "filter_mode", _coerce(FilterMode, self.filter_mode, "filter_mode"))
        object.__setattr__(self, "activity_type", _coerce(ActivityType, self.activity_type, "activity_type"))
        object.__setattr__(self, "distance_goal_m", normalize_goal(self.distance_goal_m))
        if self.stride_length_m <= 0 or self.step_length_m <= 0:
            raise ConfigError("Stride and step lengths must be positive")
        if self.weighted_window < 1:
            raise ConfigError(f"weighted_window must be >= 1, got {self.weighted_window}")

    @property
    def unit_meters(self) -> float:
        return self.distance_unit.meters

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TrackerConfig":
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigError(f"Unknown config keys: {', '.join(sorted(unknown))}")
        return cls(**dict(data))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "distance_unit": self.distance_unit.value,
            "filter_mode": self.filter_mode.value,
            "activity_type": self.activity_type.value,
            "distance_goal_m": self.distance_goal_m,
            "stride_length_m": self.stride_length_m,
            "step_length_m": self.step_length_m,
            "weighted_window": self.weighted_window,
            "max_accuracy_m": self.max_accuracy_m,
            "movement_threshold_m": self.movement_threshold_m,
        }

    def with_changes(self, **changes) -> "TrackerConfig":
        known = {f.name for f in fields(self)}
        unknown = set(changes) - known
        if unknown:
            raise ConfigError(f"Unknown config keys: {', '.join(sorted(unknown))}")
        return replace(self, **changes)
