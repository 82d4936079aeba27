"""
Pace, speed and split arithmetic shared by the live session and the end-of-run fallback.

Pace is expressed in seconds per distance unit (km or mile) for display;
split pace is stored in seconds per meter so it can be rendered in either unit.
"""

from __future__ import annotations

import math
from typing import List, Sequence

from .config import DistanceUnit
from .filters.utils import haversine_distance
from .models import PositionRecord, Speed, Split

MPS_TO_KMH = 3.6
MPS_TO_MPH = 2.23694


def calculate_pace(distance_m: float, duration_s: float, unit: DistanceUnit) -> float:
    """Seconds per distance unit; 0 when there is no distance or time yet."""
    if distance_m <= 0 or duration_s <= 0:
        return 0.0
    return duration_s / (distance_m / DistanceUnit(unit).meters)


def to_display_speed(speed_mps: float, unit: DistanceUnit) -> Speed:
    """Convert m/s to km/h or mph, rounded to 0.1 with anything below 0.1 shown as zero."""
    unit = DistanceUnit(unit)
    factor = MPS_TO_KMH if unit is DistanceUnit.KM else MPS_TO_MPH
    value = speed_mps * factor if speed_mps > 0 else 0.0
    if value < 0.1:
        value = 0.0
    return Speed(round(value, 1), unit.speed_label)


def completed_units(distance_m: float, unit_meters: float) -> int:
    return int(math.floor(distance_m / unit_meters))


def splits_from_positions(positions: Sequence[PositionRecord], unit: DistanceUnit,
                          final_duration_s: float = None) -> List[Split]:
    """
    Rebuild splits from a stored position history.

    Used when a session ends without any live split having been recorded. Walks
    the track accumulating great-circle distance and records a split each time
    a whole unit is crossed, interpolating the crossing time between the two
    fixes that straddle it. Any remaining distance becomes a trailing partial
    split.
    """
    unit_meters = DistanceUnit(unit).meters
    splits: List[Split] = []
    if len(positions) < 2:
        return splits

    distance = 0.0
    previous_split_time = 0.0
    for prev, curr in zip(positions, positions[1:]):
        segment = haversine_distance(prev.latitude, prev.longitude, curr.latitude, curr.longitude)
        if segment <= 0:
            continue
        start_distance = distance
        distance += segment
        while completed_units(distance, unit_meters) > len(splits):
            boundary = (len(splits) + 1) * unit_meters
            fraction = (boundary - start_distance) / segment
            crossing_time = prev.elapsed_s + fraction * (curr.elapsed_s - prev.elapsed_s)
            splits.append(Split(
                unit_index=len(splits) + 1,
                cumulative_duration=crossing_time,
                pace=(crossing_time - previous_split_time) / unit_meters,
                is_partial=False,
            ))
            previous_split_time = crossing_time

    remaining = distance - len(splits) * unit_meters
    end_time = positions[-1].elapsed_s if final_duration_s is None else final_duration_s
    if remaining > 0 and end_time > previous_split_time:
        splits.append(Split(
            unit_index=len(splits) + 1,
            cumulative_duration=end_time,
            pace=(end_time - previous_split_time) / remaining,
            is_partial=True,
        ))
    return splits
