"""
Adaptive GPS sampling.

Trades tracking fidelity for battery: the location watcher interval is derived
from the activity, the measured speed, the battery level, the distance left to
a goal and whether the app is in the background.
"""

import logging

from .capabilities import LocationRequest, NullBatteryReader, VisibilityProvider
from .config import ActivityType

logger = logging.getLogger(__name__)

MIN_INTERVAL_MS = 3000
MAX_INTERVAL_MS = 60000

BASE_INTERVAL_MS = {
    ActivityType.WALK: 15000,
    ActivityType.RUN: 10000,
    ActivityType.CYCLE: 5000,
}

FAST_SPEED_MPS = 15.0
MODERATE_SPEED_MPS = 8.0
SLOW_SPEED_MPS = 0.5

LOW_BATTERY_PERCENT = 30
CRITICAL_BATTERY_PERCENT = 15

GOAL_PROXIMITY_M = 1000.0
GOAL_INTERVAL_MS = 5000
BACKGROUND_INTERVAL_MS = 30000


class AdaptiveSamplingController:

    def __init__(self, battery_reader=None, visibility=None):
        """
        Args:
            battery_reader (BatteryReader): Battery level source, level unknown if None
            visibility (VisibilityProvider): Foreground/background state
        """
        self.battery_reader = battery_reader or NullBatteryReader()
        self.visibility = visibility or VisibilityProvider()

    def compute_interval(self, activity_type, speed_mps=None, battery_level=None,
                         distance_m=0.0, goal_m=None, backgrounded=False):
        """
        Compute the location watcher interval.

        Args:
            activity_type: run, walk or cycle
            speed_mps: Measured speed (m/s), or None if unknown
            battery_level: Battery percentage 0-100, or None if unknown
            distance_m: Distance covered so far (meters)
            goal_m: Active distance goal (meters), or None
            backgrounded: Whether the app is in the background

        Returns:
            int: Interval in milliseconds, always within [3000, 60000]
        """
        interval = BASE_INTERVAL_MS[ActivityType(activity_type)]

        if speed_mps is not None:
            if speed_mps > FAST_SPEED_MPS:
                interval = min(interval, 5000)
            elif speed_mps > MODERATE_SPEED_MPS:
                interval = min(interval, 10000)
            elif speed_mps < SLOW_SPEED_MPS:
                interval = max(interval, 30000)

        if battery_level is not None:
            if battery_level < CRITICAL_BATTERY_PERCENT:
                interval *= 2
            elif battery_level < LOW_BATTERY_PERCENT:
                interval *= 1.5

        if goal_m is not None and goal_m - distance_m < GOAL_PROXIMITY_M:
            interval = min(interval, GOAL_INTERVAL_MS)

        if backgrounded:
            interval = max(interval, BACKGROUND_INTERVAL_MS)

        return int(max(MIN_INTERVAL_MS, min(MAX_INTERVAL_MS, interval)))

    def current_interval(self, activity_type, speed_mps, distance_m, goal_m):
        """Compute the interval using the injected battery and visibility capabilities."""
        return self.compute_interval(
            activity_type,
            speed_mps=speed_mps,
            battery_level=self.battery_reader.read_level(),
            distance_m=distance_m,
            goal_m=goal_m,
            backgrounded=self.visibility.is_backgrounded(),
        )

    @staticmethod
    def location_request(activity_type):
        """Initial watcher configuration for an activity."""
        if ActivityType(activity_type) is ActivityType.CYCLE:
            return LocationRequest(interval_ms=3000, fastest_interval_ms=3000, distance_filter_m=2.0)
        return LocationRequest(interval_ms=5000, fastest_interval_ms=5000, distance_filter_m=5.0)
