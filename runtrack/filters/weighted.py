"""
Accuracy-weighted moving average over the most recent fixes.

Alternative to Kalman smoothing: each reading in the window is weighted by
1/accuracy², so a 5m fix counts four times as much as a 10m fix.
"""

import threading
from collections import deque

from ..models import FilteredPosition
from .base import PositionFilterBase

MIN_ACCURACY = 0.001


class WeightedPositionFilter(PositionFilterBase):

    def __init__(self, window_size=5):
        self.window_size = window_size
        self.readings = deque(maxlen=window_size)
        self.lock = threading.Lock()

    def adjust_parameters(self, accuracy):
        # Weights come from each reading's own accuracy
        pass

    def filter(self, fix):
        with self.lock:
            self.readings.append((fix.latitude, fix.longitude, max(MIN_ACCURACY, fix.accuracy)))
            lat, lon, accuracy = self._weighted_average()

        return FilteredPosition(
            latitude=lat,
            longitude=lon,
            accuracy=accuracy,
            timestamp=fix.timestamp,
            altitude=fix.altitude if fix.has_altitude else None,
        )

    def _weighted_average(self):
        total_weight = 0.0
        weighted_lat = 0.0
        weighted_lon = 0.0
        for lat, lon, accuracy in self.readings:
            weight = 1.0 / (accuracy * accuracy)
            weighted_lat += lat * weight
            weighted_lon += lon * weight
            total_weight += weight

        mean_accuracy = sum(r[2] for r in self.readings) / len(self.readings)
        return weighted_lat / total_weight, weighted_lon / total_weight, mean_accuracy

    def reset(self):
        with self.lock:
            self.readings.clear()

    def get_state(self):
        with self.lock:
            return {'window_size': self.window_size, 'readings': len(self.readings)}
