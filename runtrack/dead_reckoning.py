"""
Dead reckoning between GPS fixes.

Projects the last confirmed fix forward along the last known heading by
(steps since that fix) x (step length). Confidence starts at 1.0 on each fix
and decays geometrically with every step taken without a new fix.
"""

import logging

from .filters.utils import offset_position

logger = logging.getLogger(__name__)


class DeadReckoningEstimator:

    def __init__(self, step_length_m=0.75, decay_rate=0.95):
        """
        Args:
            step_length_m (float): Distance covered per detected step (meters)
            decay_rate (float): Confidence multiplier per step since the last fix
        """
        self.step_length_m = step_length_m
        self.decay_rate = decay_rate

        self.last_known_position = None  # {'lat', 'lon', 'heading', 'timestamp'}
        self.heading = 0.0
        self.step_baseline = 0
        self.confidence = 1.0

    def update_gps_position(self, lat, lon, heading=None, step_count=0, timestamp=None):
        """
        Anchor the estimator on a confirmed fix.

        Args:
            lat, lon: Fix coordinates (degrees)
            heading: Course over ground in degrees, or None to keep the last heading
            step_count: Cumulative step count at the time of the fix
            timestamp: Fix timestamp (ms)
        """
        if heading is not None:
            self.heading = heading % 360.0
        self.last_known_position = {
            'lat': lat,
            'lon': lon,
            'heading': self.heading,
            'timestamp': timestamp,
        }
        self.step_baseline = step_count
        self.confidence = 1.0

    def update_heading(self, heading):
        """Update heading from the device compass (degrees, 0-360)."""
        self.heading = heading % 360.0

    def estimate_position(self, step_count):
        """
        Estimate the current position from the cumulative step count.

        Returns:
            dict or None: {'lat', 'lon', 'confidence', 'steps', 'is_estimated'},
            None before the first fix
        """
        if self.last_known_position is None:
            return None

        steps_delta = max(0, step_count - self.step_baseline)
        anchor = self.last_known_position
        if steps_delta == 0:
            return {
                'lat': anchor['lat'],
                'lon': anchor['lon'],
                'confidence': self.confidence,
                'steps': 0,
                'is_estimated': True,
            }

        distance = steps_delta * self.step_length_m
        lat, lon = offset_position(anchor['lat'], anchor['lon'], distance, self.heading)
        self.confidence = self.decay_rate ** steps_delta

        return {
            'lat': lat,
            'lon': lon,
            'confidence': self.confidence,
            'steps': steps_delta,
            'is_estimated': True,
        }

    def set_step_length(self, length_m):
        """Set a calibrated step length in meters."""
        if length_m <= 0:
            raise ValueError(f"Step length must be positive, got {length_m}")
        self.step_length_m = length_m

    def reset(self):
        self.last_known_position = None
        self.heading = 0.0
        self.step_baseline = 0
        self.confidence = 1.0
