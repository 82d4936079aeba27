"""
ActivityClassifier - rule-based activity detection from motion samples.

Keeps a rolling window (50 samples, ~2.5s at 20Hz) of accelerometer and
rotation-rate readings and classifies it as stationary, walk, run or cycle from
four features:

- mean acceleration magnitude (gravity included, so ~9.81 at rest)
- magnitude variance
- peak frequency: local maxima per second
- mean rotation-rate magnitude (deg/s)

Each rule returns a fixed confidence describing how certain the rule is; it
is not a learned probability.
"""

import logging
from collections import deque

import numpy as np

from .models import Activity, ActivityLabel

logger = logging.getLogger(__name__)

MIN_SAMPLES = 10

STATIONARY_MAGNITUDE = 10.5   # m/s², barely above gravity
LOW_PEAK_FREQUENCY = 1.5      # Hz
HIGH_PEAK_FREQUENCY = 2.5     # Hz
CYCLING_ROTATION = 20.0       # deg/s, handlebar and pedalling sway
RUN_VARIANCE = 5.0            # (m/s²)²


class ActivityClassifier:

    def __init__(self, buffer_size=50, sample_rate_hz=20):
        """
        Args:
            buffer_size (int): Samples kept per sensor (default 50 = 2.5s @ 20Hz)
            sample_rate_hz (float): Nominal motion sample rate, used for peak frequency
        """
        self.buffer_size = buffer_size
        self.sample_rate_hz = sample_rate_hz
        self.acceleration_buffer = deque(maxlen=buffer_size)
        self.rotation_buffer = deque(maxlen=buffer_size)

    def add_sample(self, sample):
        if sample.acceleration is not None:
            self.acceleration_buffer.append(sample.acceleration.magnitude)
        if sample.rotation_rate is not None:
            self.rotation_buffer.append(sample.rotation_rate.magnitude)

    def extract_features(self):
        """
        Compute classification features over the current window.

        Returns:
            dict: {
                'mean_magnitude': float (m/s²),
                'variance': float,
                'peak_frequency': float (Hz),
                'mean_rotation': float (deg/s),
            }
        """
        magnitudes = np.asarray(self.acceleration_buffer, dtype=float)
        mean_magnitude = float(magnitudes.mean())
        variance = float(magnitudes.var())

        # Local maxima: strictly greater than both neighbours
        inner = magnitudes[1:-1]
        peaks = int(np.count_nonzero((inner > magnitudes[:-2]) & (inner > magnitudes[2:])))
        window_seconds = len(magnitudes) / self.sample_rate_hz
        peak_frequency = peaks / window_seconds

        mean_rotation = float(np.mean(self.rotation_buffer)) if self.rotation_buffer else 0.0

        return {
            'mean_magnitude': mean_magnitude,
            'variance': variance,
            'peak_frequency': peak_frequency,
            'mean_rotation': mean_rotation,
        }

    def classify(self):
        """
        Classify the current window.

        Returns:
            ActivityLabel: activity with a fixed rule confidence, or UNKNOWN/0.0
            while fewer than 10 samples are buffered
        """
        if len(self.acceleration_buffer) < MIN_SAMPLES:
            return ActivityLabel(Activity.UNKNOWN, 0.0)

        features = self.extract_features()

        if features['mean_magnitude'] < STATIONARY_MAGNITUDE:
            return ActivityLabel(Activity.STATIONARY, 0.9)

        if features['peak_frequency'] < LOW_PEAK_FREQUENCY:
            if features['mean_rotation'] > CYCLING_ROTATION:
                return ActivityLabel(Activity.CYCLE, 0.8)
            return ActivityLabel(Activity.WALK, 0.85)

        if features['peak_frequency'] > HIGH_PEAK_FREQUENCY:
            return ActivityLabel(Activity.RUN, 0.85)

        # Intermediate cadence: vigorous movement reads as running
        if features['variance'] > RUN_VARIANCE:
            return ActivityLabel(Activity.RUN, 0.7)
        return ActivityLabel(Activity.WALK, 0.7)

    def reset(self):
        self.acceleration_buffer.clear()
        self.rotation_buffer.clear()
