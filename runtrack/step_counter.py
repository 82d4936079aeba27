"""
StepCounter - accelerometer peak detector.

A step fires when the acceleration magnitude (gravity included) crosses
upward through a fixed threshold and enough time has passed since the
previous step to rule out the bounce of the same foot strike.
"""

import logging
from collections import deque

logger = logging.getLogger(__name__)


class StepCounter:
    """
    Counts steps from raw accelerometer samples.

    Args:
        threshold (float): Upward-crossing threshold in m/s² (default 12)
        min_step_interval_ms (float): Minimum spacing between steps (default 250ms)
        history_size (int): Recent magnitudes kept for diagnostics
    """

    def __init__(self, threshold=12.0, min_step_interval_ms=250.0, history_size=10):
        self.threshold = threshold
        self.min_step_interval_ms = min_step_interval_ms

        self.magnitude_history = deque(maxlen=history_size)
        self.last_magnitude = None
        self.last_step_time = None
        self.step_count = 0

    def process(self, sample):
        """
        Process one motion sample.

        Args:
            sample (MotionSample): Accelerometer reading with timestamp (ms)

        Returns:
            bool: True if a step was detected on this sample
        """
        magnitude = sample.acceleration.magnitude
        self.magnitude_history.append(magnitude)

        step = False
        if self.last_magnitude is not None:
            crossed_up = magnitude > self.threshold and self.last_magnitude <= self.threshold
            spaced = (self.last_step_time is None or
                      sample.timestamp - self.last_step_time >= self.min_step_interval_ms)
            if crossed_up and spaced:
                self.step_count += 1
                self.last_step_time = sample.timestamp
                step = True

        self.last_magnitude = magnitude
        return step

    def get_step_count(self):
        return self.step_count

    def reset(self):
        self.step_count = 0
        self.last_magnitude = None
        self.last_step_time = None
        self.magnitude_history.clear()
