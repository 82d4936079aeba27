"""
SensorFusionManager - coordinates the motion-sensor side of tracking.

Owns the step counter, the activity classifier and the dead-reckoning
estimator, and exposes a single fused position estimate plus the current
activity label.

Sensor access is acquired on a background thread: a permission prompt must not
block fix ingestion. If access is refused or the request fails, the manager
flags itself degraded and tracking carries on GPS-only.
"""

import logging
import threading

from .activity_classifier import ActivityClassifier
from .dead_reckoning import DeadReckoningEstimator
from .step_counter import StepCounter

logger = logging.getLogger(__name__)


class SensorFusionManager:

    def __init__(self, motion_source, step_length_m=0.75):
        """
        Args:
            motion_source (MotionSource): Accelerometer/gyroscope capability
            step_length_m (float): Step length for dead reckoning (meters)
        """
        self.motion_source = motion_source
        self.step_counter = StepCounter()
        self.activity_classifier = ActivityClassifier()
        self.dead_reckoning = DeadReckoningEstimator(step_length_m=step_length_m)

        self.is_motion_available = False
        self.is_streaming = False
        self.degraded = False
        self.step_callback = None

        self.init_thread = None
        self.init_done = threading.Event()
        self.init_cancelled = threading.Event()

        # Thread safety: motion samples arrive on the sensor thread
        self.lock = threading.RLock()

    def initialize(self, start_tracking=True):
        """
        Request sensor access in the background (fire-and-forget).

        Args:
            start_tracking (bool): Start streaming motion samples once access is granted

        Returns:
            threading.Thread: The initialization worker
        """
        self.cancel_initialization()
        self.init_done = threading.Event()
        self.init_cancelled = threading.Event()
        self.init_thread = threading.Thread(
            target=self._initialize_worker,
            args=(start_tracking, self.init_done, self.init_cancelled),
            name="sensor-fusion-init",
            daemon=True,
        )
        self.init_thread.start()
        return self.init_thread

    def _initialize_worker(self, start_tracking, done, cancelled):
        try:
            granted = bool(self.motion_source.request_access())
        except Exception as e:
            logger.warning("Sensor fusion initialization failed: %s (continuing GPS-only)", e)
            granted = False

        try:
            with self.lock:
                if cancelled.is_set():
                    return
                self.is_motion_available = granted
                self.degraded = not granted
                if not granted:
                    logger.warning("Motion sensors unavailable, continuing GPS-only")
                elif start_tracking:
                    self._start_streaming()
        finally:
            done.set()

    def cancel_initialization(self):
        """Abandon a pending initialization; its result is discarded."""
        self.init_cancelled.set()

    def wait_until_initialized(self, timeout=None):
        return self.init_done.wait(timeout)

    def _start_streaming(self):
        try:
            self.motion_source.start(self.process_motion)
            self.is_streaming = True
        except Exception as e:
            logger.warning("Failed to start motion sensors: %s (continuing GPS-only)", e)
            self.degraded = True

    def start_tracking(self):
        with self.lock:
            if not self.is_motion_available or self.is_streaming:
                return
            self._start_streaming()

    def stop_tracking(self):
        self.cancel_initialization()
        with self.lock:
            if self.is_streaming:
                try:
                    self.motion_source.stop()
                except Exception as e:
                    logger.warning("Error stopping motion sensors: %s", e)
                self.is_streaming = False
            self.reset()

    def process_motion(self, sample):
        """
        Feed one motion sample to the step counter and activity classifier.

        Returns:
            bool: True if a step was detected
        """
        with self.lock:
            stepped = self.step_counter.process(sample)
            self.activity_classifier.add_sample(sample)
            callback = self.step_callback

        if stepped and callback is not None:
            callback()
        return stepped

    def update_gps_position(self, lat, lon, heading=None, timestamp=None):
        """Anchor dead reckoning on a confirmed fix."""
        with self.lock:
            self.dead_reckoning.update_gps_position(
                lat, lon, heading=heading,
                step_count=self.step_counter.get_step_count(),
                timestamp=timestamp,
            )

    def update_heading(self, heading):
        with self.lock:
            self.dead_reckoning.update_heading(heading)

    def get_estimated_position(self):
        """Dead-reckoning estimate from the last fix, or None before the first fix."""
        with self.lock:
            return self.dead_reckoning.estimate_position(self.step_counter.get_step_count())

    def get_current_activity(self):
        with self.lock:
            return self.activity_classifier.classify()

    def get_step_count(self):
        with self.lock:
            return self.step_counter.get_step_count()

    def on_step_detected(self, callback):
        """Register the per-step callback (replaces any previous one)."""
        with self.lock:
            self.step_callback = callback

    def reset(self):
        with self.lock:
            self.step_counter.reset()
            self.activity_classifier.reset()
            self.dead_reckoning.reset()
