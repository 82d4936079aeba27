"""
Kalman filter smoothing for GPS coordinates.

Runs an independent 1-D Kalman filter per axis (latitude, longitude, altitude).
Each axis is a random-walk model: the prediction keeps the estimate and grows
the error covariance by Q, the update blends in the measurement with gain
K = P_pred / (P_pred + R).

Q (process noise) follows the activity type: cycling tolerates faster true
movement than walking. R (measurement noise) follows the reported accuracy of
each fix.
"""

import logging
import threading

import numpy as np
from filterpy.kalman import KalmanFilter as FilterPyKalmanFilter

from ..config import ActivityType
from ..models import FilteredPosition
from .base import PositionFilterBase

logger = logging.getLogger(__name__)

PROCESS_NOISE_BY_ACTIVITY = {
    ActivityType.WALK: 0.5,
    ActivityType.RUN: 3.0,
    ActivityType.CYCLE: 5.0,
}

ALTITUDE_PROCESS_NOISE = 1.0
ALTITUDE_MEASUREMENT_NOISE = 0.05

MIN_MEASUREMENT_NOISE = 0.001


def measurement_noise_for(accuracy):
    """Map reported accuracy (meters) to measurement noise R, clamped above zero."""
    return max(MIN_MEASUREMENT_NOISE, accuracy / 20.0)


class KalmanFilter1D:
    """
    Scalar Kalman filter backed by filterpy.

    The state is initialized from the first measurement with P=1; that first
    measurement is returned unchanged.
    """

    def __init__(self, q=3.0, r=0.01):
        """
        Args:
            q (float): Process noise Q - higher trusts measurements more
            r (float): Measurement noise R - lower trusts measurements more
        """
        self.process_noise = q
        self.measurement_noise = r
        self.kf = None

    def _initialize(self, measurement):
        kf = FilterPyKalmanFilter(dim_x=1, dim_z=1)
        kf.x = np.array([[float(measurement)]])
        kf.F = np.array([[1.0]])
        kf.H = np.array([[1.0]])
        kf.P = np.array([[1.0]])
        kf.Q = np.array([[self.process_noise]])
        kf.R = np.array([[self.measurement_noise]])
        self.kf = kf

    @property
    def initialized(self):
        return self.kf is not None

    @property
    def estimate(self):
        return None if self.kf is None else float(self.kf.x[0, 0])

    @property
    def error_covariance(self):
        return 1.0 if self.kf is None else float(self.kf.P[0, 0])

    @property
    def gain(self):
        return 0.0 if self.kf is None else float(self.kf.K[0, 0])

    def filter(self, measurement):
        """
        Filter a new measurement.

        Args:
            measurement (float): The measured value

        Returns:
            float: The filtered value
        """
        if self.kf is None:
            self._initialize(measurement)
            return float(measurement)

        self.kf.Q = np.array([[self.process_noise]])
        self.kf.R = np.array([[self.measurement_noise]])
        self.kf.predict()
        self.kf.update(float(measurement))

        # Joseph-form update keeps P non-negative; clamp guards float round-off
        if self.kf.P[0, 0] < 0:
            self.kf.P[0, 0] = 0.0

        return float(self.kf.x[0, 0])

    def adjust_parameters(self, accuracy):
        """Higher accuracy (smaller meters) gives lower measurement noise."""
        self.measurement_noise = measurement_noise_for(accuracy)

    def reset(self):
        self.kf = None

    def get_state(self):
        return {
            'estimate': self.estimate,
            'error_covariance': self.error_covariance,
            'process_noise': self.process_noise,
            'measurement_noise': self.measurement_noise,
        }


class KalmanPositionFilter(PositionFilterBase):
    """Per-axis Kalman smoothing of latitude, longitude and altitude."""

    def __init__(self, activity_type=ActivityType.RUN):
        q = PROCESS_NOISE_BY_ACTIVITY[ActivityType(activity_type)]
        self.lat_filter = KalmanFilter1D(q=q, r=0.01)
        self.lon_filter = KalmanFilter1D(q=q, r=0.01)
        self.alt_filter = KalmanFilter1D(q=ALTITUDE_PROCESS_NOISE, r=ALTITUDE_MEASUREMENT_NOISE)
        self.activity_type = ActivityType(activity_type)

        self.lock = threading.Lock()

    def set_activity(self, activity_type):
        activity_type = ActivityType(activity_type)
        q = PROCESS_NOISE_BY_ACTIVITY[activity_type]
        with self.lock:
            self.activity_type = activity_type
            self.lat_filter.process_noise = q
            self.lon_filter.process_noise = q
        logger.debug("Kalman process noise set to %.1f for %s", q, activity_type.value)

    def adjust_parameters(self, accuracy):
        with self.lock:
            self.lat_filter.adjust_parameters(accuracy)
            self.lon_filter.adjust_parameters(accuracy)

    def filter(self, fix):
        self.adjust_parameters(fix.accuracy)
        with self.lock:
            latitude = self.lat_filter.filter(fix.latitude)
            longitude = self.lon_filter.filter(fix.longitude)
            altitude = self.alt_filter.filter(fix.altitude) if fix.has_altitude else None

        return FilteredPosition(
            latitude=latitude,
            longitude=longitude,
            accuracy=fix.accuracy,
            timestamp=fix.timestamp,
            altitude=altitude,
        )

    def reset(self):
        with self.lock:
            self.lat_filter.reset()
            self.lon_filter.reset()
            self.alt_filter.reset()

    def get_state(self):
        with self.lock:
            return {
                'latitude': self.lat_filter.get_state(),
                'longitude': self.lon_filter.get_state(),
                'altitude': self.alt_filter.get_state(),
            }
