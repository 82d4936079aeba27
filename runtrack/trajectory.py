"""
Trajectory prediction for GPS gap filling.

Keeps a bounded history of recent real fixes and fits ordinary least-squares
lines (time -> latitude, longitude, speed, heading) over it. Predictions are
straight-line extrapolations in time with a confidence that decays with the
time since the last real fix.
"""

import math
from collections import deque

import numpy as np

from .filters.utils import haversine_distance

BASE_CONFIDENCE = 0.9
CONFIDENCE_TIME_CONSTANT_S = 30.0
MIN_CONFIDENCE = 0.1
MIN_PREDICTION_POINTS = 3


class LinearRegression:
    """Ordinary least-squares fit of y = slope * x + intercept."""

    def __init__(self):
        self.slope = 0.0
        self.intercept = 0.0
        self.trained = False

    def train(self, xs, ys):
        """
        Fit the line. Needs at least two points; fewer leaves the model untouched.

        When every x is identical the slope is undefined, so the model falls
        back to a flat line through the mean of y.
        """
        if len(xs) < 2 or len(xs) != len(ys):
            return

        x = np.asarray(xs, dtype=float)
        y = np.asarray(ys, dtype=float)

        if np.ptp(x) == 0:
            self.slope = 0.0
            self.intercept = float(np.mean(y))
        else:
            A = np.vstack([x, np.ones_like(x)]).T
            (slope, intercept), *_ = np.linalg.lstsq(A, y, rcond=None)
            self.slope = float(slope)
            self.intercept = float(intercept)
        self.trained = True

    def predict(self, x):
        if not self.trained:
            return None
        return self.slope * x + self.intercept


class TrajectoryPredictor:

    def __init__(self, history_size=20):
        """
        Args:
            history_size (int): Number of most recent real fixes kept for fitting
        """
        self.history_size = history_size
        self.position_history = deque(maxlen=history_size)
        self.velocity_history = deque(maxlen=history_size)
        self.acceleration_history = deque(maxlen=history_size)
        self._new_models()

    def _new_models(self):
        self.lat_model = LinearRegression()
        self.lon_model = LinearRegression()
        self.speed_model = LinearRegression()
        self.heading_model = LinearRegression()

    def add_position(self, lat, lon, timestamp, speed=None, heading=None):
        """Add a real fix (timestamp in ms) and retrain the models."""
        self.position_history.append({
            'lat': lat,
            'lon': lon,
            'timestamp': timestamp,
            'speed': speed,
            'heading': heading,
        })
        self._update_velocity_and_acceleration()
        self._train_models()

    def _update_velocity_and_acceleration(self):
        if len(self.position_history) < 2:
            return

        current = self.position_history[-1]
        previous = self.position_history[-2]
        dt = (current['timestamp'] - previous['timestamp']) / 1000.0
        if dt <= 0:
            return

        self.velocity_history.append({
            'lat': (current['lat'] - previous['lat']) / dt,
            'lon': (current['lon'] - previous['lon']) / dt,
            'timestamp': current['timestamp'],
        })

        if len(self.velocity_history) < 2:
            return

        curr_vel = self.velocity_history[-1]
        prev_vel = self.velocity_history[-2]
        acc_dt = (curr_vel['timestamp'] - prev_vel['timestamp']) / 1000.0
        if acc_dt > 0:
            self.acceleration_history.append({
                'lat': (curr_vel['lat'] - prev_vel['lat']) / acc_dt,
                'lon': (curr_vel['lon'] - prev_vel['lon']) / acc_dt,
                'timestamp': curr_vel['timestamp'],
            })

    def _train_models(self):
        if len(self.position_history) < MIN_PREDICTION_POINTS:
            return

        base_time = self.position_history[0]['timestamp']
        times = [(p['timestamp'] - base_time) / 1000.0 for p in self.position_history]

        self.lat_model.train(times, [p['lat'] for p in self.position_history])
        self.lon_model.train(times, [p['lon'] for p in self.position_history])

        speed_points = [(t, p['speed']) for t, p in zip(times, self.position_history)
                        if p['speed'] is not None]
        if len(speed_points) >= 2:
            self.speed_model.train(*zip(*speed_points))

        heading_points = [(t, p['heading']) for t, p in zip(times, self.position_history)
                          if p['heading'] is not None]
        if len(heading_points) >= 2:
            self.heading_model.train(*zip(*heading_points))

    def predict_position(self, future_timestamp):
        """
        Extrapolate the position at future_timestamp (ms).

        Returns:
            dict or None: {'lat', 'lon', 'timestamp', 'confidence', 'is_predicted'},
            None with fewer than three points of history
        """
        if len(self.position_history) < MIN_PREDICTION_POINTS:
            return None

        base_time = self.position_history[0]['timestamp']
        relative_time = (future_timestamp - base_time) / 1000.0

        lat = self.lat_model.predict(relative_time)
        lon = self.lon_model.predict(relative_time)
        if lat is None or lon is None:
            return None

        gap_s = (future_timestamp - self.position_history[-1]['timestamp']) / 1000.0
        confidence = BASE_CONFIDENCE * math.exp(-gap_s / CONFIDENCE_TIME_CONSTANT_S)

        return {
            'lat': lat,
            'lon': lon,
            'timestamp': future_timestamp,
            'confidence': max(MIN_CONFIDENCE, confidence),
            'is_predicted': True,
        }

    def get_movement_characteristics(self):
        """
        Summarize recent movement.

        Returns:
            dict: average_speed (m/s), direction (radians, last segment),
            consistency (exp(-variance) of segment directions) and
            predictability (lower of consistency and exp(-speed/10))
        """
        if len(self.position_history) < 2:
            return {
                'average_speed': 0.0,
                'direction': 0.0,
                'consistency': 0.0,
                'predictability': 0.0,
            }

        history = list(self.position_history)
        speeds = []
        directions = []
        for prev, curr in zip(history, history[1:]):
            dt = (curr['timestamp'] - prev['timestamp']) / 1000.0
            if dt > 0:
                distance = haversine_distance(prev['lat'], prev['lon'], curr['lat'], curr['lon'])
                speeds.append(distance / dt)
            directions.append(math.atan2(curr['lon'] - prev['lon'], curr['lat'] - prev['lat']))

        average_speed = float(np.mean(speeds)) if speeds else 0.0

        consistency = 1.0
        if len(directions) > 1:
            consistency = math.exp(-float(np.var(directions)))

        return {
            'average_speed': average_speed,
            'direction': directions[-1],
            'consistency': consistency,
            'predictability': min(consistency, math.exp(-average_speed / 10.0)),
        }

    def reset(self):
        self.position_history.clear()
        self.velocity_history.clear()
        self.acceleration_history.clear()
        self._new_models()
