"""
GPS gap filler.

Real fixes feed the trajectory predictor and close any open gap. When a fix is
missing the gap is opened (once) and, for up to max_gap_ms, filled with a
trajectory prediction if its confidence is high enough. Past that cap no more
synthetic positions are produced until a real fix arrives.
"""

import logging

from .trajectory import TrajectoryPredictor

logger = logging.getLogger(__name__)

MIN_FILL_CONFIDENCE = 0.3


class GapFiller:

    def __init__(self, predictor=None, max_gap_ms=60000):
        """
        Args:
            predictor (TrajectoryPredictor): Shared predictor, a private one if None
            max_gap_ms (int): Longest gap that will be filled (ms)
        """
        self.predictor = predictor if predictor is not None else TrajectoryPredictor()
        self.max_gap_ms = max_gap_ms

        self.in_gap = False
        self.gap_start_time = None
        self.last_known_position = None
        self.filled_count = 0

    def process_position(self, position, now):
        """
        Feed the latest position, or None when the receiver produced nothing.

        Args:
            position: Real fix (RawFix or FilteredPosition-like with latitude,
                longitude, timestamp) or None
            now: Current time (ms)

        Returns:
            The real position, a prediction dict, or None
        """
        if position is not None and not getattr(position, 'is_synthetic', False):
            self.predictor.add_position(
                position.latitude,
                position.longitude,
                position.timestamp,
                speed=getattr(position, 'speed', None),
                heading=getattr(position, 'heading', None),
            )
            self.last_known_position = position
            self.in_gap = False
            self.gap_start_time = None
            return position

        return self.fill_gap(now)

    def _open_gap(self, now):
        if not self.in_gap:
            self.in_gap = True
            self.gap_start_time = now
            logger.debug("GPS gap started at %s", now)

    def fill_gap(self, now):
        """
        Predict a position for now (ms), opening a gap if none is open.

        Returns:
            dict or None: Prediction with confidence > 0.3, None past the gap cap
        """
        self._open_gap(now)

        if now - self.gap_start_time > self.max_gap_ms:
            return None

        predicted = self.predictor.predict_position(now)
        if predicted is not None and predicted['confidence'] > MIN_FILL_CONFIDENCE:
            self.filled_count += 1
            logger.info(
                "GPS gap filled: %.6f, %.6f (confidence: %.2f)",
                predicted['lat'], predicted['lon'], predicted['confidence'],
            )
            return predicted
        return None

    def get_statistics(self, now):
        stats = {
            'in_gap': self.in_gap,
            'gap_duration_ms': now - self.gap_start_time if self.in_gap else 0,
            'position_history': len(self.predictor.position_history),
            'filled_count': self.filled_count,
        }
        stats.update(self.predictor.get_movement_characteristics())
        return stats

    def reset(self):
        self.predictor.reset()
        self.in_gap = False
        self.gap_start_time = None
        self.last_known_position = None
        self.filled_count = 0
