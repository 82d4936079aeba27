"""
Pluggable position smoothing filters.

This module provides a factory function to instantiate the configured filter
strategy. Both strategies conform to PositionFilterBase, so the session can
swap them mid-run when the filtering mode changes.

Example usage:
    position_filter = get_filter('kalman', activity_type='cycle')
    filtered = position_filter.filter(fix)
"""

from ..config import ActivityType, FilterMode
from ..errors import ConfigError


def get_filter(filter_mode='kalman', activity_type=ActivityType.RUN, window_size=5):
    """
    Factory function to get a position filter by mode.

    Args:
        filter_mode (str | FilterMode): 'kalman' or 'weighted'
        activity_type (str | ActivityType): Tunes Kalman process noise
        window_size (int): Window for the weighted-average filter

    Returns:
        PositionFilterBase instance

    Raises:
        ConfigError: If filter_mode is not recognized
    """
    try:
        mode = FilterMode(filter_mode)
    except ValueError:
        raise ConfigError(f"Unknown filter mode: {filter_mode}. Use 'kalman' or 'weighted'") from None

    if mode is FilterMode.KALMAN:
        from .kalman import KalmanPositionFilter
        return KalmanPositionFilter(activity_type=activity_type)

    from .weighted import WeightedPositionFilter
    return WeightedPositionFilter(window_size=window_size)


__all__ = ['get_filter']
