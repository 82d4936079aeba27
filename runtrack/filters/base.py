"""
Abstract base class for position smoothing filters.

All filter implementations must inherit from PositionFilterBase and implement
the required methods.
"""

from abc import ABC, abstractmethod


class PositionFilterBase(ABC):
    """
    Abstract base class for per-fix coordinate smoothing.

    All subclasses must implement:
    - filter(fix) -> FilteredPosition
    - adjust_parameters(accuracy)
    - reset()

    This interface allows the Kalman and weighted-average strategies to be
    swapped by configuration without the tracking session knowing which one
    is active.
    """

    @abstractmethod
    def filter(self, fix):
        """
        Smooth one accepted fix.

        Args:
            fix (RawFix): Fix that already passed the quality gate

        Returns:
            FilteredPosition: Smoothed coordinates with accuracy and timestamp
        """
        pass

    @abstractmethod
    def adjust_parameters(self, accuracy):
        """
        Adapt measurement noise to the reported accuracy.

        Args:
            accuracy (float): Reported horizontal accuracy in meters
        """
        pass

    @abstractmethod
    def reset(self):
        """Clear state so the next fix re-initializes the filter."""
        pass

    def set_activity(self, activity_type):
        """Retune for a new activity type. No-op unless the strategy depends on it."""
        pass

    def get_state(self):
        """Get current filter state as a dict (diagnostics only)."""
        return {}
