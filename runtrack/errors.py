"""Error types raised across the tracking core."""

from __future__ import annotations


class TrackingError(RuntimeError):
    """Base error for tracking failures."""


class LocationPermissionError(TrackingError):
    """Raised when the platform denies or revokes location authorization."""


class LocationSourceError(TrackingError):
    """Raised when the location watcher fails at runtime."""


class SensorUnavailableError(TrackingError):
    """Raised when motion sensors cannot be acquired."""


class ConfigError(ValueError):
    """Raised for an invalid configuration value."""


__all__ = [
    "TrackingError",
    "LocationPermissionError",
    "LocationSourceError",
    "SensorUnavailableError",
    "ConfigError",
]
