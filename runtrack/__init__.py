"""
GPS activity tracking core.

Turns a noisy, intermittent stream of position fixes into distance, pace,
splits and elevation, bridging GPS gaps with trajectory prediction and dead
reckoning and adapting the sampling rate to save battery.

Example usage:
    session = TrackingSession(TrackerConfig(distance_unit='km', activity_type='run'))
    session.subscribe(SessionEvent.DISTANCE_CHANGE, print)
    session.start()
    session.add_position(RawFix(37.0, -122.0, accuracy=5, timestamp=now_ms))
    result = session.stop()
"""

from .config import ActivityType, DistanceUnit, FilterMode, TrackerConfig
from .errors import (
    ConfigError, LocationPermissionError, LocationSourceError, SensorUnavailableError, TrackingError,
)
from .events import EventBus, SessionEvent
from .models import (
    Activity, ActivityLabel, ElevationState, FilteredPosition, FixOrigin, MotionSample, RawFix,
    RotationRate, RunResult, SessionSnapshot, Speed, Split, Vector3,
)
from .session import SessionState, TrackingSession

__version__ = "0.1.0"

__all__ = [
    'Activity', 'ActivityLabel', 'ActivityType', 'ConfigError', 'DistanceUnit', 'ElevationState',
    'EventBus', 'FilterMode', 'FilteredPosition', 'FixOrigin', 'LocationPermissionError',
    'LocationSourceError', 'MotionSample', 'RawFix', 'RotationRate', 'RunResult', 'SensorUnavailableError',
    'SessionEvent', 'SessionSnapshot', 'SessionState', 'Speed', 'Split', 'TrackerConfig', 'TrackingError',
    'TrackingSession', 'Vector3',
]
