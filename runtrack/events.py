"""
Session notifications.

The session publishes named events to an EventBus it owns; consumers subscribe
and unsubscribe without touching session state. A listener that raises is
logged and skipped so it cannot break ingestion.
"""

import logging
import threading
from collections import defaultdict
from enum import Enum

logger = logging.getLogger(__name__)


class SessionEvent(str, Enum):
    DISTANCE_CHANGE = "distance_change"
    DURATION_CHANGE = "duration_change"
    PACE_CHANGE = "pace_change"
    SPEED_CHANGE = "speed_change"
    SPLIT_RECORDED = "split_recorded"
    ELEVATION_CHANGE = "elevation_change"
    STEPS_CHANGE = "steps_change"
    STATUS_CHANGE = "status_change"
    GOAL_REACHED = "goal_reached"
    PERMISSION_ERROR = "permission_error"
    RUN_COMPLETED = "run_completed"
    LOCATION_ERROR = "location_error"
    POSITION_ESTIMATED = "position_estimated"
    ACTIVITY_DETECTED = "activity_detected"
    STEP_DETECTED = "step_detected"


class EventBus:

    def __init__(self):
        self._listeners = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, event, listener):
        """Register listener(value) for event. Returns listener for use as a decorator."""
        event = SessionEvent(event)
        with self._lock:
            if listener not in self._listeners[event]:
                self._listeners[event].append(listener)
        return listener

    def unsubscribe(self, event, listener):
        """Remove a listener. Returns False if it was not subscribed."""
        event = SessionEvent(event)
        with self._lock:
            try:
                self._listeners[event].remove(listener)
            except ValueError:
                return False
        return True

    def listener_count(self, event):
        with self._lock:
            return len(self._listeners[SessionEvent(event)])

    def emit(self, event, value=None):
        event = SessionEvent(event)
        with self._lock:
            listeners = list(self._listeners[event])

        for listener in listeners:
            try:
                listener(value)
            except Exception:
                logger.warning("Listener for %s raised (ignored)", event.value, exc_info=True)

    def clear(self):
        with self._lock:
            self._listeners.clear()
