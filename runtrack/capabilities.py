"""
Platform capabilities the tracking session depends on.

The session never talks to the OS directly. Location, motion sensors, the CPU
wake-lock, battery level and app visibility are injected as small capability
objects; each has a null implementation used when the capability is missing,
and the Termux/psutil variants used on a real device.
"""

import json
import logging
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace

import psutil

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LocationRequest:
    """Watcher configuration pushed to the location source."""

    interval_ms: int = 5000
    fastest_interval_ms: int = 5000
    distance_filter_m: float = 5.0
    high_accuracy: bool = True
    stale_location_threshold_ms: int = 30000

    def with_interval(self, interval_ms):
        return replace(self, interval_ms=int(interval_ms), fastest_interval_ms=int(interval_ms))


class LocationSource(ABC):
    """
    Delivers position fixes to a callback.

    The callback signature is callback(fix, error): exactly one of the two is
    set. Fixes may be RawFix instances or platform mappings accepted by
    RawFix.from_mapping(). Authorization failures are delivered (or raised
    from start) as LocationPermissionError.
    """

    @abstractmethod
    def start(self, request, callback):
        """Begin watching; returns an opaque watch id."""
        pass

    @abstractmethod
    def configure(self, request):
        """Apply an updated LocationRequest to the running watcher."""
        pass

    @abstractmethod
    def stop(self):
        """Release the watcher. Safe to call when not started."""
        pass


class NullLocationSource(LocationSource):
    """Location source that never produces fixes (fixes are pushed by the caller)."""

    def __init__(self):
        self.request = None
        self.active = False

    def start(self, request, callback):
        self.request = request
        self.active = True
        return "null"

    def configure(self, request):
        self.request = request

    def stop(self):
        self.active = False


class MotionSource(ABC):
    """Delivers MotionSample events after explicit capability acquisition."""

    @abstractmethod
    def request_access(self):
        """Return True when motion sensors may be used. May block on a permission prompt."""
        pass

    @abstractmethod
    def start(self, callback):
        pass

    @abstractmethod
    def stop(self):
        pass


class NullMotionSource(MotionSource):

    def request_access(self):
        return False

    def start(self, callback):
        pass

    def stop(self):
        pass


class WakeLock(ABC):

    @abstractmethod
    def acquire(self):
        pass

    @abstractmethod
    def release(self):
        pass


class NullWakeLock(WakeLock):

    def __init__(self):
        self.held = False

    def acquire(self):
        self.held = True

    def release(self):
        self.held = False


class TermuxWakeLock(WakeLock):
    """Partial CPU wake-lock via termux-wake-lock so the OS keeps delivering fixes."""

    def __init__(self):
        self.held = False

    def acquire(self):
        try:
            subprocess.run(['termux-wake-lock'], check=False, capture_output=True, timeout=5)
            self.held = True
            logger.info("Wakelock acquired")
        except (OSError, subprocess.SubprocessError) as e:
            logger.warning("Could not acquire wakelock: %s", e)

    def release(self):
        if not self.held:
            return
        try:
            subprocess.run(['termux-wake-unlock'], check=False, capture_output=True, timeout=5)
            logger.info("Wakelock released")
        except (OSError, subprocess.SubprocessError) as e:
            logger.warning("Could not release wakelock: %s", e)
        finally:
            self.held = False


class BatteryReader(ABC):

    @abstractmethod
    def read_level(self):
        """Battery percentage 0-100, or None when unavailable."""
        pass


class NullBatteryReader(BatteryReader):

    def read_level(self):
        return None


class PsutilBatteryReader(BatteryReader):
    """Battery level from psutil.sensors_battery() (None on machines without a battery)."""

    def read_level(self):
        try:
            battery = psutil.sensors_battery()
        except (AttributeError, NotImplementedError, OSError) as e:
            logger.debug("Battery status unavailable: %s", e)
            return None
        if battery is None:
            return None
        return float(battery.percent)


class TermuxBatteryReader(BatteryReader):
    """Battery level from termux-battery-status."""

    def read_level(self):
        try:
            result = subprocess.run(
                ['termux-battery-status'],
                capture_output=True,
                text=True,
                timeout=2
            )
        except (OSError, subprocess.SubprocessError) as e:
            logger.debug("termux-battery-status failed: %s", e)
            return None

        if result.returncode != 0 or not result.stdout:
            return None
        try:
            percentage = json.loads(result.stdout).get('percentage')
        except json.JSONDecodeError:
            return None
        return None if percentage is None else float(percentage)


class VisibilityProvider:
    """Reports whether the app is in the background. Defaults to foreground."""

    def __init__(self, backgrounded=False):
        self.backgrounded = backgrounded

    def is_backgrounded(self):
        return self.backgrounded

    def set_backgrounded(self, backgrounded):
        self.backgrounded = bool(backgrounded)
