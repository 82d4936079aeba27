"""Shared pytest fixtures and fakes.

Sessions under test run on a ReplayClock and a ManualScheduler, so no real
timers fire and every timestamp is chosen by the test.
"""
from __future__ import annotations

import os
import sys
import threading

import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from runtrack.capabilities import BatteryReader, LocationSource, MotionSource, NullWakeLock
from runtrack.clock import ReplayClock
from runtrack.config import TrackerConfig
from runtrack.models import MotionSample, RawFix, Vector3
from runtrack.scheduler import ManualScheduler
from runtrack.session import TrackingSession

# One degree of latitude in meters on the 6371km sphere
METERS_PER_DEG_LAT = 111194.93


# --- Fakes -----------------------------------------------------------
class FakeLocationSource(LocationSource):
    """Location source the test drives by hand."""

    def __init__(self, start_error=None):
        self.start_error = start_error
        self.callback = None
        self.requests = []
        self.start_count = 0
        self.stop_count = 0

    def start(self, request, callback):
        if self.start_error is not None:
            raise self.start_error
        self.start_count += 1
        self.requests.append(request)
        self.callback = callback
        return f"watch-{self.start_count}"

    def configure(self, request):
        self.requests.append(request)

    def stop(self):
        self.stop_count += 1
        self.callback = None

    @property
    def active(self):
        return self.callback is not None

    def emit(self, fix):
        self.callback(fix, None)

    def fail(self, error):
        self.callback(None, error)


class FakeMotionSource(MotionSource):

    def __init__(self, granted=True, error=None, gate=None):
        self.granted = granted
        self.error = error
        self.gate = gate
        self.callback = None
        self.stopped = False

    def request_access(self):
        if self.gate is not None:
            self.gate.wait(5)
        if self.error is not None:
            raise self.error
        return self.granted

    def start(self, callback):
        self.callback = callback

    def stop(self):
        self.stopped = True
        self.callback = None


class FakeBatteryReader(BatteryReader):

    def __init__(self, level=None):
        self.level = level

    def read_level(self):
        return self.level


# --- Factory helpers -------------------------------------------------
def make_fix(lat, lon, timestamp, accuracy=5.0, **kwargs):
    return RawFix(latitude=lat, longitude=lon, accuracy=accuracy, timestamp=timestamp, **kwargs)


def north_of(lat, meters):
    return lat + meters / METERS_PER_DEG_LAT


def accel(magnitude, timestamp, rotation=None):
    return MotionSample(acceleration=Vector3(0.0, 0.0, magnitude), timestamp=timestamp, rotation_rate=rotation)


# --- Fixtures --------------------------------------------------------
@pytest.fixture
def clock():
    return ReplayClock(0)


@pytest.fixture
def scheduler(clock):
    return ManualScheduler(clock)


@pytest.fixture
def location_source():
    return FakeLocationSource()


@pytest.fixture
def wake_lock():
    return NullWakeLock()


@pytest.fixture
def make_session(clock, scheduler, location_source, wake_lock):
    def factory(battery_level=None, motion_source=None, **config):
        return TrackingSession(
            config=TrackerConfig(**config),
            location_source=location_source,
            motion_source=motion_source,
            wake_lock=wake_lock,
            battery_reader=FakeBatteryReader(battery_level),
            scheduler=scheduler,
            clock=clock,
        )
    return factory


@pytest.fixture
def recorder():
    """Collects (event, value) pairs from session subscriptions."""

    class Recorder:
        def __init__(self):
            self.calls = []
            self.lock = threading.Lock()

        def listen(self, session, event):
            def listener(value):
                with self.lock:
                    self.calls.append((event, value))
            session.subscribe(event, listener)
            return listener

        def values(self, event):
            return [value for name, value in self.calls if name == event]

    return Recorder()
