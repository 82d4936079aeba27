"""Tests for the event bus, the schedulers and the clocks."""

from __future__ import annotations

import threading

import pytest

from runtrack.clock import ReplayClock, SystemClock
from runtrack.events import EventBus, SessionEvent
from runtrack.scheduler import ManualScheduler, ThreadScheduler


# --- EventBus --------------------------------------------------------
def test_subscribe_emit_unsubscribe() -> None:
    bus = EventBus()
    received = []

    listener = bus.subscribe(SessionEvent.DISTANCE_CHANGE, received.append)
    bus.subscribe("distance_change", listener)
    assert bus.listener_count(SessionEvent.DISTANCE_CHANGE) == 1

    bus.emit(SessionEvent.DISTANCE_CHANGE, 12.5)
    bus.emit(SessionEvent.PACE_CHANGE, 300.0)
    assert received == [12.5]

    assert bus.unsubscribe(SessionEvent.DISTANCE_CHANGE, listener) is True
    assert bus.unsubscribe(SessionEvent.DISTANCE_CHANGE, listener) is False
    bus.emit(SessionEvent.DISTANCE_CHANGE, 20.0)
    assert received == [12.5]


def test_raising_listener_does_not_block_others(caplog) -> None:
    bus = EventBus()
    received = []

    @bus.subscribe(SessionEvent.SPLIT_RECORDED)
    def broken(value):
        raise RuntimeError("boom")

    bus.subscribe(SessionEvent.SPLIT_RECORDED, received.append)
    bus.emit(SessionEvent.SPLIT_RECORDED, ("split",))

    assert received == [("split",)]
    assert "split_recorded" in caplog.text


def test_unknown_event_name_is_rejected() -> None:
    with pytest.raises(ValueError):
        EventBus().subscribe("lap_change", print)


def test_clear_removes_all_listeners() -> None:
    bus = EventBus()
    bus.subscribe(SessionEvent.STATUS_CHANGE, print)
    bus.clear()
    assert bus.listener_count(SessionEvent.STATUS_CHANGE) == 0


# --- ManualScheduler -------------------------------------------------
def test_run_due_catches_up_missed_ticks() -> None:
    clock = ReplayClock(0)
    scheduler = ManualScheduler(clock)
    fired = []
    scheduler.every(1, lambda: fired.append(clock.now_ms()), name="tick")

    clock.set(3500)
    assert scheduler.run_due() == 3
    assert scheduler.active("tick")[0].next_due_s == 4.0
    # Caught-up ticks all see the current clock
    assert fired == [3500, 3500, 3500]


def test_advance_to_fires_at_each_due_time() -> None:
    clock = ReplayClock(0)
    scheduler = ManualScheduler(clock)
    seen = []
    scheduler.every(1, lambda: seen.append(("fast", clock.now_ms())), name="fast")
    scheduler.every(5, lambda: seen.append(("slow", clock.now_ms())), name="slow")

    scheduler.advance_to(5500)

    assert [t for name, t in seen if name == "fast"] == [1000, 2000, 3000, 4000, 5000]
    assert [t for name, t in seen if name == "slow"] == [5000]
    # Equal due times fire in registration order
    assert seen[-2:] == [("fast", 5000), ("slow", 5000)]
    assert clock.now_ms() == 5500


def test_cancelled_task_never_fires() -> None:
    clock = ReplayClock(0)
    scheduler = ManualScheduler(clock)
    fired = []
    task = scheduler.every(1, lambda: fired.append(1), name="tick")
    task.cancel()

    scheduler.advance_to(10000)
    assert fired == []
    assert scheduler.active() == []
    assert scheduler.fire("tick") == 0


def test_task_cancelling_itself_mid_run() -> None:
    clock = ReplayClock(0)
    scheduler = ManualScheduler(clock)
    fired = []

    def once():
        fired.append(clock.now_ms())
        task.cancel()

    task = scheduler.every(1, once)
    scheduler.advance_to(5000)
    assert fired == [1000]


# --- ThreadScheduler -------------------------------------------------
def test_periodic_task_fires_until_cancelled() -> None:
    ticks = threading.Semaphore(0)
    task = ThreadScheduler().every(0.01, ticks.release, name="test-tick")

    assert ticks.acquire(timeout=2.0)
    assert ticks.acquire(timeout=2.0)
    task.cancel(timeout=2.0)
    assert task.cancelled
    assert not task.is_alive()


def test_periodic_task_survives_callback_errors() -> None:
    calls = []
    done = threading.Event()

    def flaky():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("first tick fails")
        done.set()

    task = ThreadScheduler().every(0.01, flaky)
    assert done.wait(2.0)
    task.cancel(timeout=2.0)


# --- Clocks ----------------------------------------------------------
def test_replay_clock() -> None:
    clock = ReplayClock(1000)
    clock.advance(250)
    assert clock.now_ms() == 1250.0
    clock.set(0)
    assert clock.now_ms() == 0.0


def test_system_clock_is_epoch_millis() -> None:
    assert SystemClock().now_ms() > 1.6e12
