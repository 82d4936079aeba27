"""
Periodic task scheduling for the session timers.

ThreadScheduler runs each periodic task on its own daemon thread that sleeps on
a stop Event, the same shape as the sensor reader threads. ManualScheduler runs
nothing on its own: tasks fire when the owner calls run_due() or fire(), which
is what replays and tests use to drive the timers deterministically.
"""

import logging
import threading

logger = logging.getLogger(__name__)


class PeriodicTask(threading.Thread):
    """Calls callback every interval_s seconds until cancelled."""

    def __init__(self, interval_s, callback, name=None):
        super().__init__(daemon=True, name=name or "periodic-task")
        self.interval_s = interval_s
        self.callback = callback
        self.stop_event = threading.Event()

    def run(self):
        # wait() returns True as soon as cancel() sets the event
        while not self.stop_event.wait(self.interval_s):
            try:
                self.callback()
            except Exception:
                logger.exception("Periodic task %s failed (continuing)", self.name)

    @property
    def cancelled(self):
        return self.stop_event.is_set()

    def cancel(self, timeout=None):
        """
        Stop the task. With a timeout, also wait for the thread to exit.

        Never joins from the task's own thread.
        """
        self.stop_event.set()
        if timeout is not None and self.is_alive() and threading.current_thread() is not self:
            self.join(timeout)


class ThreadScheduler:

    def every(self, interval_s, callback, name=None):
        task = PeriodicTask(interval_s, callback, name=name)
        task.start()
        return task


class ManualTask:

    def __init__(self, interval_s, callback, name, due_s):
        self.interval_s = interval_s
        self.callback = callback
        self.name = name
        self.next_due_s = due_s
        self.cancelled = False
        self.fire_count = 0

    def fire(self):
        self.fire_count += 1
        self.callback()

    def cancel(self, timeout=None):
        self.cancelled = True


class ManualScheduler:
    """
    Deterministic scheduler driven by a clock the caller controls.

    Args:
        clock: Object with now_ms(); task due times are measured against it
    """

    def __init__(self, clock):
        self.clock = clock
        self.tasks = []

    def every(self, interval_s, callback, name=None):
        now_s = self.clock.now_ms() / 1000.0
        task = ManualTask(interval_s, callback, name, now_s + interval_s)
        self.tasks.append(task)
        return task

    def active(self, name=None):
        return [t for t in self.tasks
                if not t.cancelled and (name is None or t.name == name)]

    def fire(self, name):
        """Fire every active task with this name once, regardless of due time."""
        fired = 0
        for task in self.active(name):
            if task.cancelled:
                continue
            task.fire()
            fired += 1
        return fired

    def run_due(self):
        """Fire tasks whose due time has passed, in due-time order, catching up missed ticks."""
        now_s = self.clock.now_ms() / 1000.0
        fired = 0
        while True:
            due = [t for t in self.active() if t.next_due_s <= now_s]
            if not due:
                break
            task = min(due, key=lambda t: t.next_due_s)
            task.next_due_s += task.interval_s
            task.fire()
            fired += 1
        self.tasks = [t for t in self.tasks if not t.cancelled]
        return fired

    def advance_to(self, target_ms):
        """
        Move a settable clock forward to target_ms, firing each task at its own due time.

        The clock must provide set(); ReplayClock does.
        """
        fired = 0
        while True:
            pending = self.active()
            if not pending:
                break
            next_due_ms = min(t.next_due_s for t in pending) * 1000.0
            if next_due_ms > target_ms:
                break
            if next_due_ms > self.clock.now_ms():
                self.clock.set(next_due_ms)
            fired += self.run_due()
        if target_ms > self.clock.now_ms():
            self.clock.set(target_ms)
        return fired
