from __future__ import annotations

from collections.abc import Callable
from typing import Generic, TypeVar

import simpy

from pulse.core.clock import ms_to_s

T = TypeVar("T")


def _interrupt(env: simpy.Environment, proc: simpy.events.Process | None) -> None:
    # a process cannot interrupt itself; when cancelled from inside its own
    # callback it is already past its last yield
    if proc is not None and proc.is_alive and proc is not env.active_process:
        proc.interrupt()


class Timer:
    """
    One-shot cancellable timer on a SimPy environment.
    start() replaces any pending run; cancel() drops it.
    """

    def __init__(self, env: simpy.Environment, callback: Callable[[], None]) -> None:
        self.env = env
        self.callback = callback
        self._proc: simpy.events.Process | None = None

    @property
    def pending(self) -> bool:
        return self._proc is not None and self._proc.is_alive

    def start(self, delay_ms: float) -> None:
        self.cancel()
        self._proc = self.env.process(self._run(ms_to_s(delay_ms)))

    def cancel(self) -> None:
        _interrupt(self.env, self._proc)
        self._proc = None

    def _run(self, delay_s: float):
        try:
            yield self.env.timeout(delay_s)
        except simpy.Interrupt:
            return
        self._proc = None
        self.callback()


class RecurringTimer:
    """
    Fires every interval until stopped. start() is idempotent.
    """

    def __init__(
        self, env: simpy.Environment, interval_ms: float, callback: Callable[[], None]
    ) -> None:
        self.env = env
        self.interval_s = ms_to_s(interval_ms)
        self.callback = callback
        self._proc: simpy.events.Process | None = None
        self._stopped = False

    @property
    def running(self) -> bool:
        return self._proc is not None and self._proc.is_alive and not self._stopped

    def start(self) -> None:
        if self._proc is not None or self._stopped:
            return
        self._proc = self.env.process(self._run())

    def stop(self) -> None:
        self._stopped = True
        _interrupt(self.env, self._proc)

    def _run(self):
        while not self._stopped:
            try:
                yield self.env.timeout(self.interval_s)
            except simpy.Interrupt:
                return
            if not self._stopped:
                self.callback()


class Coalescer(Generic[T]):
    """
    Collapses a burst of samples into one: every push() keeps the latest sample
    and moves the deadline to now + quiet period. When the deadline passes with
    no newer push, the latest sample is handed to on_flush.
    """

    def __init__(
        self,
        env: simpy.Environment,
        quiet_ms: float,
        on_flush: Callable[[T], None],
    ) -> None:
        self.env = env
        self.quiet_s = ms_to_s(quiet_ms)
        self.on_flush = on_flush

        self.latest: T | None = None
        self.deadline_s: float | None = None
        self._proc: simpy.events.Process | None = None

    @property
    def pending(self) -> bool:
        return self.deadline_s is not None

    def push(self, sample: T) -> None:
        self.latest = sample
        self.deadline_s = float(self.env.now) + self.quiet_s
        if self._proc is None or not self._proc.is_alive:
            self._proc = self.env.process(self._wait())

    def flush_now(self) -> None:
        """Emit the pending sample immediately (teardown)."""
        if self.deadline_s is None:
            return
        _interrupt(self.env, self._proc)
        self._proc = None
        self._emit()

    def cancel(self) -> None:
        _interrupt(self.env, self._proc)
        self._proc = None
        self.latest = None
        self.deadline_s = None

    def _emit(self) -> None:
        sample = self.latest
        self.latest = None
        self.deadline_s = None
        if sample is not None:
            self.on_flush(sample)

    def _wait(self):
        try:
            while self.deadline_s is not None and self.env.now < self.deadline_s:
                yield self.env.timeout(self.deadline_s - float(self.env.now))
        except simpy.Interrupt:
            return
        self._proc = None
        self._emit()
