"""Injectable time sources for workers, retry scheduling and simulated latency."""

from __future__ import annotations

import threading
import time
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Monotonic time source that can also sleep."""

    def now(self) -> float:
        """Return monotonic seconds."""

    def sleep(self, seconds: float) -> None:
        """Suspend the calling thread for ``seconds``."""


class SystemClock:
    """Real monotonic clock."""

    def now(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)


class ManualClock:
    """Virtual clock for deterministic tests.

    Time only moves when ``advance`` or ``sleep`` is called, so a sleep returns
    immediately after moving virtual time forward. Every sleep is recorded in
    ``sleeps`` for later inspection.
    """

    def __init__(self, start: float = 0.0) -> None:
        self._now = start
        self._lock = threading.Lock()
        self.sleeps: list[float] = []

    def now(self) -> float:
        with self._lock:
            return self._now

    def sleep(self, seconds: float) -> None:
        with self._lock:
            self.sleeps.append(seconds)
            if seconds > 0:
                self._now += seconds

    def advance(self, seconds: float) -> None:
        if seconds < 0:
            raise ValueError("Cannot move a clock backwards.")
        with self._lock:
            self._now += seconds

    def advance_to(self, instant: float) -> None:
        with self._lock:
            if instant > self._now:
                self._now = instant
