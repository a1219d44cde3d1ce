"""Clock collaborator: supplies `now` in nanoseconds since the Unix epoch."""

from __future__ import annotations

import threading
import time
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    def now(self) -> int: ...


class SystemClock:
    def now(self) -> int:
        return time.time_ns()


class FixedClock:
    """Manually driven clock for tests and offline tooling."""

    def __init__(self, now: int = 0) -> None:
        self._now = now
        self._lock = threading.Lock()

    def now(self) -> int:
        with self._lock:
            return self._now

    def set(self, now: int) -> None:
        with self._lock:
            self._now = now

    def advance(self, delta: int) -> int:
        with self._lock:
            self._now += delta
            return self._now


__all__ = ["Clock", "SystemClock", "FixedClock"]
