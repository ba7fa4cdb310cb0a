"""
Time sources for the accounting engine.

Pools and factories never read wall-clock time directly; they ask the
clock they were built with, so tests can drive time explicitly.
"""
import time
import threading


class SystemClock:
    """Wall-clock time in whole seconds."""

    def now(self) -> int:
        return int(time.time())


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start: int = 0):
        self._now = start
        self._lock = threading.Lock()

    def now(self) -> int:
        with self._lock:
            return self._now

    def set(self, timestamp: int) -> None:
        with self._lock:
            if timestamp < self._now:
                raise ValueError(f"Clock cannot move backwards: {timestamp} < {self._now}")
            self._now = timestamp

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError("Cannot advance by a negative amount")
        with self._lock:
            self._now += seconds
            return self._now
