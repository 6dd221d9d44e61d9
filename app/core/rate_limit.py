"""
Fixed-window rate limiter for outbound email.

Three windows (per second, per minute, per hour) each track a count and a
reset time. A window whose reset time has passed starts over at zero with a
new reset time one window-length ahead. Bursts straddling a window boundary
are accepted; this is not a sliding window.
"""

import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Dict, List


@dataclass
class WindowCounter:
    name: str
    limit: int
    length_seconds: float
    count: int = 0
    reset_time: float = 0.0

    def roll(self, now: float) -> None:
        if now > self.reset_time:
            self.count = 0
            self.reset_time = now + self.length_seconds

    @property
    def exhausted(self) -> bool:
        return self.count >= self.limit


class RateLimiter:
    """
    Thread-safe three-tier fixed-window limiter.

    try_acquire() checks every window and takes a slot in all of them in one
    step, so concurrent senders cannot overshoot a ceiling.
    """

    def __init__(
        self,
        per_second: int = 10,
        per_minute: int = 100,
        per_hour: int = 1500,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._clock = clock
        self._lock = Lock()
        self._windows: List[WindowCounter] = [
            WindowCounter("second", per_second, 1.0),
            WindowCounter("minute", per_minute, 60.0),
            WindowCounter("hour", per_hour, 3600.0),
        ]

    def _roll(self) -> None:
        now = self._clock()
        for window in self._windows:
            window.roll(now)

    def is_limited(self) -> bool:
        """Return True if any window is currently at its ceiling."""
        with self._lock:
            self._roll()
            return any(w.exhausted for w in self._windows)

    def try_acquire(self) -> bool:
        """Take one slot in every window, or none if any window is full."""
        with self._lock:
            self._roll()
            if any(w.exhausted for w in self._windows):
                return False
            for window in self._windows:
                window.count += 1
            return True

    def reset(self) -> None:
        with self._lock:
            for window in self._windows:
                window.count = 0
                window.reset_time = 0.0

    def snapshot(self) -> Dict[str, str]:
        """Current usage per window as "count/limit"."""
        with self._lock:
            self._roll()
            return {w.name: f"{w.count}/{w.limit}" for w in self._windows}
