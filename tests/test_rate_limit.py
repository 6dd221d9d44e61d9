"""
Tests for the three-tier fixed-window email rate limiter.

Tests cover:
- Ceiling enforcement per window
- Fixed-window reset once the reset time has passed
- Snapshot rendering
- Concurrent acquisition never overshooting a ceiling
"""

import threading

from app.core.rate_limit import RateLimiter, WindowCounter


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestWindowCounter:
    def test_roll_resets_after_reset_time(self):
        """A window past its reset time starts over one length ahead."""
        window = WindowCounter("second", limit=2, length_seconds=1.0, count=2, reset_time=10.0)

        window.roll(10.0)
        assert window.count == 2  # not yet past

        window.roll(10.5)
        assert window.count == 0
        assert window.reset_time == 11.5

    def test_exhausted_at_limit(self):
        window = WindowCounter("minute", limit=3, length_seconds=60.0, count=3)
        assert window.exhausted is True


class TestCeilings:
    def test_per_second_ceiling(self):
        """ceiling+1 rapid calls: the last one is rejected."""
        clock = FakeClock()
        limiter = RateLimiter(per_second=10, per_minute=100, per_hour=1500, clock=clock)

        results = [limiter.try_acquire() for _ in range(11)]

        assert results[:10] == [True] * 10
        assert results[10] is False
        assert limiter.is_limited() is True

    def test_per_minute_ceiling_spans_second_windows(self):
        """The minute window keeps counting across second resets."""
        clock = FakeClock()
        limiter = RateLimiter(per_second=10, per_minute=25, per_hour=1500, clock=clock)

        acquired = 0
        for _ in range(5):
            acquired += sum(limiter.try_acquire() for _ in range(10))
            clock.advance(1.1)

        assert acquired == 25

    def test_per_hour_ceiling(self):
        clock = FakeClock()
        limiter = RateLimiter(per_second=100, per_minute=1000, per_hour=5, clock=clock)

        assert sum(limiter.try_acquire() for _ in range(10)) == 5

        clock.advance(61)
        assert limiter.try_acquire() is False

        clock.advance(3600)
        assert limiter.try_acquire() is True

    def test_refused_acquire_takes_no_slot(self):
        """A refusal does not consume capacity in the other windows."""
        clock = FakeClock()
        limiter = RateLimiter(per_second=1, per_minute=100, per_hour=1500, clock=clock)

        limiter.try_acquire()
        for _ in range(5):
            assert limiter.try_acquire() is False

        assert limiter.snapshot()["minute"] == "1/100"


class TestFixedWindowReset:
    def test_second_window_resets(self):
        """After the second window rolls over, sends are permitted again."""
        clock = FakeClock()
        limiter = RateLimiter(per_second=2, per_minute=100, per_hour=1500, clock=clock)

        assert limiter.try_acquire() and limiter.try_acquire()
        assert limiter.try_acquire() is False

        clock.advance(1.01)

        assert limiter.try_acquire() is True

    def test_reset_clears_all_windows(self):
        clock = FakeClock()
        limiter = RateLimiter(per_second=1, per_minute=1, per_hour=1, clock=clock)
        limiter.try_acquire()

        limiter.reset()

        assert limiter.is_limited() is False
        assert limiter.try_acquire() is True


class TestSnapshot:
    def test_snapshot_format(self):
        """Snapshot renders count/limit per window."""
        limiter = RateLimiter(per_second=10, per_minute=100, per_hour=1500, clock=FakeClock())
        limiter.try_acquire()
        limiter.try_acquire()

        assert limiter.snapshot() == {"second": "2/10", "minute": "2/100", "hour": "2/1500"}


class TestConcurrency:
    def test_concurrent_acquire_never_exceeds_ceiling(self):
        """Many threads racing for slots get exactly the ceiling."""
        limiter = RateLimiter(per_second=10, per_minute=100, per_hour=1500, clock=FakeClock())
        granted = []
        barrier = threading.Barrier(40)

        def worker():
            barrier.wait()
            granted.append(limiter.try_acquire())

        threads = [threading.Thread(target=worker) for _ in range(40)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert granted.count(True) == 10
