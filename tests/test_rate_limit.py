# tests/test_rate_limit.py
"""
Test the sliding-window rate limiter with a controllable clock.
"""

import asyncio

import pytest

from buildwise.security.rate_limit import (
    SlidingWindowRateLimiter,
    get_rate_limit_key,
    run_sweeper,
)


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def limiter(clock):
    return SlidingWindowRateLimiter(limit=3, window_seconds=60, clock=clock)


class TestSlidingWindow:

    def test_denies_call_over_limit(self, limiter):
        assert [limiter.hit("k") for _ in range(4)] == [True, True, True, False]
        assert limiter.remaining("k") == 0

    def test_allows_again_after_window(self, limiter, clock):
        for _ in range(3):
            limiter.hit("k")

        clock.advance(60)

        assert limiter.hit("k") is True

    def test_window_slides(self, limiter, clock):
        limiter.hit("k")
        clock.advance(30)
        limiter.hit("k")
        limiter.hit("k")
        clock.advance(31)

        # The first hit has aged out; the other two are still inside the window
        assert limiter.remaining("k") == 1
        assert limiter.hit("k") is True
        assert limiter.hit("k") is False

    def test_keys_are_independent(self, limiter):
        for _ in range(3):
            limiter.hit("a")

        assert limiter.hit("a") is False
        assert limiter.hit("b") is True

    def test_denied_hits_are_not_recorded(self, limiter, clock):
        for _ in range(3):
            limiter.hit("k")
        clock.advance(59)
        limiter.hit("k")
        clock.advance(1)

        assert limiter.remaining("k") == 3

    def test_reset(self, limiter):
        for _ in range(3):
            limiter.hit("k")

        limiter.reset("k")

        assert limiter.hit("k") is True

    @pytest.mark.parametrize("limit, window", [(0, 60), (1, 0)])
    def test_invalid_configuration(self, limit, window):
        with pytest.raises(ValueError):
            SlidingWindowRateLimiter(limit, window)


class TestSweep:

    def test_sweep_drops_idle_keys_only(self, limiter, clock):
        limiter.hit("old")
        clock.advance(45)
        limiter.hit("fresh")
        clock.advance(20)

        removed = limiter.sweep()

        assert removed == 1
        assert len(limiter) == 1
        assert limiter.remaining("fresh") == 2

    def test_sweep_then_allow(self, limiter, clock):
        for _ in range(3):
            limiter.hit("k")
        clock.advance(61)

        assert limiter.sweep() == 1
        assert limiter.hit("k") is True

    async def test_sweeper_task_runs_until_cancelled(self, limiter, clock):
        limiter.hit("k")
        clock.advance(120)

        task = asyncio.create_task(run_sweeper(limiter, 0.01))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert len(limiter) == 0


def test_rate_limit_key():
    assert get_rate_limit_key("resolve", "p1", "u1") == "resolve:p1:u1"
