"""Unit tests for app/core/rate_limiter.py."""

import pytest

from app.core.errors import RateLimitError
from app.core.rate_limiter import SlidingWindowRateLimiter


class FakeClock:
    def __init__(self, now: float = 100.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def limiter(clock) -> SlidingWindowRateLimiter:
    return SlidingWindowRateLimiter(3, 60, name="test", clock=clock)


class TestSlidingWindow:
    def test_allows_up_to_limit(self, limiter):
        statuses = [limiter.hit("user") for _ in range(3)]
        assert all(s.allowed for s in statuses)
        assert [s.remaining for s in statuses] == [2, 1, 0]

    def test_rejects_over_limit_with_retry_after(self, limiter, clock):
        for _ in range(3):
            limiter.hit("user")
        clock.now += 20
        status = limiter.hit("user")
        assert status.allowed is False
        assert status.retry_after == 40

    def test_window_slides(self, limiter, clock):
        for _ in range(3):
            limiter.hit("user")
        clock.now += 61
        assert limiter.hit("user").allowed is True

    def test_keys_are_independent(self, limiter):
        for _ in range(3):
            limiter.hit("a")
        assert limiter.hit("b").allowed is True

    def test_rejections_do_not_extend_window(self, limiter, clock):
        for _ in range(3):
            limiter.hit("user")
        for _ in range(5):
            limiter.hit("user")
        clock.now += 60
        assert limiter.hit("user").allowed is True

    def test_retry_after_is_at_least_one(self, limiter, clock):
        for _ in range(3):
            limiter.hit("user")
        clock.now += 59.9
        assert limiter.hit("user").retry_after == 1


class TestEnforce:
    def test_raises_rate_limit_error(self, limiter):
        for _ in range(3):
            limiter.enforce("user")
        with pytest.raises(RateLimitError) as exc_info:
            limiter.enforce("user")
        assert exc_info.value.retry_after > 0
        assert exc_info.value.status_code == 429


class TestMaintenance:
    def test_purge_idle(self, limiter, clock):
        limiter.hit("a")
        clock.now += 120
        limiter.hit("b")
        assert limiter.purge_idle() == 1

    def test_reset(self, limiter):
        for _ in range(3):
            limiter.hit("user")
        limiter.reset()
        assert limiter.hit("user").allowed is True

    def test_invalid_configuration(self):
        with pytest.raises(ValueError):
            SlidingWindowRateLimiter(0, 60)
        with pytest.raises(ValueError):
            SlidingWindowRateLimiter(1, 0)
