"""Unit tests for app/storage/cache.py."""

import pytest

from app.storage.cache import TTLCache
from tests.conftest import OTHER_OWNER_ID, OWNER_ID


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock) -> TTLCache:
    return TTLCache(60, max_entries=3, clock=clock)


class TestTTLCache:
    def test_hit_and_miss_counted(self, cache):
        assert cache.get((OWNER_ID, "mach")) is None
        cache.set((OWNER_ID, "mach"), ["machine"])
        assert cache.get((OWNER_ID, "mach")) == ["machine"]
        stats = cache.stats()
        assert (stats.hits, stats.misses) == (1, 1)
        assert stats.hit_rate == 0.5

    def test_entry_expires(self, cache, clock):
        cache.set((OWNER_ID, "mach"), ["machine"])
        clock.now = 60
        assert cache.get((OWNER_ID, "mach")) is None
        assert len(cache) == 0

    def test_per_entry_ttl(self, cache, clock):
        cache.set((OWNER_ID, "a"), 1, ttl=5)
        clock.now = 10
        assert cache.get((OWNER_ID, "a")) is None

    def test_oldest_evicted_when_full(self, cache):
        for i in range(4):
            cache.set((OWNER_ID, str(i)), i)
        assert len(cache) == 3
        assert cache.get((OWNER_ID, "0")) is None

    def test_invalidate_owner(self, cache):
        cache.set((OWNER_ID, "a"), 1)
        cache.set((OWNER_ID, "b"), 2)
        cache.set((OTHER_OWNER_ID, "a"), 3)
        assert cache.invalidate_owner(OWNER_ID) == 2
        assert cache.get((OTHER_OWNER_ID, "a")) == 3

    def test_purge_expired(self, cache, clock):
        cache.set((OWNER_ID, "a"), 1, ttl=5)
        cache.set((OWNER_ID, "b"), 2)
        clock.now = 10
        assert cache.purge_expired() == 1
        assert len(cache) == 1

    def test_clear_resets_stats(self, cache):
        cache.set((OWNER_ID, "a"), 1)
        cache.get((OWNER_ID, "a"))
        cache.clear()
        stats = cache.stats()
        assert (stats.entries, stats.hits, stats.misses) == (0, 0, 0)
