"""Thread-safe in-memory key/value cache with TTL eviction.

Keys are tuples whose first element is the owner id, which is what
per-user invalidation keys on.  Swapping this class for a shared cache
only requires the same get/set/invalidate_owner/clear/stats surface.
"""

import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Hashable
from typing import Any

from app.models.schemas import CacheStats

logger = logging.getLogger(__name__)


class TTLCache:
    """Keyed map with per-entry expiry and a bounded size (oldest evicted first)."""

    def __init__(
        self,
        ttl_seconds: float,
        max_entries: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._data: OrderedDict[Hashable, tuple[float, Any]] = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, key: Hashable) -> Any | None:
        """Return the cached value, or None if absent or expired."""
        now = self._clock()
        with self._lock:
            item = self._data.get(key)
            if item is None:
                self._misses += 1
                return None
            expires_at, value = item
            if expires_at <= now:
                del self._data[key]
                self._misses += 1
                return None
            self._hits += 1
            return value

    def set(self, key: Hashable, value: Any, ttl: float | None = None) -> None:
        expires_at = self._clock() + (ttl if ttl is not None else self.ttl_seconds)
        with self._lock:
            self._data[key] = (expires_at, value)
            self._data.move_to_end(key)
            while len(self._data) > self.max_entries:
                self._data.popitem(last=False)

    def invalidate_owner(self, owner_id: str) -> int:
        """Drop every entry whose key starts with *owner_id*.  Returns the count."""
        with self._lock:
            keys = [
                k for k in self._data
                if isinstance(k, tuple) and k and k[0] == owner_id
            ]
            for key in keys:
                del self._data[key]
        if keys:
            logger.debug(
                "Invalidated %d cache entries for owner.", len(keys),
                extra={"context": {"event": "cache", "action": "invalidate", "entries": len(keys)}},
            )
        return len(keys)

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [k for k, (expires_at, _) in self._data.items() if expires_at <= now]
            for key in expired:
                del self._data[key]
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()
            self._hits = 0
            self._misses = 0

    def stats(self) -> CacheStats:
        with self._lock:
            lookups = self._hits + self._misses
            return CacheStats(
                entries=len(self._data),
                hits=self._hits,
                misses=self._misses,
                hit_rate=self._hits / lookups if lookups else 0.0,
                max_entries=self.max_entries,
                ttl_seconds=self.ttl_seconds,
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)
