"""Sliding-window request rate limiting.

Pure logic, no FastAPI imports.  The limiter is an injected dependency:
the API layer asks for one through ``Depends`` and tests substitute an
instance driven by a fake clock.
"""

import logging
import math
import threading
import time
from collections import deque
from collections.abc import Callable
from typing import NamedTuple, Protocol

from app.core import metrics
from app.core.errors import RateLimitError

logger = logging.getLogger(__name__)


class RateLimitStatus(NamedTuple):
    """Outcome of one rate-limit check."""
    allowed: bool
    limit: int
    remaining: int
    retry_after: int    # seconds; 0 when allowed


class RateLimiter(Protocol):
    def hit(self, key: str) -> RateLimitStatus: ...

    def enforce(self, key: str) -> RateLimitStatus: ...

    def reset(self) -> None: ...

    def purge_idle(self) -> int: ...


class SlidingWindowRateLimiter:
    """At most ``max_requests`` per key within any ``window_seconds`` span.

    Rejected requests are not counted against the window.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        name: str = "default",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.name = name
        self._clock = clock
        self._hits: dict[str, deque[float]] = {}
        self._lock = threading.Lock()

    def hit(self, key: str) -> RateLimitStatus:
        """Count one request for *key* if the window allows it."""
        now = self._clock()
        cutoff = now - self.window_seconds

        with self._lock:
            hits = self._hits.setdefault(key, deque())
            while hits and hits[0] <= cutoff:
                hits.popleft()

            if len(hits) >= self.max_requests:
                retry_after = max(1, math.ceil(hits[0] + self.window_seconds - now))
                return RateLimitStatus(False, self.max_requests, 0, retry_after)

            hits.append(now)
            return RateLimitStatus(True, self.max_requests, self.max_requests - len(hits), 0)

    def enforce(self, key: str) -> RateLimitStatus:
        """Like ``hit`` but raises ``RateLimitError`` when the request is rejected."""
        status = self.hit(key)
        if not status.allowed:
            metrics.rate_limited_total.labels(limiter=self.name).inc()
            logger.warning(
                "Rate limit '%s' exceeded; retry after %ds.", self.name, status.retry_after,
                extra={"context": {
                    "event": "rate_limit",
                    "limiter": self.name,
                    "limit": self.max_requests,
                    "retry_after": status.retry_after,
                }},
            )
            raise RateLimitError(self.max_requests, self.window_seconds, status.retry_after)
        return status

    def purge_idle(self) -> int:
        """Drop keys with no hits inside the current window."""
        cutoff = self._clock() - self.window_seconds
        with self._lock:
            idle = [k for k, hits in self._hits.items() if not hits or hits[-1] <= cutoff]
            for key in idle:
                del self._hits[key]
        return len(idle)

    def reset(self) -> None:
        with self._lock:
            self._hits = {}
