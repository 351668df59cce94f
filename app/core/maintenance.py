"""Periodic housekeeping for the in-memory state.

Each pass drops history past the retention horizon, expired suggestion
cache entries, idle rate-limit keys and operations the monitor never saw
finish.
"""

import logging
from collections.abc import Iterable

from app.core.history import history_service
from app.core.rate_limiter import RateLimiter
from app.core.resilience import performance_monitor
from app.core.suggestions import suggestion_engine

logger = logging.getLogger(__name__)


def run_maintenance(limiters: Iterable[RateLimiter] = ()) -> dict[str, int]:
    removed = {
        "history_entries": history_service.purge(),
        "cache_entries": suggestion_engine.purge_expired(),
        "rate_limit_keys": sum(limiter.purge_idle() for limiter in limiters),
        "stale_operations": performance_monitor.cleanup(),
    }
    logger.info(
        "Maintenance pass removed %s.", removed,
        extra={"context": {"event": "maintenance", **removed}},
    )
    return removed
