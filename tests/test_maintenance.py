"""Unit tests for app/core/maintenance.py."""

import asyncio
import threading
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from app.core.maintenance import run_maintenance
from app.core.rate_limiter import SlidingWindowRateLimiter
from app.core.resilience import performance_monitor
from app.main import _maintenance_loop
from app.models.schemas import SearchHistoryEntry
from app.storage.history_store import history_store
from tests.conftest import OWNER_ID


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def _entry(entry_id: str, days_ago: int) -> SearchHistoryEntry:
    return SearchHistoryEntry(
        id=entry_id,
        owner_id=OWNER_ID,
        query="neural",
        normalized_query="neural",
        created_at=datetime.now(timezone.utc) - timedelta(days=days_ago),
    )


class TestRunMaintenance:
    def test_purges_old_history(self):
        history_store.append(_entry("old", 400))
        history_store.append(_entry("new", 1))

        removed = run_maintenance()

        assert removed["history_entries"] == 1
        assert [e.id for e in history_store.entries_for_owner(OWNER_ID)] == ["new"]

    def test_purges_idle_rate_limit_keys(self):
        clock = FakeClock()
        limiter = SlidingWindowRateLimiter(5, 60, clock=clock)
        limiter.hit("user:a")
        clock.now = 120

        assert run_maintenance([limiter])["rate_limit_keys"] == 1

    def test_empty_state(self):
        performance_monitor.reset()
        assert run_maintenance() == {
            "history_entries": 0,
            "cache_entries": 0,
            "rate_limit_keys": 0,
            "stale_operations": 0,
        }


class TestMaintenanceLoop:
    def test_pass_runs_off_the_event_loop(self):
        threads: list[int] = []

        async def drive() -> None:
            task = asyncio.create_task(_maintenance_loop(0))
            while not threads:
                await asyncio.sleep(0.01)
            task.cancel()

        with patch(
            "app.main.run_maintenance",
            side_effect=lambda limiters: threads.append(threading.get_ident()),
        ):
            asyncio.run(asyncio.wait_for(drive(), timeout=5))

        assert threads[0] != threading.get_ident()
