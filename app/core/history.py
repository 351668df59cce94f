"""Search history recording and analytics.

Pure logic, no FastAPI imports.

Click and satisfaction updates target the most recent entry with the
same owner and normalized query inside a recency window.  Two identical
queries from the same user racing each other may attach the update to
either entry; that is accepted behaviour.
"""

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from app.config import settings
from app.core.errors import ValidationError
from app.core.validation import validate_int_range, validate_object_id, validate_rating
from app.models.schemas import (
    ClickRecord,
    PopularTerm,
    SearchAnalytics,
    SearchHistoryEntry,
    SearchMetadata,
)
from app.storage.history_store import SearchHistoryStore, history_store
from app.utils.logging_utils import preview
from app.utils.text_utils import normalize

logger = logging.getLogger(__name__)


@dataclass
class QueryAggregate:
    """All of an owner's searches for one normalized query."""

    normalized_query: str
    text: str                 # most recent raw spelling
    frequency: int
    last_searched: datetime
    avg_result_count: float


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SearchHistoryService:
    def __init__(
        self,
        store: SearchHistoryStore | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store if store is not None else history_store
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def record_search(
        self,
        owner_id: str,
        query: str,
        result_count: int,
        filters: dict[str, Any] | None = None,
        metadata: SearchMetadata | None = None,
        context: str | None = None,
    ) -> SearchHistoryEntry:
        """Append an entry for an executed query.  Zero results still count."""
        normalized = normalize(query)
        if not normalized:
            raise ValidationError("query", "Query has no searchable content.")

        entry = SearchHistoryEntry(
            id=uuid.uuid4().hex[:24],
            owner_id=owner_id,
            query=query.strip(),
            normalized_query=normalized,
            result_count=max(0, int(result_count)),
            filters=filters or {},
            metadata=metadata or SearchMetadata(),
            context=context,
            created_at=self.now(),
        )
        self.store.append(entry)

        logger.info(
            "Recorded search '%s' (%d results).", preview(query), entry.result_count,
            extra={"context": {
                "event": "search",
                "action": "record",
                "query_preview": preview(query),
                "result_count": entry.result_count,
                "strategy": entry.metadata.strategy,
            }},
        )
        return entry

    def record_click(
        self,
        owner_id: str,
        query: str,
        document_id: str,
        position: int = 0,
    ) -> bool:
        """Attach a click to the latest matching search in the click window.

        Returns False, without raising, when no entry matches.
        """
        document_id = validate_object_id(document_id, "document_id")
        position = validate_int_range(position, "position", 0, 10_000)
        normalized = normalize(query)
        now = self.now()

        def add_click(entry: SearchHistoryEntry) -> SearchHistoryEntry:
            click = ClickRecord(document_id=document_id, position=position, clicked_at=now)
            return entry.model_copy(update={"clicks": [*entry.clicks, click]})

        updated = self.store.update_latest(
            owner_id,
            normalized,
            now - timedelta(minutes=settings.click_window_minutes),
            add_click,
        )
        if updated is None:
            logger.debug("Click dropped: no recent search for '%s'.", preview(query))
            return False
        return True

    def update_satisfaction(self, owner_id: str, query: str, rating: int) -> bool:
        """Set the 1-5 rating of the latest matching search in the feedback window."""
        rating = validate_rating(rating)
        normalized = normalize(query)
        now = self.now()

        updated = self.store.update_latest(
            owner_id,
            normalized,
            now - timedelta(hours=settings.feedback_window_hours),
            lambda entry: entry.model_copy(update={"satisfaction": rating}),
        )
        if updated is None:
            logger.debug("Feedback dropped: no recent search for '%s'.", preview(query))
            return False
        return True

    def purge(self, retention_days: int | None = None) -> int:
        """Remove entries older than the retention horizon."""
        days = retention_days or settings.history_retention_days
        removed = self.store.purge_older_than(self.now() - timedelta(days=days))
        if removed:
            logger.info("Purged %d search history entries older than %d days.", removed, days)
        return removed

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def entries(self, owner_id: str, window_days: int | None = None) -> list[SearchHistoryEntry]:
        since = self.now() - timedelta(days=window_days) if window_days else None
        return self.store.entries_for_owner(owner_id, since)

    def get_history(
        self,
        owner_id: str,
        page: int = 1,
        limit: int = 20,
        window_days: int | None = None,
    ) -> tuple[list[SearchHistoryEntry], int]:
        """Newest-first page of entries and the total count."""
        entries = list(reversed(self.entries(owner_id, window_days)))
        start = (page - 1) * limit
        return entries[start : start + limit], len(entries)

    def recent_searches(self, owner_id: str, limit: int = 10) -> list[SearchHistoryEntry]:
        """Most recent entry per distinct normalized query, newest first."""
        seen: set[str] = set()
        recent: list[SearchHistoryEntry] = []
        for entry in reversed(self.store.entries_for_owner(owner_id)):
            if entry.normalized_query in seen:
                continue
            seen.add(entry.normalized_query)
            recent.append(entry)
            if len(recent) >= limit:
                break
        return recent

    def aggregate_queries(
        self,
        owner_id: str,
        window_days: int,
        matching: Callable[[str], bool] | None = None,
    ) -> list[QueryAggregate]:
        """Group the owner's searches in the window by normalized query."""
        groups: dict[str, list[SearchHistoryEntry]] = {}
        for entry in self.entries(owner_id, window_days):
            if matching is not None and not matching(entry.normalized_query):
                continue
            groups.setdefault(entry.normalized_query, []).append(entry)

        aggregates = []
        for normalized, entries in groups.items():
            latest = entries[-1]
            aggregates.append(QueryAggregate(
                normalized_query=normalized,
                text=latest.query,
                frequency=len(entries),
                last_searched=latest.created_at,
                avg_result_count=sum(e.result_count for e in entries) / len(entries),
            ))
        return aggregates

    def popular_terms(
        self,
        owner_id: str,
        limit: int = 10,
        window_days: int = 30,
    ) -> list[PopularTerm]:
        aggregates = self.aggregate_queries(owner_id, window_days)
        aggregates.sort(key=lambda a: (a.frequency, a.last_searched), reverse=True)
        return [
            PopularTerm(query=a.text, count=a.frequency, last_searched=a.last_searched)
            for a in aggregates[:limit]
        ]

    def get_analytics(self, owner_id: str, window_days: int = 30) -> SearchAnalytics:
        window_days = validate_int_range(window_days, "time_window", 1, 365)
        entries = self.entries(owner_id, window_days)
        if not entries:
            return SearchAnalytics(time_window_days=window_days)

        total = len(entries)
        rated = [e.satisfaction for e in entries if e.satisfaction is not None]
        clicks = sum(len(e.clicks) for e in entries)
        return SearchAnalytics(
            time_window_days=window_days,
            total_searches=total,
            unique_query_count=len({e.normalized_query for e in entries}),
            avg_result_count=round(sum(e.result_count for e in entries) / total, 2),
            avg_satisfaction=round(sum(rated) / len(rated), 2) if rated else None,
            total_clicks=clicks,
            click_through_rate=round(clicks / total, 4),
        )


# ---------------------------------------------------------------------------
# Module-level singleton.
# ---------------------------------------------------------------------------
history_service = SearchHistoryService()
