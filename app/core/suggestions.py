"""Autocomplete suggestions from document content and personal history.

Pure logic, no FastAPI imports.

Relevance formulas (``p`` is the normalized partial query):

  content  10 for a prefix match
           + max(0, 5 - 0.1 * completion length)
           + 2 * ln(frequency + 1)
           + 3 when ``p`` starts a word of the suggestion
  history  8 for a prefix match, else 4 when ``p`` is contained
           + 3 * ln(frequency + 1)
           + max(0, 5 - 0.1 * days since last searched)
           + min(3, ln(avg result count + 1)) when avg result count > 0
  recent   max(0, 5 - 0.1 * hours ago) + min(2, ln(result count + 1))

Content frequency counts distinct documents: 1 per document whose body
contains the term, 0.5 per document where it only appears in the title.
"""

import logging
import math
import re
import time
from collections.abc import Callable

from app.config import settings
from app.core import metrics
from app.core.history import SearchHistoryService, history_service
from app.core.resilience import (
    Deadline,
    FallbackManager,
    PerformanceMonitor,
    fallback_manager,
    performance_monitor,
)
from app.models.schemas import CacheStats, Document, SearchMetadata, Suggestion
from app.storage.cache import TTLCache
from app.storage.document_store import DocumentStore, document_store
from app.utils.logging_utils import preview
from app.utils.text_utils import normalize

logger = logging.getLogger(__name__)

CONTENT_SHARE = 0.6
HISTORY_SHARE = 0.4
FALLBACK_RECENT_COUNT = 5
FALLBACK_SCORE = 0.5

_TYPE_PRIORITY = {"content": 3, "history": 2, "recent": 1}


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------


def content_relevance(term: str, partial: str, frequency: float) -> float:
    score = 0.0
    if term.startswith(partial):
        score += 10.0
    completion_length = max(0, len(term) - len(partial))
    score += max(0.0, 5.0 - completion_length * 0.1)
    score += math.log(frequency + 1) * 2
    if re.search(rf"\b{re.escape(partial)}", term):
        score += 3.0
    return score


def history_relevance(
    query: str,
    partial: str,
    frequency: int,
    days_since: float,
    avg_result_count: float,
) -> float:
    score = 0.0
    if query.startswith(partial):
        score += 8.0
    elif partial in query:
        score += 4.0
    score += math.log(frequency + 1) * 3
    score += max(0.0, 5.0 - days_since * 0.1)
    if avg_result_count > 0:
        score += min(3.0, math.log(avg_result_count + 1))
    return score


def recent_relevance(hours_ago: float, result_count: int) -> float:
    return max(0.0, 5.0 - hours_ago * 0.1) + min(2.0, math.log(result_count + 1))


def rank_suggestions(suggestions: list[Suggestion], limit: int) -> list[Suggestion]:
    """Dedupe by normalized text (higher score wins) and order.

    Order: score desc, frequency desc, content > history > recent, text.
    """
    best: dict[str, Suggestion] = {}
    for suggestion in suggestions:
        key = normalize(suggestion.text)
        current = best.get(key)
        if current is None or (
            suggestion.relevance_score,
            _TYPE_PRIORITY[suggestion.type],
        ) > (current.relevance_score, _TYPE_PRIORITY[current.type]):
            best[key] = suggestion

    ranked = sorted(
        best.values(),
        key=lambda s: (-s.relevance_score, -s.frequency, -_TYPE_PRIORITY[s.type], s.text),
    )
    return ranked[:limit]


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class SuggestionEngine:
    def __init__(
        self,
        store: DocumentStore | None = None,
        history: SearchHistoryService | None = None,
        cache: TTLCache | None = None,
        fallbacks: FallbackManager | None = None,
        monitor: PerformanceMonitor | None = None,
        cache_clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store if store is not None else document_store
        self.history = history if history is not None else history_service
        self.cache = cache if cache is not None else TTLCache(
            settings.suggestion_cache_ttl_seconds,
            settings.suggestion_cache_max_entries,
            clock=cache_clock,
        )
        self.fallbacks = fallbacks if fallbacks is not None else fallback_manager
        self.monitor = monitor if monitor is not None else performance_monitor
        self.fallbacks.register_fallback(
            "suggestions",
            self.fallback_suggestions,
            timeout=settings.suggestion_timeout_seconds,
        )

    def clamp_limit(self, max_suggestions: int | None) -> int:
        """Caller-supplied limit, bounded by the hard ceiling."""
        limit = max_suggestions or settings.suggestion_max
        return max(1, min(limit, settings.suggestion_hard_cap))

    def get_suggestions(
        self,
        owner_id: str,
        partial_query: str,
        max_suggestions: int | None = None,
        time_window_days: int | None = None,
        include_content: bool = True,
        include_history: bool = True,
    ) -> list[Suggestion]:
        """Ranked suggestions for *partial_query*; never raises for "no matches".

        Partial queries below the minimum length return recent searches.
        """
        limit = self.clamp_limit(max_suggestions)
        window = time_window_days or settings.suggestion_time_window_days
        normalized = normalize(partial_query)

        if len(normalized) < settings.suggestion_min_query_length:
            return self.recent_suggestions(owner_id, limit)

        key = (owner_id, normalized, limit, window, include_content, include_history)
        cached = self.cache.get(key)
        if cached is not None:
            metrics.suggestion_cache_requests_total.labels(result="hit").inc()
            return list(cached)
        metrics.suggestion_cache_requests_total.labels(result="miss").inc()

        started = time.perf_counter()
        with self.monitor.track("suggestions"):
            outcome = self.fallbacks.execute_with_fallback(
                "suggestions",
                lambda deadline: self._compute(
                    owner_id, normalized, limit, window,
                    include_content, include_history, deadline,
                ),
                fallback_input=(owner_id, limit),
                timeout=settings.suggestion_timeout_seconds,
            )

        suggestions = outcome.value
        if not outcome.fallback_used:
            self.cache.set(key, list(suggestions))

        logger.info(
            "Generated %d suggestions for '%s'.", len(suggestions), preview(partial_query),
            extra={"context": {
                "event": "suggestion",
                "query_preview": preview(partial_query),
                "count": len(suggestions),
                "fallback_used": outcome.fallback_used,
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
            }},
        )
        return suggestions

    def _compute(
        self,
        owner_id: str,
        partial: str,
        limit: int,
        window_days: int,
        include_content: bool,
        include_history: bool,
        deadline: Deadline,
    ) -> list[Suggestion]:
        candidates: list[Suggestion] = []
        if include_content:
            candidates += self.content_suggestions(
                owner_id, partial, math.ceil(limit * CONTENT_SHARE), deadline,
            )
        deadline.check()
        if include_history:
            candidates += self.history_suggestions(
                owner_id, partial, math.ceil(limit * HISTORY_SHARE), window_days,
            )

        ranked = rank_suggestions(candidates, limit)
        if not ranked:
            return self.recent_suggestions(owner_id, limit)
        return ranked

    def content_suggestions(
        self,
        owner_id: str,
        partial: str,
        limit: int,
        deadline: Deadline | None = None,
    ) -> list[Suggestion]:
        """Index terms of the owner's documents that extend *partial*."""
        deadline = deadline or Deadline.unbounded("suggestions")
        frequency: dict[str, float] = {}

        for document in self.store.find(lambda d: d.owner_id == owner_id):
            deadline.check()
            body, title_only = _completions(document, partial)
            for term in body:
                frequency[term] = frequency.get(term, 0.0) + 1.0
            for term in title_only:
                frequency[term] = frequency.get(term, 0.0) + 0.5

        suggestions = [
            Suggestion(
                text=term,
                type="content",
                source="document_content",
                frequency=freq,
                relevance_score=round(content_relevance(term, partial, freq), 4),
            )
            for term, freq in frequency.items()
        ]
        return rank_suggestions(suggestions, limit)

    def history_suggestions(
        self,
        owner_id: str,
        partial: str,
        limit: int,
        window_days: int,
    ) -> list[Suggestion]:
        """Past queries by the owner that start with or contain *partial*."""
        now = self.history.now()
        suggestions = []
        for aggregate in self.history.aggregate_queries(
            owner_id, window_days, matching=lambda q: partial in q,
        ):
            days_since = (now - aggregate.last_searched).total_seconds() / 86400
            suggestions.append(Suggestion(
                text=aggregate.text,
                type="history",
                source="search_history",
                frequency=aggregate.frequency,
                relevance_score=round(history_relevance(
                    aggregate.normalized_query,
                    partial,
                    aggregate.frequency,
                    days_since,
                    aggregate.avg_result_count,
                ), 4),
                last_searched=aggregate.last_searched,
            ))
        return rank_suggestions(suggestions, limit)

    def recent_suggestions(self, owner_id: str, limit: int) -> list[Suggestion]:
        """The owner's most recent distinct searches, newest first."""
        now = self.history.now()
        suggestions = []
        for entry in self.history.recent_searches(owner_id, limit):
            hours_ago = (now - entry.created_at).total_seconds() / 3600
            suggestions.append(Suggestion(
                text=entry.query,
                type="recent",
                source="recent_search",
                frequency=1,
                relevance_score=round(recent_relevance(hours_ago, entry.result_count), 4),
                last_searched=entry.created_at,
            ))
        return suggestions

    def fallback_suggestions(self, args: tuple[str, int]) -> list[Suggestion]:
        owner_id, limit = args
        recent = self.history.recent_searches(owner_id, min(limit, FALLBACK_RECENT_COUNT))
        return [
            Suggestion(
                text=entry.query,
                type="recent",
                source="recent_search",
                frequency=1,
                relevance_score=FALLBACK_SCORE,
                last_searched=entry.created_at,
            )
            for entry in recent
        ]

    # ------------------------------------------------------------------
    # History passthrough (keeps the cache coherent)
    # ------------------------------------------------------------------

    def record_search(
        self,
        owner_id: str,
        query: str,
        result_count: int,
        filters: dict | None = None,
        metadata: SearchMetadata | None = None,
        context: str | None = None,
    ):
        entry = self.history.record_search(
            owner_id, query, result_count, filters, metadata, context,
        )
        self.cache.invalidate_owner(owner_id)
        return entry

    def record_click(self, owner_id: str, query: str, document_id: str, position: int = 0) -> bool:
        return self.history.record_click(owner_id, query, document_id, position)

    def update_satisfaction(self, owner_id: str, query: str, rating: int) -> bool:
        return self.history.update_satisfaction(owner_id, query, rating)

    # ------------------------------------------------------------------
    # Cache management
    # ------------------------------------------------------------------

    def clear_cache_for_user(self, owner_id: str) -> int:
        return self.cache.invalidate_owner(owner_id)

    def clear_cache(self) -> None:
        self.cache.clear()

    def purge_expired(self) -> int:
        return self.cache.purge_expired()

    def cache_stats(self) -> CacheStats:
        return self.cache.stats()


def _completions(document: Document, partial: str) -> tuple[set[str], set[str]]:
    """Terms extending *partial*: those in the body, and those only in the title."""
    body = {t for t in document.terms if len(t) > len(partial) and t.startswith(partial)}
    title_only = {
        t for t in document.title_terms
        if len(t) > len(partial) and t.startswith(partial) and t not in body
    }
    return body, title_only


# ---------------------------------------------------------------------------
# Module-level singleton.
# ---------------------------------------------------------------------------
suggestion_engine = SuggestionEngine()
