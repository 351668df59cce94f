"""Search pipeline orchestrator.

Pure logic, no FastAPI imports.  Coordinates:
  validation → filter scope → fallback-guarded search → rank → paginate
  → highlight → history

Every search-class operation runs through the fallback manager, so an
engine failure degrades to a plain substring search over the same scope
instead of failing the request.
"""

import logging
import time
from collections.abc import Sequence

from app.config import settings
from app.core.advanced_query import advanced_matcher, parse_advanced_query, sort_hits
from app.core.errors import SearchError, ServiceUnavailableError, SearchTimeoutError
from app.core.filters import SearchScope, filter_manager
from app.core.indexer import search_relevant_chunks
from app.core.ingest_service import persist
from app.core.resilience import Deadline, fallback_manager, performance_monitor
from app.core.search import SearchHit, prepare_query, search_engine, substring_search
from app.core.suggestions import suggestion_engine
from app.core.validation import (
    validate_int_range,
    validate_pagination,
    validate_query,
    validate_sort,
    validate_strategies,
)
from app.models.schemas import (
    AdvancedSearchRequest,
    AdvancedSearchResponse,
    Chunk,
    ContextRequest,
    ContextResponse,
    ContextSource,
    SearchFilters,
    SearchMetadata,
    SearchMetrics,
    SearchResponse,
    SearchResultItem,
)
from app.storage.document_store import document_store
from app.utils.logging_utils import preview
from app.utils.pagination import paginate
from app.utils.text_utils import create_snippet, highlight_terms, normalize

logger = logging.getLogger(__name__)

CONTEXT_DOCUMENTS = 10
CONTEXT_CHUNKS_PER_DOCUMENT = 3


# ------------------------------------------------------------------
# Fallbacks
# ------------------------------------------------------------------


def _fallback_search(args: tuple[str, SearchScope]) -> tuple[list[SearchHit], int]:
    query, scope = args
    candidates = document_store.find(scope)
    return substring_search(query, candidates), len(candidates)


def _fallback_context(args: tuple[str, SearchScope, int]) -> list[tuple[float, int, SearchHit, Chunk]]:
    """First chunk of each substring match, in match order."""
    query, scope, max_chunks = args
    hits = substring_search(query, document_store.find(scope), max_results=max_chunks)
    return [
        (hit.score, rank, hit, hit.document.chunks[0])
        for rank, hit in enumerate(hits)
        if hit.document.chunks
    ]


def register_fallbacks() -> None:
    fallback_manager.register_fallback(
        "search", _fallback_search, timeout=settings.fallback_timeout_seconds,
    )
    fallback_manager.register_fallback(
        "advanced_search", _fallback_search, timeout=settings.fallback_timeout_seconds,
    )
    fallback_manager.register_fallback(
        "context", _fallback_context, timeout=settings.fallback_timeout_seconds,
    )


register_fallbacks()


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _strategy_label(strategies: Sequence[str], fallback_used: bool) -> str:
    if fallback_used:
        return "fallback"
    return strategies[0] if len(strategies) == 1 else "hybrid"


def _to_result(hit: SearchHit, terms: Sequence[str]) -> SearchResultItem:
    document = hit.document
    return SearchResultItem(
        document_id=document.id,
        title=document.title,
        highlighted_title=highlight_terms(document.title, list(terms)),
        original_filename=document.original_filename,
        source_kind=document.source_kind,
        tags=document.tags,
        is_public=document.is_public,
        created_at=document.created_at,
        score=hit.score,
        strategy=hit.strategy,
        snippet=create_snippet(document.content, list(terms)),
        match_details=hit.match_details,
        usage=document.usage,
    )


def _record(
    owner_id: str,
    query: str,
    result_count: int,
    filters: dict,
    strategy: str,
    elapsed_ms: float,
    user_agent: str | None,
    ip_address: str | None,
) -> None:
    """Record into history; a history failure never fails the search."""
    try:
        suggestion_engine.record_search(
            owner_id,
            query,
            result_count,
            filters,
            SearchMetadata(
                strategy=strategy,
                response_time_ms=round(elapsed_ms, 2),
                user_agent=user_agent,
                ip_address=ip_address,
            ),
        )
    except (SearchError, ValueError) as exc:
        logger.warning("Could not record search history: %s", exc)


def _log_search(operation: str, query: str, result_count: int, elapsed_ms: float, fallback_used: bool) -> None:
    level = logging.WARNING if elapsed_ms > settings.slow_query_ms else logging.INFO
    logger.log(
        level,
        "%s '%s': %d results in %.0f ms%s",
        operation, preview(query), result_count, elapsed_ms,
        " (fallback)" if fallback_used else "",
        extra={"context": {
            "event": "search",
            "operation": operation,
            "query_preview": preview(query),
            "result_count": result_count,
            "duration_ms": round(elapsed_ms, 2),
            "fallback_used": fallback_used,
            "slow": elapsed_ms > settings.slow_query_ms,
        }},
    )


# ------------------------------------------------------------------
# Search
# ------------------------------------------------------------------


def search_documents(
    owner_id: str,
    query: str,
    filters: SearchFilters | None = None,
    strategies: list[str] | None = None,
    case_sensitive: bool = False,
    min_score: float | None = None,
    page: int = 1,
    limit: int = 10,
    record: bool = True,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> SearchResponse:
    """Ranked, paginated search over the caller's scope.

    Raises ``ValidationError`` for bad input and
    ``ServiceUnavailableError`` when both the engine and the fallback fail.
    """
    start_time = time.perf_counter()

    query = validate_query(query)
    page, limit = validate_pagination(page, limit)
    strategies = validate_strategies(strategies)
    scope = filter_manager.build_scope(owner_id, filters)
    filter_summary = filter_manager.summarize(scope)

    def primary(deadline: Deadline) -> tuple[list[SearchHit], int]:
        candidates = document_store.find(scope)
        deadline.check()
        hits = search_engine.search(
            query,
            candidates,
            strategies=strategies,
            case_sensitive=case_sensitive,
            min_score=min_score,
            deadline=deadline,
        )
        return hits, len(candidates)

    try:
        with performance_monitor.track("search", strategies=",".join(strategies)):
            outcome = fallback_manager.execute_with_fallback(
                "search",
                primary,
                fallback_input=(query, scope),
                timeout=settings.search_timeout_seconds,
            )
    except (ServiceUnavailableError, SearchTimeoutError):
        if record:
            elapsed = (time.perf_counter() - start_time) * 1000
            _record(owner_id, query, 0, filter_summary, "failed", elapsed, user_agent, ip_address)
        raise

    hits, total_candidates = outcome.value
    page_hits, pagination = paginate(hits, page, limit)
    terms = prepare_query(query).terms
    results = [_to_result(hit, terms) for hit in page_hits]

    elapsed = (time.perf_counter() - start_time) * 1000
    strategy = _strategy_label(strategies, outcome.fallback_used)
    if record:
        _record(owner_id, query, len(hits), filter_summary, strategy, elapsed, user_agent, ip_address)
    _log_search("Search", query, len(hits), elapsed, outcome.fallback_used)

    warnings = filter_manager.combination_warnings(scope)
    if outcome.fallback_used:
        warnings.append("Results may be incomplete: a simplified search was used.")

    return SearchResponse(
        query=query,
        normalized_query=normalize(query),
        results=results,
        pagination=pagination,
        metrics=SearchMetrics(
            response_time_ms=round(elapsed, 2),
            strategies=["fallback"] if outcome.fallback_used else strategies,
            total_candidates=total_candidates,
            total_results=len(hits),
            fallback_used=outcome.fallback_used,
        ),
        filters=filter_summary,
        warnings=warnings,
    )


def advanced_search(
    owner_id: str,
    request: AdvancedSearchRequest,
    record: bool = True,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> AdvancedSearchResponse:
    """Boolean search with phrase / AND / OR / NOT and custom sort order."""
    start_time = time.perf_counter()

    query = validate_query(request.query)
    page, limit = validate_pagination(request.page, request.limit)
    sort_by, sort_order = validate_sort(request.sort_by, request.sort_order)
    parsed = parse_advanced_query(query)
    scope = filter_manager.build_scope(owner_id, request.filters)
    filter_summary = filter_manager.summarize(scope)

    positive = " ".join(parsed.phrases + parsed.and_terms + parsed.or_terms)

    def primary(deadline: Deadline) -> tuple[list[SearchHit], int]:
        candidates = document_store.find(scope)
        deadline.check()
        return advanced_matcher.match(parsed, candidates, deadline), len(candidates)

    try:
        with performance_monitor.track("search", mode="advanced"):
            outcome = fallback_manager.execute_with_fallback(
                "advanced_search",
                primary,
                fallback_input=(positive, scope),
                timeout=settings.advanced_search_timeout_seconds,
            )
    except (ServiceUnavailableError, SearchTimeoutError):
        if record:
            elapsed = (time.perf_counter() - start_time) * 1000
            _record(owner_id, query, 0, filter_summary, "failed", elapsed, user_agent, ip_address)
        raise

    hits, total_candidates = outcome.value
    hits = sort_hits(hits, sort_by, sort_order)
    page_hits, pagination = paginate(hits, page, limit)
    terms = [t for phrase in parsed.phrases for t in phrase.split()]
    terms += parsed.and_terms + parsed.or_terms
    results = [_to_result(hit, terms) for hit in page_hits]

    elapsed = (time.perf_counter() - start_time) * 1000
    if record:
        _record(
            owner_id, query, len(hits), filter_summary,
            "fallback" if outcome.fallback_used else "advanced",
            elapsed, user_agent, ip_address,
        )
    _log_search("Advanced search", query, len(hits), elapsed, outcome.fallback_used)

    return AdvancedSearchResponse(
        query=query,
        parsed_query=parsed,
        results=results,
        pagination=pagination,
        metrics=SearchMetrics(
            response_time_ms=round(elapsed, 2),
            strategies=["fallback"] if outcome.fallback_used else ["advanced"],
            total_candidates=total_candidates,
            total_results=len(hits),
            fallback_used=outcome.fallback_used,
        ),
        filters=filter_summary,
        sort_by=sort_by,
        sort_order=sort_order,
    )


# ------------------------------------------------------------------
# Context retrieval
# ------------------------------------------------------------------


def get_relevant_context(owner_id: str, request: ContextRequest) -> ContextResponse:
    """Concatenate the most relevant chunks for *query* across documents.

    Top documents contribute up to three chunks each; chunks are then
    ranked globally and appended as ``[From: <title>]`` blocks until
    ``max_chunks`` or ``max_context_length`` is reached.
    """
    start_time = time.perf_counter()

    query = validate_query(request.query)
    max_chunks = validate_int_range(request.max_chunks, "max_chunks", 1, 20)
    max_length = validate_int_range(request.max_context_length, "max_context_length", 100, 10000)
    scope = filter_manager.build_scope(owner_id, request.filters)

    def primary(deadline: Deadline) -> list[tuple[float, int, SearchHit, Chunk]]:
        candidates = document_store.find(scope)
        deadline.check()
        hits = search_engine.search(
            query,
            candidates,
            strategies=["exact", "fuzzy", "semantic"],
            max_results=CONTEXT_DOCUMENTS,
            deadline=deadline,
        )
        ranked = []
        for rank, hit in enumerate(hits):
            deadline.check()
            for chunk, score in search_relevant_chunks(hit.document, query, CONTEXT_CHUNKS_PER_DOCUMENT):
                ranked.append((score, rank, hit, chunk))
        ranked.sort(key=lambda item: (-item[0], item[1], item[3].index))
        return ranked

    with performance_monitor.track("context"):
        outcome = fallback_manager.execute_with_fallback(
            "context",
            primary,
            fallback_input=(query, scope, max_chunks),
            timeout=settings.context_timeout_seconds,
        )
    ranked = outcome.value

    context = ""
    sources: list[ContextSource] = []
    for score, _, hit, chunk in ranked[:max_chunks]:
        block = f"[From: {hit.document.title}]\n{chunk.content}\n\n"
        if len(context) + len(block) > max_length:
            if not context:
                context = block[:max_length]
                sources.append(ContextSource(
                    document_id=hit.document.id, title=hit.document.title,
                    chunk_index=chunk.index, score=round(score, 4),
                ))
            break
        context += block
        sources.append(ContextSource(
            document_id=hit.document.id, title=hit.document.title,
            chunk_index=chunk.index, score=round(score, 4),
        ))

    if request.usage_counter is not None and sources:
        for document_id in dict.fromkeys(s.document_id for s in sources):
            document_store.record_usage(document_id, request.usage_counter)
        persist()

    elapsed = (time.perf_counter() - start_time) * 1000
    logger.info(
        "Context for '%s': %d of %d chunks, %d chars.",
        preview(query), len(sources), len(ranked), len(context.strip()),
        extra={"context": {
            "event": "search",
            "operation": "context",
            "query_preview": preview(query),
            "chunks_used": len(sources),
            "chunks_found": len(ranked),
            "duration_ms": round(elapsed, 2),
            "fallback_used": outcome.fallback_used,
        }},
    )

    return ContextResponse(
        query=query,
        context=context.strip(),
        sources=sources,
        total_chunks=len(ranked),
        relevant_chunks=len(sources),
        response_time_ms=round(elapsed, 2),
        fallback_used=outcome.fallback_used,
    )
