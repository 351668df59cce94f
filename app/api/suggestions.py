"""Suggestion and search-history API endpoints.

Thin HTTP layer.  All writes go through the suggestion engine so the
caller's cached suggestions are dropped when their history changes.
"""

import logging
import time

from fastapi import APIRouter, Depends, Query

from app.api.dependencies import client_info, get_owner_id, limit_suggestions
from app.core.history import history_service
from app.core.suggestions import suggestion_engine
from app.core.validation import validate_int_range, validate_query
from app.models.schemas import (
    AckResponse,
    ClickRequest,
    FeedbackRequest,
    HistoryItem,
    HistoryResponse,
    PopularTerm,
    RecordSearchRequest,
    SearchAnalytics,
    SearchMetadata,
    SuggestionResponse,
)
from app.utils.pagination import build_pagination

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(limit_suggestions)])


@router.get("/api/search/suggestions", response_model=SuggestionResponse)
def suggestions(
    q: str = Query(..., min_length=1, max_length=100),
    limit: int = Query(10, ge=1, le=20),
    time_window: int = Query(30, ge=1, le=365),
    include_content: bool = True,
    include_history: bool = True,
    owner_id: str = Depends(get_owner_id),
) -> SuggestionResponse:
    """Autocomplete for a partial query."""
    started = time.perf_counter()
    results = suggestion_engine.get_suggestions(
        owner_id,
        q,
        max_suggestions=limit,
        time_window_days=time_window,
        include_content=include_content,
        include_history=include_history,
    )
    return SuggestionResponse(
        query=q,
        suggestions=results,
        count=len(results),
        response_time_ms=round((time.perf_counter() - started) * 1000, 2),
    )


@router.get("/api/search/history", response_model=HistoryResponse)
def history(
    page: int = Query(1, ge=1, le=1000),
    limit: int = Query(20, ge=1, le=100),
    time_window: int | None = Query(None, ge=1, le=365),
    owner_id: str = Depends(get_owner_id),
) -> HistoryResponse:
    """The caller's past searches, newest first."""
    entries, total = history_service.get_history(owner_id, page, limit, time_window)
    return HistoryResponse(
        entries=[
            HistoryItem(
                id=e.id,
                query=e.query,
                normalized_query=e.normalized_query,
                result_count=e.result_count,
                strategy=e.metadata.strategy,
                click_count=len(e.clicks),
                satisfaction=e.satisfaction,
                created_at=e.created_at,
            )
            for e in entries
        ],
        pagination=build_pagination(page, limit, total),
    )


@router.post("/api/search/record", response_model=AckResponse, status_code=201)
def record(
    request: RecordSearchRequest,
    owner_id: str = Depends(get_owner_id),
    client: dict = Depends(client_info),
) -> AckResponse:
    """Record a search executed elsewhere (e.g. a client-side cache hit)."""
    query = validate_query(request.query)
    result_count = validate_int_range(request.result_count, "result_count", 0, 1_000_000)
    entry = suggestion_engine.record_search(
        owner_id,
        query,
        result_count,
        request.filters,
        SearchMetadata(
            strategy=request.strategy,
            response_time_ms=request.response_time_ms,
            user_agent=client["user_agent"],
            ip_address=client["ip_address"],
        ),
        request.context,
    )
    return AckResponse(success=True, message=f"Search recorded ({entry.id})")


@router.post("/api/search/click", response_model=AckResponse)
def click(request: ClickRequest, owner_id: str = Depends(get_owner_id)) -> AckResponse:
    """Attach a result click to the matching recent search."""
    query = validate_query(request.query)
    matched = suggestion_engine.record_click(owner_id, query, request.document_id, request.position)
    return AckResponse(
        success=matched,
        message="Click recorded" if matched else "No recent search matched; click ignored",
    )


@router.post("/api/search/feedback", response_model=AckResponse)
def feedback(request: FeedbackRequest, owner_id: str = Depends(get_owner_id)) -> AckResponse:
    """Rate the matching recent search from 1 to 5."""
    query = validate_query(request.query)
    matched = suggestion_engine.update_satisfaction(owner_id, query, request.rating)
    return AckResponse(
        success=matched,
        message="Feedback recorded" if matched else "No recent search matched; feedback ignored",
    )


@router.get("/api/search/analytics", response_model=SearchAnalytics)
def analytics(
    time_window: int = 30,
    owner_id: str = Depends(get_owner_id),
) -> SearchAnalytics:
    return history_service.get_analytics(owner_id, time_window)


@router.get("/api/search/popular", response_model=list[PopularTerm])
def popular(
    limit: int = Query(10, ge=1, le=50),
    time_window: int = Query(30, ge=1, le=365),
    owner_id: str = Depends(get_owner_id),
) -> list[PopularTerm]:
    """The caller's most frequent queries in the window."""
    return history_service.popular_terms(owner_id, limit, time_window)


@router.post("/api/search/clear-cache", response_model=AckResponse)
def clear_cache(owner_id: str = Depends(get_owner_id)) -> AckResponse:
    """Drop the caller's cached suggestions."""
    removed = suggestion_engine.clear_cache_for_user(owner_id)
    return AckResponse(success=True, message=f"Cleared {removed} cached suggestion sets")

