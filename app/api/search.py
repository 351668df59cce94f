"""Search API endpoints.

Thin HTTP layer: no ranking, no filtering, no history bookkeeping.
Just: receive request → call core → return response.
"""

import logging

from fastapi import APIRouter, Depends, Query

from app.api.dependencies import client_info, get_owner_id, limit_search
from app.core.query_processor import advanced_search, get_relevant_context, search_documents
from app.models.schemas import (
    AdvancedSearchRequest,
    AdvancedSearchResponse,
    ContextRequest,
    ContextResponse,
    SearchFilters,
    SearchResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(limit_search)])


def _split(values: list[str] | None) -> list[str]:
    """Accept both ``?tags=a&tags=b`` and ``?tags=a,b``."""
    if not values:
        return []
    return [part.strip() for value in values for part in value.split(",") if part.strip()]


@router.get("/api/search", response_model=SearchResponse)
def search(
    q: str = Query(..., description="Search query"),
    page: int = 1,
    limit: int = 10,
    file_types: list[str] | None = Query(None),
    tags: list[str] | None = Query(None),
    date_from: str | None = None,
    date_to: str | None = None,
    include_public: bool = False,
    case_sensitive: bool = False,
    strategies: list[str] | None = Query(None),
    min_score: float | None = None,
    owner_id: str = Depends(get_owner_id),
    client: dict = Depends(client_info),
) -> SearchResponse:
    """Ranked search over the caller's documents."""
    filters = SearchFilters(
        file_types=_split(file_types),
        tags=_split(tags),
        date_from=date_from,
        date_to=date_to,
        include_public=include_public,
    )
    return search_documents(
        owner_id,
        q,
        filters=filters,
        strategies=_split(strategies) or None,
        case_sensitive=case_sensitive,
        min_score=min_score,
        page=page,
        limit=limit,
        user_agent=client["user_agent"],
        ip_address=client["ip_address"],
    )


@router.post("/api/search/advanced", response_model=AdvancedSearchResponse)
def search_advanced(
    request: AdvancedSearchRequest,
    owner_id: str = Depends(get_owner_id),
    client: dict = Depends(client_info),
) -> AdvancedSearchResponse:
    """Boolean search: quoted phrases, AND, OR, NOT."""
    return advanced_search(
        owner_id,
        request,
        user_agent=client["user_agent"],
        ip_address=client["ip_address"],
    )


@router.post("/api/search/context", response_model=ContextResponse)
def search_context(
    request: ContextRequest,
    owner_id: str = Depends(get_owner_id),
) -> ContextResponse:
    """Relevant chunks concatenated into a context block for generation."""
    return get_relevant_context(owner_id, request)
