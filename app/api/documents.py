"""Document API endpoints.

Thin HTTP layer: no indexing, no validation rules beyond the request shape.
Just: receive request → call core → return response.
"""

import logging

from fastapi import APIRouter, Depends, Query

from app.api.dependencies import get_owner_id, limit_search
from app.core.ingest_service import (
    create_document,
    delete_document,
    get_document,
    list_documents,
    record_usage,
    to_detail,
    to_summary,
    update_document,
)
from app.models.schemas import (
    AckResponse,
    DocumentCreateRequest,
    DocumentDetail,
    DocumentListResponse,
    DocumentSummary,
    DocumentUpdateRequest,
    IngestResponse,
    UsageRequest,
)
from app.utils.pagination import build_pagination

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(limit_search)])


@router.post("/api/documents", response_model=IngestResponse, status_code=201)
def ingest(
    request: DocumentCreateRequest,
    owner_id: str = Depends(get_owner_id),
) -> IngestResponse:
    """Store a document and build its search index."""
    return create_document(owner_id, request)


@router.get("/api/documents", response_model=DocumentListResponse)
def get_documents(
    page: int = Query(1, ge=1, le=1000),
    limit: int = Query(20, ge=1, le=100),
    source_kind: str | None = None,
    owner_id: str = Depends(get_owner_id),
) -> DocumentListResponse:
    """List the caller's documents, newest first."""
    documents, total = list_documents(owner_id, page, limit, source_kind)
    return DocumentListResponse(
        documents=[to_summary(d) for d in documents],
        pagination=build_pagination(page, limit, total),
    )


@router.get("/api/documents/{document_id}", response_model=DocumentDetail)
def get_one(document_id: str, owner_id: str = Depends(get_owner_id)) -> DocumentDetail:
    return to_detail(get_document(owner_id, document_id))


@router.put("/api/documents/{document_id}", response_model=IngestResponse)
def update(
    document_id: str,
    request: DocumentUpdateRequest,
    owner_id: str = Depends(get_owner_id),
) -> IngestResponse:
    """Update fields; changed content is re-indexed."""
    return update_document(owner_id, document_id, request)


@router.delete("/api/documents/{document_id}", response_model=AckResponse)
def remove_document(document_id: str, owner_id: str = Depends(get_owner_id)) -> AckResponse:
    """Delete a document and its index."""
    delete_document(owner_id, document_id)
    return AckResponse(success=True, message=f"Document {document_id} deleted")


@router.post("/api/documents/{document_id}/usage", response_model=DocumentSummary)
def usage(
    document_id: str,
    request: UsageRequest,
    owner_id: str = Depends(get_owner_id),
) -> DocumentSummary:
    """Count one use of the document by a downstream feature."""
    return to_summary(record_usage(owner_id, document_id, request.counter))
