"""Document lifecycle: create, update, delete, list, usage.

Pure logic, no FastAPI imports.  Coordinates:
  validation  →  document_store (indexing)  →  persistence

Every mutation goes through the owner-only scope predicate; a document
outside the caller's scope is reported as not found.
"""

import logging
import uuid
from datetime import datetime, timezone

from app.config import settings
from app.core.errors import NotFoundError, ValidationError
from app.core.filters import filter_manager
from app.core.resilience import performance_monitor
from app.core.suggestions import suggestion_engine
from app.core.validation import (
    validate_object_id,
    validate_source_kind,
    validate_tags,
    validate_title,
)
from app.models.schemas import (
    Document,
    DocumentCreateRequest,
    DocumentDetail,
    DocumentMetadata,
    DocumentSummary,
    DocumentUpdateRequest,
    IngestResponse,
    SourceKind,
    UsageCounter,
)
from app.storage.document_store import document_store
from app.utils.text_utils import clean_text

logger = logging.getLogger(__name__)


def persist() -> None:
    """Write the document store to disk; failures are logged, not raised."""
    if not settings.persistence_enabled:
        return
    try:
        document_store.save(settings.index_dir)
    except OSError as exc:
        logger.error(
            "Failed to persist document store: %s", exc,
            extra={"context": {"event": "indexing", "action": "persist"}},
        )


def create_document(owner_id: str, request: DocumentCreateRequest) -> IngestResponse:
    """Validate, index and store a new document.

    Raises ``ValidationError`` naming the offending field.
    """
    owner_id = validate_object_id(owner_id, "user_id")
    title = validate_title(request.title)
    content = clean_text(request.content)
    if not content:
        raise ValidationError("content", "Document content cannot be empty.")
    source_kind = validate_source_kind(request.source_kind)
    if source_kind in (SourceKind.URL, SourceKind.YOUTUBE) and not request.source_url:
        raise ValidationError("source_url", f"A source URL is required for {source_kind.value} documents.")

    now = datetime.now(timezone.utc)
    document = Document(
        id=uuid.uuid4().hex[:24],
        owner_id=owner_id,
        title=title,
        original_filename=request.original_filename or title,
        source_kind=source_kind,
        source_url=request.source_url,
        content=content,
        metadata=DocumentMetadata(language=request.language or settings.default_language),
        tags=validate_tags(request.tags),
        is_public=request.is_public,
        created_at=now,
        updated_at=now,
    )

    with performance_monitor.track("indexing", document_id=document.id):
        stored, _ = document_store.put(document)

    suggestion_engine.clear_cache_for_user(owner_id)
    persist()

    logger.info(
        "Ingested '%s': %d chunks (doc_id=%s).",
        stored.title, stored.metadata.total_chunks, stored.id,
        extra={"context": {
            "event": "indexing",
            "action": "create",
            "document_id": stored.id,
            "chunks": stored.metadata.total_chunks,
        }},
    )
    return IngestResponse(
        document_id=stored.id,
        title=stored.title,
        chunk_count=stored.metadata.total_chunks,
        word_count=stored.metadata.total_words,
        status="completed",
        message=f"Indexed {stored.metadata.total_words} words into {stored.metadata.total_chunks} chunks",
    )


def get_owned_document(owner_id: str, document_id: str) -> Document:
    """Return the document if *owner_id* owns it, else raise ``NotFoundError``."""
    document_id = validate_object_id(document_id, "document_id")
    scope = filter_manager.build_scope(owner_id)
    document = document_store.get(document_id)
    if document is None or not scope(document):
        raise NotFoundError(f"Document '{document_id}' not found.", {"document_id": document_id})
    return document


def get_document(owner_id: str, document_id: str) -> Document:
    """Like ``get_owned_document`` but public documents are readable too."""
    document_id = validate_object_id(document_id, "document_id")
    scope = filter_manager.build_scope(owner_id)
    document = document_store.get(document_id)
    if document is None or not (scope(document) or document.is_public):
        raise NotFoundError(f"Document '{document_id}' not found.", {"document_id": document_id})
    return document


def update_document(
    owner_id: str,
    document_id: str,
    request: DocumentUpdateRequest,
) -> IngestResponse:
    """Apply the given fields; content changes trigger re-indexing."""
    current = get_owned_document(owner_id, document_id)

    changes: dict = {"updated_at": datetime.now(timezone.utc)}
    if request.title is not None:
        changes["title"] = validate_title(request.title)
    if request.tags is not None:
        changes["tags"] = validate_tags(request.tags)
    if request.is_public is not None:
        changes["is_public"] = request.is_public
    if request.content is not None:
        content = clean_text(request.content)
        if not content:
            raise ValidationError("content", "Document content cannot be empty.")
        changes["content"] = content

    with performance_monitor.track("indexing", document_id=current.id):
        stored, reindexed = document_store.put(current.model_copy(update=changes))

    suggestion_engine.clear_cache_for_user(stored.owner_id)
    persist()

    logger.info(
        "Updated document %s (reindexed=%s).", stored.id, reindexed,
        extra={"context": {
            "event": "indexing",
            "action": "update",
            "document_id": stored.id,
            "reindexed": reindexed,
        }},
    )
    return IngestResponse(
        document_id=stored.id,
        title=stored.title,
        chunk_count=stored.metadata.total_chunks,
        word_count=stored.metadata.total_words,
        status="completed" if reindexed else "unchanged",
        message="Document re-indexed" if reindexed else "Content unchanged; index kept",
    )


def delete_document(owner_id: str, document_id: str) -> None:
    """Hard-delete a document.

    Raises ``NotFoundError`` if it does not exist or belongs to someone else.
    """
    document = get_owned_document(owner_id, document_id)
    if not document_store.delete(document.id):
        raise NotFoundError(f"Document '{document_id}' not found.", {"document_id": document_id})

    suggestion_engine.clear_cache_for_user(document.owner_id)
    persist()
    logger.info(
        "Deleted document '%s' (%s).", document.id, document.title,
        extra={"context": {"event": "indexing", "action": "delete", "document_id": document.id}},
    )


def list_documents(
    owner_id: str,
    page: int = 1,
    limit: int = 20,
    source_kind: str | None = None,
) -> tuple[list[Document], int]:
    """The owner's documents, newest first, paginated."""
    owner_id = validate_object_id(owner_id, "user_id")
    kind = validate_source_kind(source_kind) if source_kind else None
    documents = document_store.find(
        lambda d: d.owner_id == owner_id and (kind is None or d.source_kind == kind)
    )
    start = (page - 1) * limit
    return documents[start : start + limit], len(documents)


def record_usage(owner_id: str, document_id: str, counter: UsageCounter | str) -> Document:
    """Increment a usage counter on a document the caller can read."""
    document = get_document(owner_id, document_id)
    updated = document_store.record_usage(document.id, counter)
    if updated is None:
        raise NotFoundError(f"Document '{document_id}' not found.", {"document_id": document_id})
    persist()
    return updated


def to_summary(document: Document) -> DocumentSummary:
    return DocumentSummary(
        id=document.id,
        title=document.title,
        original_filename=document.original_filename,
        source_kind=document.source_kind,
        source_url=document.source_url,
        tags=document.tags,
        is_public=document.is_public,
        total_words=document.metadata.total_words,
        total_chunks=document.metadata.total_chunks,
        language=document.metadata.language,
        last_indexed=document.metadata.last_indexed,
        usage=document.usage,
        created_at=document.created_at,
        updated_at=document.updated_at,
    )


def to_detail(document: Document) -> DocumentDetail:
    return DocumentDetail(**to_summary(document).model_dump(), content=document.content)
