"""Shared test fixtures for the document search test suite."""

import os

# Keep the suite off the filesystem: no log files, no index writes.
os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("PERSISTENCE_ENABLED", "false")

from datetime import datetime, timedelta, timezone

import pytest

from app.api.dependencies import search_limiter, suggestion_limiter
from app.core.resilience import fallback_manager, performance_monitor
from app.core.suggestions import suggestion_engine
from app.models.schemas import Document, SourceKind
from app.storage.document_store import DocumentStore, document_store
from app.storage.history_store import history_store

OWNER_ID = "64b7f0c2e4b0a1a2b3c4d5e6"
OTHER_OWNER_ID = "64b7f0c2e4b0a1a2b3c4d5ff"

BASE_TIME = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_document(
    doc_id: str,
    title: str,
    content: str,
    owner_id: str = OWNER_ID,
    source_kind: SourceKind = SourceKind.PDF,
    tags: list[str] | None = None,
    is_public: bool = False,
    created_at: datetime | None = None,
) -> Document:
    """Unindexed document; ``DocumentStore.put`` derives the searchable fields."""
    created_at = created_at or BASE_TIME
    return Document(
        id=doc_id,
        owner_id=owner_id,
        title=title,
        original_filename=f"{title.lower().replace(' ', '_')}.{source_kind.value}",
        source_kind=source_kind,
        content=content,
        tags=tags or [],
        is_public=is_public,
        created_at=created_at,
        updated_at=created_at,
    )


ML_TEXT = (
    "Machine learning is a subset of artificial intelligence that enables "
    "systems to learn from data. It uses algorithms to find patterns and make "
    "predictions without being explicitly programmed for each task."
)
NN_TEXT = (
    "Neural networks consist of interconnected layers of nodes. Each layer "
    "transforms the input data. Deep learning uses many layers to learn "
    "complex representations."
)
FINANCE_TEXT = (
    "Revenue increased by 20% in 2023 compared to the previous year. The "
    "company reported total earnings driven by strong product demand."
)


# ---------------------------------------------------------------------------
# Global state reset
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_state():
    """Every test starts from empty singletons."""
    document_store.clear()
    history_store.clear()
    suggestion_engine.clear_cache()
    search_limiter.reset()
    suggestion_limiter.reset()
    fallback_manager.reset_health()
    performance_monitor.reset()
    yield
    document_store.clear()
    history_store.clear()
    suggestion_engine.clear_cache()


# ---------------------------------------------------------------------------
# Sample data fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def sample_documents() -> list[Document]:
    """Three documents: two owned by OWNER_ID, one by someone else."""
    return [
        make_document(
            "aaaaaaaaaaaaaaaaaaaaaaa1", "Machine Learning Basics", ML_TEXT,
            tags=["ai", "ml"], created_at=BASE_TIME,
        ),
        make_document(
            "aaaaaaaaaaaaaaaaaaaaaaa2", "Neural Networks", NN_TEXT,
            source_kind=SourceKind.DOCX, tags=["ai"],
            created_at=BASE_TIME + timedelta(days=1),
        ),
        make_document(
            "bbbbbbbbbbbbbbbbbbbbbbb1", "Annual Report", FINANCE_TEXT,
            owner_id=OTHER_OWNER_ID, is_public=True,
            created_at=BASE_TIME + timedelta(days=2),
        ),
    ]


@pytest.fixture
def fresh_document_store() -> DocumentStore:
    """Empty DocumentStore instance (not the module-level singleton)."""
    return DocumentStore()


@pytest.fixture
def loaded_document_store(sample_documents: list[Document]) -> DocumentStore:
    """Fresh DocumentStore pre-loaded with the sample documents."""
    store = DocumentStore()
    for document in sample_documents:
        store.put(document)
    return store


@pytest.fixture
def indexed_documents(loaded_document_store: DocumentStore) -> list[Document]:
    return loaded_document_store.find()


@pytest.fixture
def populated_store(sample_documents: list[Document]) -> DocumentStore:
    """The module-level singleton loaded with the sample documents."""
    for document in sample_documents:
        document_store.put(document)
    return document_store
