"""In-memory document store with JSON persistence.

No scoring, no ranking.  Just: put, get, find, delete, record_usage,
save, load, clear.

Stored ``Document`` objects are never mutated in place: every write
swaps in a new object under the lock, so a reader holding a reference
always sees a consistent snapshot.
"""

import json
import logging
import os
import threading
from collections.abc import Callable
from datetime import datetime, timezone

from app.core.errors import ValidationError
from app.core.indexer import carry_index, index_document, needs_reindex
from app.models.schemas import Document, UsageCounter

logger = logging.getLogger(__name__)

_DOCUMENTS_FILE = "documents.json"


class DocumentStore:
    """Thread-safe map of document id → ``Document``."""

    def __init__(self) -> None:
        self._documents: dict[str, Document] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    def put(self, document: Document) -> tuple[Document, bool]:
        """Insert or replace *document*, indexing it only if needed.

        Searchable fields and chunks are rebuilt when the document is new
        or its content hash changed; otherwise the previous derivatives
        are carried over untouched.

        Returns ``(stored_document, reindexed)``.
        """
        _validate(document)

        with self._lock:
            previous = self._documents.get(document.id)

        if previous is not None and previous.owner_id != document.owner_id:
            raise ValidationError("owner_id", "Document belongs to a different owner.")

        reindexed = needs_reindex(document, previous)
        if reindexed:
            stored = index_document(document)
        else:
            stored = carry_index(document, previous)

        with self._lock:
            self._documents[stored.id] = stored
        return stored, reindexed

    def get(self, document_id: str) -> Document | None:
        with self._lock:
            return self._documents.get(document_id)

    def find(self, predicate: Callable[[Document], bool] | None = None) -> list[Document]:
        """Return documents matching *predicate*, newest first.

        Ordering is fixed (``created_at`` desc, then id) so callers get
        the same candidate list for the same store state.
        """
        with self._lock:
            documents = list(self._documents.values())
        if predicate is not None:
            documents = [d for d in documents if predicate(d)]
        documents.sort(key=lambda d: d.id)
        documents.sort(key=lambda d: d.created_at, reverse=True)
        return documents

    def delete(self, document_id: str) -> bool:
        """Hard-delete a document.  Returns False if it did not exist."""
        with self._lock:
            return self._documents.pop(document_id, None) is not None

    def record_usage(
        self,
        document_id: str,
        counter: UsageCounter | str,
    ) -> Document | None:
        """Increment a usage counter and stamp ``last_used``.

        Returns the updated document, or None if it does not exist.
        """
        field = UsageCounter(counter).value
        with self._lock:
            document = self._documents.get(document_id)
            if document is None:
                return None
            usage = document.usage.model_copy(update={
                field: getattr(document.usage, field) + 1,
                "last_used": datetime.now(timezone.utc),
            })
            updated = document.model_copy(update={"usage": usage})
            self._documents[document_id] = updated
            return updated

    def clear(self) -> None:
        """Remove everything.  Reset to empty state."""
        with self._lock:
            self._documents = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._documents)

    def __contains__(self, document_id: str) -> bool:
        with self._lock:
            return document_id in self._documents

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, path: str) -> None:
        """Persist every document to ``documents.json`` under *path*.

        Writes to a temporary file first so a crash never leaves a
        half-written index behind.
        """
        os.makedirs(path, exist_ok=True)

        with self._lock:
            docs_data = {
                doc_id: doc.model_dump(mode="json")
                for doc_id, doc in self._documents.items()
            }

        target = os.path.join(path, _DOCUMENTS_FILE)
        tmp_path = target + ".tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(docs_data, f, indent=2, ensure_ascii=False)
        os.replace(tmp_path, target)

        logger.info("Document store saved to %s (%d documents).", path, len(docs_data))

    def load(self, path: str) -> None:
        """Load a previously saved store from *path*.

        If the file does not exist the store remains empty; no error is
        raised.
        """
        docs_path = os.path.join(path, _DOCUMENTS_FILE)
        if not os.path.exists(docs_path):
            with self._lock:
                self._documents = {}
            return

        with open(docs_path, encoding="utf-8") as f:
            docs_data = json.load(f)

        documents = {
            doc_id: Document(**item) for doc_id, item in docs_data.items()
        }
        with self._lock:
            self._documents = documents

        logger.info("Document store loaded from %s (%d documents).", path, len(documents))


def _validate(document: Document) -> None:
    if not document.id:
        raise ValidationError("id", "Document id is required.")
    if not document.owner_id:
        raise ValidationError("owner_id", "Document owner is required.")
    if not document.title or not document.title.strip():
        raise ValidationError("title", "Document title is required.")


# ---------------------------------------------------------------------------
# Module-level singleton.
# ---------------------------------------------------------------------------
document_store = DocumentStore()
