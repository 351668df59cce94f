"""Append-only search history log with JSON persistence.

Entries are kept in insertion order per owner and never reordered.
Click and feedback updates replace an entry at its existing position.
"""

import json
import logging
import os
import threading
from collections.abc import Callable
from datetime import datetime

from app.models.schemas import SearchHistoryEntry

logger = logging.getLogger(__name__)

_HISTORY_FILE = "search_history.json"


class SearchHistoryStore:
    """Thread-safe owner id → list of ``SearchHistoryEntry`` (oldest first)."""

    def __init__(self) -> None:
        self._entries: dict[str, list[SearchHistoryEntry]] = {}
        self._lock = threading.RLock()

    def append(self, entry: SearchHistoryEntry) -> None:
        if not entry.normalized_query:
            raise ValueError("History entries require a normalized query.")
        with self._lock:
            self._entries.setdefault(entry.owner_id, []).append(entry)

    def entries_for_owner(
        self,
        owner_id: str,
        since: datetime | None = None,
    ) -> list[SearchHistoryEntry]:
        """Entries of *owner_id*, oldest first, optionally newer than *since*."""
        with self._lock:
            entries = list(self._entries.get(owner_id, ()))
        if since is not None:
            entries = [e for e in entries if e.created_at >= since]
        return entries

    def update_latest(
        self,
        owner_id: str,
        normalized_query: str,
        since: datetime,
        update: Callable[[SearchHistoryEntry], SearchHistoryEntry],
    ) -> SearchHistoryEntry | None:
        """Apply *update* to the newest matching entry created at or after *since*.

        Returns the updated entry, or None if nothing matched.
        """
        with self._lock:
            entries = self._entries.get(owner_id, [])
            for position in range(len(entries) - 1, -1, -1):
                entry = entries[position]
                if entry.created_at < since:
                    break
                if entry.normalized_query == normalized_query:
                    updated = update(entry)
                    entries[position] = updated
                    return updated
        return None

    def purge_older_than(self, cutoff: datetime) -> int:
        """Drop every entry created before *cutoff*.  Returns the count removed."""
        removed = 0
        with self._lock:
            for owner_id in list(self._entries):
                kept = [e for e in self._entries[owner_id] if e.created_at >= cutoff]
                removed += len(self._entries[owner_id]) - len(kept)
                if kept:
                    self._entries[owner_id] = kept
                else:
                    del self._entries[owner_id]
        return removed

    def clear(self) -> None:
        with self._lock:
            self._entries = {}

    def __len__(self) -> int:
        with self._lock:
            return sum(len(entries) for entries in self._entries.values())

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, path: str) -> None:
        os.makedirs(path, exist_ok=True)

        with self._lock:
            data = [
                entry.model_dump(mode="json")
                for entries in self._entries.values()
                for entry in entries
            ]

        target = os.path.join(path, _HISTORY_FILE)
        tmp_path = target + ".tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.replace(tmp_path, target)

        logger.info("Search history saved to %s (%d entries).", path, len(data))

    def load(self, path: str) -> None:
        """Load history from *path*; a missing file leaves the store empty."""
        history_path = os.path.join(path, _HISTORY_FILE)
        entries: dict[str, list[SearchHistoryEntry]] = {}

        if os.path.exists(history_path):
            with open(history_path, encoding="utf-8") as f:
                data = json.load(f)
            for item in data:
                entry = SearchHistoryEntry(**item)
                entries.setdefault(entry.owner_id, []).append(entry)
            for owner_entries in entries.values():
                owner_entries.sort(key=lambda e: e.created_at)

        with self._lock:
            self._entries = entries

        logger.info("Search history loaded from %s (%d entries).", path, len(self))


# ---------------------------------------------------------------------------
# Module-level singleton.
# ---------------------------------------------------------------------------
history_store = SearchHistoryStore()
