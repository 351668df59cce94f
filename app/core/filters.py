"""Composable, side-effect-free document predicates.

Pure logic, no FastAPI imports.  ``FilterManager.build_scope`` validates
raw filter input once and returns a frozen ``SearchScope``; calling it
twice with the same arguments yields equal scopes.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from app.core.errors import ValidationError
from app.core.validation import (
    validate_date_range,
    validate_file_types,
    validate_object_id,
    validate_tags,
)
from app.models.schemas import Document, SearchFilters, SourceKind

logger = logging.getLogger(__name__)

MAX_CUSTOM_FILTERS = 10


@dataclass(frozen=True)
class SearchScope:
    """Callable predicate over ``Document``.

    Owner scope is always applied: a document matches only if it belongs
    to ``owner_id`` or, with ``include_public``, is flagged public.
    """

    owner_id: str
    include_public: bool = False
    file_types: frozenset[SourceKind] = frozenset()
    tags: frozenset[str] = frozenset()
    date_from: datetime | None = None
    date_to: datetime | None = None
    custom_filters: tuple[tuple[str, Any], ...] = ()

    def __call__(self, document: Document) -> bool:
        if document.owner_id != self.owner_id and not (
            self.include_public and document.is_public
        ):
            return False
        if self.file_types and document.source_kind not in self.file_types:
            return False
        if self.tags and self.tags.isdisjoint(document.tags):
            return False
        if self.date_from is not None and document.created_at < self.date_from:
            return False
        if self.date_to is not None and document.created_at > self.date_to:
            return False
        for path, expected in self.custom_filters:
            if not _matches(_resolve(document, path), expected):
                return False
        return True

    def owned_only(self) -> "SearchScope":
        """Same filters restricted to the owner's own documents."""
        return SearchScope(
            owner_id=self.owner_id,
            include_public=False,
            file_types=self.file_types,
            tags=self.tags,
            date_from=self.date_from,
            date_to=self.date_to,
            custom_filters=self.custom_filters,
        )


class FilterManager:
    """Builds and describes ``SearchScope`` predicates."""

    def build_scope(
        self,
        owner_id: str,
        filters: SearchFilters | None = None,
    ) -> SearchScope:
        """Validate *filters* and compile them into a ``SearchScope``.

        Raises ``ValidationError`` naming the offending field.
        """
        owner_id = validate_object_id(owner_id, "user_id")
        filters = filters or SearchFilters()

        date_from, date_to = validate_date_range(filters.date_from, filters.date_to)

        return SearchScope(
            owner_id=owner_id,
            include_public=filters.include_public,
            file_types=frozenset(validate_file_types(filters.file_types)),
            tags=frozenset(validate_tags(filters.tags)),
            date_from=date_from,
            date_to=date_to,
            custom_filters=_compile_custom_filters(filters.custom_filters),
        )

    def summarize(self, scope: SearchScope) -> dict[str, Any]:
        """JSON-friendly echo of the active filters."""
        summary: dict[str, Any] = {"include_public": scope.include_public}
        if scope.file_types:
            summary["file_types"] = sorted(k.value for k in scope.file_types)
        if scope.tags:
            summary["tags"] = sorted(scope.tags)
        if scope.date_from or scope.date_to:
            summary["date_range"] = {
                "start": scope.date_from.isoformat() if scope.date_from else None,
                "end": scope.date_to.isoformat() if scope.date_to else None,
            }
        if scope.custom_filters:
            summary["custom_filters"] = {
                path: list(value) if isinstance(value, tuple) else value
                for path, value in scope.custom_filters
            }
        return summary

    def describe(self, scope: SearchScope) -> str:
        """Short human-readable description, e.g. for UI chips."""
        parts: list[str] = []
        if scope.file_types:
            parts.append("types: " + ", ".join(sorted(k.value for k in scope.file_types)))
        if scope.tags:
            parts.append("tags: " + ", ".join(sorted(scope.tags)))
        if scope.date_from and scope.date_to:
            parts.append(f"from {scope.date_from.date()} to {scope.date_to.date()}")
        elif scope.date_from:
            parts.append(f"since {scope.date_from.date()}")
        elif scope.date_to:
            parts.append(f"until {scope.date_to.date()}")
        if scope.include_public:
            parts.append("including public documents")
        return "; ".join(parts) if parts else "no filters"

    def combination_warnings(self, scope: SearchScope) -> list[str]:
        """Non-fatal hints about filter sets likely to return little."""
        warnings: list[str] = []
        if scope.date_from and scope.date_to:
            if (scope.date_to - scope.date_from).days < 1:
                warnings.append("Date range is shorter than one day and may return few results.")
        if len(scope.tags) > 10:
            warnings.append("Many tags selected; consider narrowing the tag filter.")
        if len(scope.file_types) > 4:
            warnings.append("Most file types selected; the file type filter has little effect.")
        return warnings


# ---------------------------------------------------------------------------
# Custom filters
# ---------------------------------------------------------------------------


def _compile_custom_filters(custom: dict[str, Any] | None) -> tuple[tuple[str, Any], ...]:
    if not custom:
        return ()
    if len(custom) > MAX_CUSTOM_FILTERS:
        raise ValidationError(
            "custom_filters", f"Too many custom filters (maximum {MAX_CUSTOM_FILTERS}).",
        )

    compiled: list[tuple[str, Any]] = []
    for path, value in sorted(custom.items()):
        root = path.split(".", 1)[0]
        if root not in Document.model_fields or root in ("content", "chunks"):
            raise ValidationError("custom_filters", f"Unknown filter field '{path}'.", path)
        if isinstance(value, dict):
            raise ValidationError(
                "custom_filters", f"Filter '{path}' must be a value or a list of values.", path,
            )
        if isinstance(value, list):
            value = tuple(value)
        compiled.append((path, value))
    return tuple(compiled)


def _resolve(document: Document, path: str) -> Any:
    current: Any = document
    for part in path.split("."):
        if current is None:
            return None
        if isinstance(current, dict):
            current = current.get(part)
        else:
            current = getattr(current, part, None)
    return current


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, SourceKind) else value


def _matches(actual: Any, expected: Any) -> bool:
    """Scalar equality; a tuple of expected values means match-any.

    A list-valued field matches when any element matches.
    """
    candidates = expected if isinstance(expected, tuple) else (expected,)
    if isinstance(actual, list):
        return any(_plain(item) in candidates for item in actual)
    return _plain(actual) in candidates


# ---------------------------------------------------------------------------
# Module-level singleton.
# ---------------------------------------------------------------------------
filter_manager = FilterManager()
