"""Boundary validation for every externally supplied value.

Pure logic, no FastAPI imports.  Each function either returns the cleaned
value or raises ``ValidationError`` naming the offending field.
"""

import re
from datetime import datetime, time, timezone

from app.core.errors import ValidationError
from app.models.schemas import SourceKind

MAX_QUERY_LENGTH = 1000
MAX_PAGE = 1000
MAX_LIMIT = 100
MAX_TAGS = 20
MAX_TAG_LENGTH = 50
MAX_TITLE_LENGTH = 200

STRATEGIES = ("exact", "fuzzy", "semantic")
SORT_FIELDS = ("relevance", "date", "title", "usage")
SORT_ORDERS = ("asc", "desc")

_OBJECT_ID_RE = re.compile(r"^[0-9a-fA-F]{24}$")
_DATE_ONLY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

# Injection markers rejected anywhere in a query.
_MALICIOUS_PATTERNS: list[re.Pattern] = [
    re.compile(r"\$where", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"<script", re.IGNORECASE),
    re.compile(r"\beval\s*\(", re.IGNORECASE),
]


def validate_query(query: str | None, field: str = "query") -> str:
    """Non-empty, at most ``MAX_QUERY_LENGTH`` chars, no injection markers."""
    if query is None or not isinstance(query, str):
        raise ValidationError(field, "Query is required.")
    query = query.strip()
    if not query:
        raise ValidationError(field, "Query cannot be empty.")
    if len(query) > MAX_QUERY_LENGTH:
        raise ValidationError(
            field,
            f"Query too long (maximum {MAX_QUERY_LENGTH} characters).",
            len(query),
        )
    for pattern in _MALICIOUS_PATTERNS:
        if pattern.search(query):
            raise ValidationError(field, "Query contains disallowed content.")
    return query


def validate_int_range(value, field: str, low: int, high: int) -> int:
    if isinstance(value, bool):
        raise ValidationError(field, f"{field} must be an integer.", value)
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(field, f"{field} must be an integer.", value) from None
    if number < low or number > high:
        raise ValidationError(field, f"{field} must be between {low} and {high}.", number)
    return number


def validate_pagination(page, limit) -> tuple[int, int]:
    return (
        validate_int_range(page, "page", 1, MAX_PAGE),
        validate_int_range(limit, "limit", 1, MAX_LIMIT),
    )


def validate_object_id(value: str | None, field: str = "id") -> str:
    """24 hexadecimal characters, returned lowercase."""
    if not value or not _OBJECT_ID_RE.match(value):
        raise ValidationError(field, f"Invalid {field} format.", value)
    return value.lower()


def validate_strategies(strategies: list[str] | None) -> list[str]:
    """Known strategy names, de-duplicated, in the order given."""
    if not strategies:
        return ["exact", "fuzzy"]
    cleaned: list[str] = []
    for name in strategies:
        name = (name or "").strip().lower()
        if name not in STRATEGIES:
            raise ValidationError(
                "strategies",
                f"Unknown strategy '{name}'. Allowed: {', '.join(STRATEGIES)}.",
                name,
            )
        if name not in cleaned:
            cleaned.append(name)
    return cleaned


def validate_file_types(file_types: list[str] | None) -> list[SourceKind]:
    kinds: list[SourceKind] = []
    for value in file_types or []:
        try:
            kind = SourceKind(str(value).strip().lower())
        except ValueError:
            allowed = ", ".join(k.value for k in SourceKind)
            raise ValidationError(
                "file_types", f"Invalid file type '{value}'. Allowed: {allowed}.", value,
            ) from None
        if kind not in kinds:
            kinds.append(kind)
    return kinds


def validate_source_kind(value: str | None) -> SourceKind:
    return validate_file_types([value or ""])[0]


def validate_tags(tags: list[str] | None) -> list[str]:
    """At most ``MAX_TAGS`` non-empty tags, stripped and de-duplicated."""
    tags = tags or []
    if len(tags) > MAX_TAGS:
        raise ValidationError("tags", f"Too many tags (maximum {MAX_TAGS}).", len(tags))
    cleaned: list[str] = []
    for tag in tags:
        if not isinstance(tag, str) or not tag.strip():
            raise ValidationError("tags", "Tags must be non-empty strings.", tag)
        tag = tag.strip()
        if len(tag) > MAX_TAG_LENGTH:
            raise ValidationError("tags", f"Tag too long (maximum {MAX_TAG_LENGTH} characters).", tag)
        if tag not in cleaned:
            cleaned.append(tag)
    return cleaned


def validate_title(title: str | None) -> str:
    if title is None or not title.strip():
        raise ValidationError("title", "Title cannot be empty.")
    title = title.strip()
    if len(title) > MAX_TITLE_LENGTH:
        raise ValidationError(
            "title", f"Title too long (maximum {MAX_TITLE_LENGTH} characters).", len(title),
        )
    return title


def validate_sort(sort_by: str | None, sort_order: str | None) -> tuple[str, str]:
    sort_by = (sort_by or "relevance").lower()
    sort_order = (sort_order or "desc").lower()
    if sort_by not in SORT_FIELDS:
        raise ValidationError(
            "sort_by", f"Invalid sort field. Allowed: {', '.join(SORT_FIELDS)}.", sort_by,
        )
    if sort_order not in SORT_ORDERS:
        raise ValidationError("sort_order", "Sort order must be 'asc' or 'desc'.", sort_order)
    return sort_by, sort_order


def validate_rating(rating) -> int:
    return validate_int_range(rating, "rating", 1, 5)


def parse_date(value: str, field: str, end_of_day: bool = False) -> datetime:
    """Parse an ISO date or datetime into an aware UTC datetime.

    A date-only value used as an upper bound covers that whole day.
    """
    value = (value or "").strip()
    try:
        if _DATE_ONLY_RE.match(value):
            day = datetime.fromisoformat(value).date()
            parsed = datetime.combine(day, time.max if end_of_day else time.min)
        else:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(field, f"Invalid date for {field}.", value) from None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def validate_date_range(
    date_from: str | None,
    date_to: str | None,
) -> tuple[datetime | None, datetime | None]:
    start = parse_date(date_from, "date_from") if date_from else None
    end = parse_date(date_to, "date_to", end_of_day=True) if date_to else None
    if start is not None and end is not None and start > end:
        raise ValidationError("date_range", "Start date must be before end date.")
    return start, end
