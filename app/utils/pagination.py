import math
from collections.abc import Sequence
from typing import TypeVar

from app.models.schemas import PaginationMeta

T = TypeVar("T")


def build_pagination(page: int, limit: int, total: int) -> PaginationMeta:
    total_pages = math.ceil(total / limit) if limit else 0
    return PaginationMeta(
        current_page=page,
        page_size=limit,
        total_items=total,
        total_pages=total_pages,
        has_next_page=page < total_pages,
        has_previous_page=page > 1,
    )


def paginate(items: Sequence[T], page: int, limit: int) -> tuple[list[T], PaginationMeta]:
    """Slice *items* for a 1-indexed *page* of size *limit*."""
    start = (page - 1) * limit
    return list(items[start : start + limit]), build_pagination(page, limit, len(items))
