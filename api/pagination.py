"""
Page slicing for the task list view (GET /api/tasks?page=2&page_size=25).

Filtering and sorting happen in clientdesk.tasks on the full list; this
module only cuts out one page and reports where it sits.
"""

from math import ceil
from typing import Any

from fastapi import Query
from pydantic import BaseModel, Field

DEFAULT_PAGE_SIZE = 25
MAX_PAGE_SIZE = 200


class PaginationParams(BaseModel):
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)


def pagination_params(
    page: int = Query(1, ge=1, description="1-based page number"),
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE, description="Rows per page"),
) -> PaginationParams:
    return PaginationParams(page=page, page_size=page_size)


def paginate(items: list[Any], page: int, page_size: int) -> dict[str, Any]:
    """
    One page of *items* plus totals, shaped like response_models.PaginatedResponse.

    A page past the end is valid and comes back with empty ``data``.
    """
    if page < 1 or page_size < 1:
        raise ValueError(f"page and page_size must be >= 1, got {page}/{page_size}")

    offset = (page - 1) * page_size
    pages = ceil(len(items) / page_size)
    return {
        "data": items[offset : offset + page_size],
        "total": len(items),
        "page": page,
        "page_size": page_size,
        "total_pages": pages,
        "has_next": page < pages,
        "has_prev": page > 1,
    }
