"""
Response envelope and pagination helpers.

Every endpoint answers with ``{data, meta, error, statusCode}``. List
endpoints add ``meta.pagination`` computed from a COUNT query and a
LIMIT/OFFSET query over the same filtered SQLAlchemy query.
"""

import math
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy.orm import Query


def envelope(
    data: Any = None,
    meta: Optional[dict[str, Any]] = None,
    status_code: int = 200,
) -> dict[str, Any]:
    """Wrap a successful payload."""
    return {
        "data": data,
        "meta": meta,
        "error": None,
        "statusCode": status_code,
    }


def error_envelope(
    message: str,
    status_code: int,
    code: Optional[str] = None,
    details: Optional[Any] = None,
) -> dict[str, Any]:
    """Wrap an error; ``data`` and ``meta`` are always null."""
    error: dict[str, Any] = {"message": message}
    if code:
        error["code"] = code
    if details is not None:
        error["details"] = details
    return {
        "data": None,
        "meta": None,
        "error": error,
        "statusCode": status_code,
    }


# =============================================================================
# Pagination
# =============================================================================

@dataclass
class Page:
    """One page of a query plus the numbers needed for ``meta.pagination``."""

    items: list
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def meta(self) -> dict[str, int]:
        return {
            "page": self.page,
            "limit": self.limit,
            "total": self.total,
            "totalPages": self.total_pages,
        }


def paginate(query: Query, page: int, limit: int) -> Page:
    """
    Count the filtered query, then fetch one page of it.

    ``query`` must already carry its filters and ordering.
    """
    total = query.order_by(None).count()
    offset = (page - 1) * limit
    items = query.offset(offset).limit(limit).all()
    return Page(items=items, page=page, limit=limit, total=total)
