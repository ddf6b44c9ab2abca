from __future__ import annotations

import math
from typing import Any, Sequence

from sqlalchemy.orm import Query, Session

from app.core.config import settings
from app.schemas.universal import PageMeta, PaginatedResult, Pagination


def page_offset(page: int, limit: int) -> int:
    return (page - 1) * limit


def fetch_page(db: Session, q: Query, pagination: Pagination) -> tuple[list[Any], int]:
    """Rows of the requested page plus the total of the fully filtered query.

    Both reads come from the same built query but are not snapshotted together
    unless ``QUERY_PAGINATION_ISOLATION_LEVEL`` is configured; under concurrent
    writes the total and the rows can disagree slightly.
    """
    isolation_level = settings.pagination_isolation_level
    if isolation_level is not None:
        # Only takes effect when this call starts the session's transaction.
        db.connection(execution_options={"isolation_level": isolation_level})
    total = q.order_by(None).count()
    rows = q.offset(page_offset(pagination.page, pagination.limit)).limit(pagination.limit).all()
    return rows, total


def assemble_page(rows: Sequence[Any], total: int, page: int, limit: int) -> PaginatedResult:
    total_pages = math.ceil(total / limit)
    return PaginatedResult(
        data=list(rows),
        meta=PageMeta(
            total=total,
            page=page,
            limit=limit,
            total_pages=total_pages,
            has_next_page=page < total_pages,
            has_prev_page=page > 1,
        ),
    )
