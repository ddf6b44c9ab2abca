from __future__ import annotations

from typing import Any, List, Optional

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import query_spec_from_params
from app.db.session import get_db
from app.schemas.universal import PaginatedResult, QuerySpec
from app.services.query_normalizer import normalize_query_params, normalize_query_spec
from app.services.repository import QueryRepository
from app.services.serialization import row_to_dict


def _page_payload(result: PaginatedResult) -> dict[str, Any]:
    return {
        "data": [row_to_dict(row) for row in result.data],
        "meta": result.meta.model_dump(by_alias=True),
    }


def build_listing_router(model: type, path: str) -> APIRouter:
    """Read-only listing endpoints for one mapped entity."""
    router = APIRouter(prefix=f"/{path.strip('/')}", tags=[path.strip("/")])

    @router.get("")
    def list_rows(spec: QuerySpec = Depends(query_spec_from_params), db: Session = Depends(get_db)):
        return _page_payload(QueryRepository(db, model).find_many_paginated(spec))

    @router.post("/query")
    def query_rows(payload: Any = Body(default=None), db: Session = Depends(get_db)):
        spec = normalize_query_spec(payload)
        return _page_payload(QueryRepository(db, model).find_many_paginated(spec))

    @router.get("/{row_id}")
    def get_row(row_id: str, relations: Optional[List[str]] = Query(None), db: Session = Depends(get_db)):
        paths = normalize_query_params(relations=relations).relations
        return row_to_dict(QueryRepository(db, model).find_by_id(row_id, paths))

    return router
