from typing import List, Optional

from fastapi import Query

from app.schemas.universal import QuerySpec
from app.services.query_normalizer import normalize_query_params


def query_spec_from_params(
    pagination: Optional[str] = Query(None, description='JSON object, e.g. {"page": 1, "limit": 10}'),
    page: Optional[int] = Query(None, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    sort: Optional[str] = Query(None, description="JSON sort clause or list of clauses"),
    filters: Optional[str] = Query(None, description="JSON filter condition or list of conditions"),
    search: Optional[str] = Query(None, description='Search text or JSON object {"query", "fields", "operator"}'),
    query: Optional[str] = Query(None, description="Search text"),
    fields: Optional[List[str]] = Query(None, description="Searched fields; repeat or comma separate"),
    operator: Optional[str] = Query(None, description="AND or OR across searched fields"),
    relations: Optional[List[str]] = Query(None, description="Relation paths; repeat, comma separate or JSON list"),
    select: Optional[List[str]] = Query(None, description="Column names; repeat, comma separate or JSON list"),
    with_deleted: Optional[str] = Query(None, alias="withDeleted"),
) -> QuerySpec:
    return normalize_query_params(
        pagination=pagination,
        page=page,
        limit=limit,
        sort=sort,
        filters=filters,
        search=search,
        query=query,
        fields=fields,
        operator=operator,
        relations=relations,
        select=select,
        with_deleted=with_deleted,
    )
