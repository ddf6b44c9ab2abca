from __future__ import annotations

import logging
import uuid
from typing import Any, Generic, Optional, TypeVar

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import Query, Session

from app.core.errors import NotFound
from app.schemas.universal import PaginatedResult, QuerySpec
from app.services.failure_classifier import storage_failures
from app.services.pagination import assemble_page, fetch_page
from app.services.query_normalizer import normalize_query_spec
from app.services.relation_expander import apply_relations
from app.services.universal_query import (
    apply_select,
    apply_soft_delete,
    apply_universal_query,
    coerce_filter_value,
    coerce_uuid_literal,
    resolve_column,
)

ModelT = TypeVar("ModelT")

_LOG = logging.getLogger("app.query")


class QueryRepository(Generic[ModelT]):
    """Read access to one mapped entity driven by a declarative ``QuerySpec``.

    The repository owns no state beyond the session and model it was built
    with; the session (and any transaction around it) belongs to the caller.
    """

    def __init__(self, db: Session, model: type[ModelT]):
        self.db = db
        self.model = model

    @property
    def entity_name(self) -> str:
        return self.model.__name__

    def build_query(self, spec: QuerySpec) -> Query:
        q = self.db.query(self.model)
        q = apply_relations(q, self.model, spec.relations, spec.include_soft_deleted)
        q = apply_select(q, self.model, spec.select)
        return apply_universal_query(q, self.model, spec)

    def find_many(self, spec: Any = None) -> list[ModelT]:
        with storage_failures("findMany", self.entity_name):
            return self.build_query(normalize_query_spec(spec)).all()

    def find_many_paginated(self, spec: Any = None) -> PaginatedResult[ModelT]:
        with storage_failures("findManyWithPagination", self.entity_name):
            canonical = normalize_query_spec(spec)
            pagination = canonical.resolved_pagination()
            rows, total = fetch_page(self.db, self.build_query(canonical), pagination)
            _LOG.debug(
                "%s page %s/%s: %s of %s rows",
                self.entity_name,
                pagination.page,
                pagination.limit,
                len(rows),
                total,
            )
            return assemble_page(rows, total, pagination.page, pagination.limit)

    def count(self, spec: Any = None) -> int:
        with storage_failures("count", self.entity_name):
            canonical = normalize_query_spec(spec)
            q = self.db.query(self.model)
            return apply_universal_query(q, self.model, canonical).order_by(None).count()

    def find_by_id(self, row_id: Any, relations: Optional[list[str]] = None, *, include_soft_deleted: bool = False) -> ModelT:
        with storage_failures("findById", self.entity_name):
            pk = self._primary_key()
            if _column_is_uuid(pk):
                row_id = coerce_uuid_literal(row_id, self.entity_name)
            else:
                row_id = coerce_filter_value(pk, row_id)
            q = apply_relations(self.db.query(self.model), self.model, relations, include_soft_deleted)
            q = apply_soft_delete(q, self.model, include_soft_deleted)
            row = q.filter(pk == row_id).first()
            if row is None:
                raise NotFound(f"{self.entity_name} with ID {row_id} not found", entity_name=self.entity_name)
            return row

    def exists(self, **criteria: Any) -> bool:
        with storage_failures("exists", self.entity_name):
            q = apply_soft_delete(self.db.query(self.model), self.model, False)
            for field, value in criteria.items():
                column = resolve_column(self.model, field)
                if column is None:
                    return False
                q = q.filter(column == value)
            return self.db.query(q.exists()).scalar()

    def _primary_key(self):
        mapper = sa_inspect(self.model)
        return getattr(self.model, mapper.get_property_by_column(mapper.primary_key[0]).key)


def _column_is_uuid(column) -> bool:
    try:
        return column.property.columns[0].type.python_type is uuid.UUID
    except Exception:
        return False
