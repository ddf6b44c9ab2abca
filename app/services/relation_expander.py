from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import Query, joinedload

from app.core.config import settings
from app.services.universal_query import resolve_column

_LOG = logging.getLogger("app.query")


@dataclass(frozen=True)
class RelationJoin:
    """One LEFT OUTER join of ``name`` off the entity aliased ``parent_alias``."""

    parent_alias: str
    name: str

    @property
    def alias(self) -> str:
        return self.name

    @property
    def key(self) -> str:
        return f"{self.parent_alias}.{self.name}"


def root_alias_for(model) -> str:
    return model.__name__.lower()


def plan_relation_joins(paths: Iterable[str], root_alias: str) -> list[RelationJoin]:
    """Expand dot-separated relation paths into the joins they need.

    Joins are keyed by ``<left alias>.<segment>`` so shared prefixes are joined
    once, and they come out in first-seen order.
    """
    seen: set[str] = set()
    plan: list[RelationJoin] = []
    for path in paths or ():
        parent = root_alias
        for segment in (part.strip() for part in str(path).split(".")):
            if not segment:
                break
            join = RelationJoin(parent_alias=parent, name=segment)
            if join.key not in seen:
                seen.add(join.key)
                plan.append(join)
            parent = join.alias
    return plan


def _without_soft_deleted(attr, target):
    column = resolve_column(target, settings.QUERY_SOFT_DELETE_COLUMN)
    if column is None:
        return attr
    return attr.and_(column.is_(None))


def apply_relation_joins(q: Query, model, plan: list[RelationJoin], include_soft_deleted: bool = False) -> Query:
    # alias -> (mapped class, loader chain reaching it)
    reached: dict[str, tuple[type, object | None]] = {root_alias_for(model): (model, None)}
    for join in plan:
        parent = reached.get(join.parent_alias)
        if parent is None:
            continue
        parent_model, parent_loader = parent
        relationship = sa_inspect(parent_model).relationships.get(join.name)
        if relationship is None:
            _LOG.debug("Skipping unknown relation %r on %s", join.name, parent_model.__name__)
            continue
        target = relationship.mapper.class_
        attr = getattr(parent_model, join.name)
        if not include_soft_deleted:
            attr = _without_soft_deleted(attr, target)
        if parent_loader is None:
            loader = joinedload(attr, innerjoin=False)
        else:
            loader = parent_loader.joinedload(attr, innerjoin=False)
        reached[join.alias] = (target, loader)
        q = q.options(loader)
    return q


def apply_relations(q: Query, model, relations, include_soft_deleted: Optional[bool] = False) -> Query:
    """Eager-load ``relations``; soft-deleted related rows stay hidden unless included."""
    if not relations:
        return q
    plan = plan_relation_joins(relations, root_alias_for(model))
    return apply_relation_joins(q, model, plan, bool(include_soft_deleted))
