from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import inspect as sa_inspect


def serialize_value(value: Any) -> Any:
    if isinstance(value, dict):
        return {key: serialize_value(val) for key, val in value.items()}
    if isinstance(value, list):
        return [serialize_value(item) for item in value]
    if isinstance(value, tuple):
        return [serialize_value(item) for item in value]
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, Decimal):
        return float(value)
    return value


def row_to_dict(row: Any, _path: frozenset = frozenset()) -> dict[str, Any]:
    """Loaded columns of ``row`` plus any relationship already loaded on it.

    Relationships are only included when eagerly joined, so serializing never
    triggers a lazy load.
    """
    state = sa_inspect(row)
    path = _path | {id(row)}
    mapper = state.mapper
    unloaded = state.unloaded
    payload = {
        attr.key: serialize_value(getattr(row, attr.key))
        for attr in mapper.column_attrs
        if attr.key not in unloaded
    }
    for rel in mapper.relationships:
        if rel.key in unloaded:
            continue
        related = getattr(row, rel.key)
        if related is None:
            payload[rel.key] = None
        elif rel.uselist:
            payload[rel.key] = [row_to_dict(item, path) for item in related if id(item) not in path]
        elif id(related) not in path:
            payload[rel.key] = row_to_dict(related, path)
    return payload
