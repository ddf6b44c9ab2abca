from __future__ import annotations

import json
import logging
from typing import Any, Mapping

from pydantic import ValidationError

from app.core.errors import InvalidQuery
from app.schemas.universal import QuerySpec

_LOG = logging.getLogger("app.query")

_LIST_SECTIONS = ("sort", "filters", "relations", "select")
_FLAT_SEARCH_KEYS = ("query", "fields", "operator")


def _parse_json_lenient(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    try:
        return json.loads(value)
    except ValueError:
        # Malformed encodings are passed through untouched; callers see "no effect".
        return value


def _as_list(value: Any) -> list[Any]:
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _upper_or_same(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().upper()
    return value


def _normalize_sort_item(item: Any) -> Any:
    if isinstance(item, Mapping) and "direction" in item:
        return {**item, "direction": _upper_or_same(item["direction"])}
    return item


def _normalize_search(value: Any) -> Any:
    if not isinstance(value, Mapping):
        return value
    search = dict(value)
    if "query" not in search and "term" in search:
        search["query"] = search.pop("term")
    for key in ("operator", "combinator"):
        if key in search:
            search[key] = _upper_or_same(search[key])
    if "fields" in search:
        search["fields"] = _as_list(_parse_json_lenient(search["fields"]))
    return search


def _canonical_sections(raw: Mapping[str, Any]) -> dict[str, Any]:
    sections: dict[str, Any] = {}

    pagination = _parse_json_lenient(raw.get("pagination"))
    if not isinstance(pagination, Mapping):
        pagination = {}
    pagination = {k: v for k, v in pagination.items() if v is not None}
    for key in ("page", "limit"):
        if raw.get(key) is not None and key not in pagination:
            pagination[key] = raw[key]
    if pagination:
        sections["pagination"] = pagination

    for name in _LIST_SECTIONS:
        value = _parse_json_lenient(raw.get(name))
        if value is None:
            continue
        if isinstance(value, str) and name in ("sort", "filters"):
            _LOG.debug("Dropping undecodable %s section", name)
            continue
        items = _as_list(value)
        if name == "sort":
            items = [_normalize_sort_item(item) for item in items]
        sections[name] = items

    search = _parse_json_lenient(raw.get("search"))
    if isinstance(search, (str, int, float)) and not isinstance(search, bool):
        # Plain search text, as sent by flat query strings.
        search = {"query": str(search)}
    flat = {key: raw[key] for key in _FLAT_SEARCH_KEYS if raw.get(key) is not None}
    if flat:
        search = {**flat, **search} if isinstance(search, Mapping) else flat
    search = _normalize_search(search)
    if isinstance(search, Mapping):
        sections["search"] = search
    elif search is not None:
        _LOG.debug("Dropping undecodable search section")

    raw_with_deleted = raw.get("withDeleted", raw.get("include_soft_deleted"))
    with_deleted = _parse_bool_param(_parse_json_lenient(raw_with_deleted))
    if with_deleted is not None:
        sections["include_soft_deleted"] = with_deleted
    elif raw_with_deleted is not None:
        _LOG.debug("Dropping undecodable withDeleted flag %r", raw_with_deleted)

    return sections


def normalize_query_spec(raw: Any) -> QuerySpec:
    """Turn loosely-shaped caller input into a canonical ``QuerySpec``.

    ``raw`` may be ``None``, an existing ``QuerySpec``, a mapping following the
    JSON wire grammar, or that mapping encoded as a JSON string. A lone clause
    where a list is expected is wrapped into a one-element list and string
    encoded sections are decoded; anything that still cannot be decoded is
    dropped instead of failing the request.

    Raises ``InvalidQuery`` when the decoded clauses do not fit the contract
    (unknown operator, non-positive page, clause without a field).
    """
    if isinstance(raw, QuerySpec):
        return raw
    raw = _parse_json_lenient(raw)
    if raw is None:
        return QuerySpec()
    if not isinstance(raw, Mapping):
        _LOG.debug("Ignoring query description of type %s", type(raw).__name__)
        return QuerySpec()
    try:
        return QuerySpec.model_validate(_canonical_sections(raw))
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        raise InvalidQuery(f"Invalid query description: {problems}") from exc


def _parse_bool_param(value: str | bool | None) -> bool | None:
    if value is None or isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in {"1", "true", "yes", "y"}:
        return True
    if text in {"0", "false", "no", "n"}:
        return False
    return None


def _names_param(value: str | list[str] | None) -> list[Any] | None:
    """Names from a JSON list, a comma separated string or a repeated parameter."""
    names: list[Any] = []
    for item in _as_list(value) if value is not None else ():
        decoded = _parse_json_lenient(item)
        if isinstance(decoded, str):
            names.extend(part.strip() for part in decoded.split(",") if part.strip())
        elif isinstance(decoded, (list, tuple)):
            names.extend(decoded)
        elif decoded is not None:
            names.append(decoded)
    return names or None


def normalize_query_params(
    *,
    pagination: str | None = None,
    page: str | int | None = None,
    limit: str | int | None = None,
    sort: str | None = None,
    filters: str | None = None,
    search: str | None = None,
    query: str | None = None,
    fields: str | list[str] | None = None,
    operator: str | None = None,
    relations: str | list[str] | None = None,
    select: str | list[str] | None = None,
    with_deleted: str | bool | None = None,
) -> QuerySpec:
    """Query-string entry point: every parameter arrives as text that may hold JSON.

    ``search`` may also be plain search text, with ``query``, ``fields`` and
    ``operator`` sent as separate parameters. ``relations``, ``select`` and
    ``fields`` accept a JSON list, a comma separated list or a repeated parameter.
    """
    raw: dict[str, Any] = {
        "pagination": pagination,
        "page": page,
        "limit": limit,
        "sort": sort,
        "filters": filters,
        "search": search,
        "query": query or None,
        "fields": _names_param(fields),
        "operator": operator or None,
        "relations": _names_param(relations),
        "select": _names_param(select),
        "withDeleted": with_deleted,
    }
    return normalize_query_spec(raw)
