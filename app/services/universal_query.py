import logging
import uuid
from datetime import date, datetime, timezone
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Optional

from sqlalchemy import String, and_, asc, bindparam, cast, desc, inspect as sa_inspect, or_
from sqlalchemy.orm import Query, load_only

from app.core.config import settings
from app.core.errors import InvalidIdentifier, InvalidQuery
from app.schemas.universal import (
    FilterCondition,
    FilterOperator,
    LIST_OPERATORS,
    NULLARY_OPERATORS,
    QuerySpec,
    SearchClause,
    SearchCombinator,
    SortDirection,
)

_LOG = logging.getLogger("app.query")


def _bad_filter_value(column_key: str, kind: str) -> InvalidQuery:
    return InvalidQuery(f'Invalid filter value for field "{column_key}" ({kind})')


def _coerce_bool_filter_value(column_key: str, value):
    if isinstance(value, bool):
        return value
    text = str(value or "").strip().lower()
    if text in {"1", "true", "yes", "y"}:
        return True
    if text in {"0", "false", "no", "n"}:
        return False
    raise _bad_filter_value(column_key, "boolean")


def _coerce_number_filter_value(column_key: str, value, python_type):
    if python_type in {int, float} and isinstance(value, (int, float)) and not isinstance(value, bool):
        return python_type(value)
    if python_type is Decimal and isinstance(value, Decimal):
        return value
    text = str(value).strip()
    if not text:
        raise _bad_filter_value(column_key, "number")
    normalized = text.replace(",", ".")
    try:
        if python_type is int:
            return int(normalized)
        if python_type is float:
            return float(normalized)
        return Decimal(normalized)
    except (ValueError, TypeError, InvalidOperation):
        raise _bad_filter_value(column_key, "number")


def _coerce_date_filter_value(column_key: str, value):
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    text = str(value or "").strip()
    if not text:
        raise _bad_filter_value(column_key, "date")
    try:
        # Accept either YYYY-MM-DD or full ISO datetime and take its date part.
        if "T" in text or " " in text:
            return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
        return date.fromisoformat(text)
    except ValueError:
        raise _bad_filter_value(column_key, "date")


def _coerce_datetime_filter_value(column_key: str, value):
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value or "").strip()
        if not text:
            raise _bad_filter_value(column_key, "datetime")
        try:
            if "T" not in text and " " not in text and len(text) == 10:
                # Date-only filter value for timestamp columns -> start of the day.
                parsed = datetime.combine(date.fromisoformat(text), datetime.min.time())
            else:
                parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            raise _bad_filter_value(column_key, "datetime")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def coerce_uuid_literal(value, entity_name: Optional[str] = None) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    text = str(value if value is not None else "").strip()
    try:
        return uuid.UUID(text)
    except ValueError:
        raise InvalidIdentifier(text, entity_name=entity_name)


def _column_python_type(column):
    try:
        return column.property.columns[0].type.python_type
    except Exception:
        return None


def _column_type(column):
    return column.property.columns[0].type


def coerce_filter_value(column, value):
    if value is None:
        return None
    python_type = _column_python_type(column)
    if python_type is None:
        return value
    if python_type is uuid.UUID:
        return coerce_uuid_literal(value)
    if python_type is bool:
        return _coerce_bool_filter_value(column.key, value)
    if python_type in {int, float, Decimal}:
        return _coerce_number_filter_value(column.key, value, python_type)
    if python_type is date:
        return _coerce_date_filter_value(column.key, value)
    if python_type is datetime:
        return _coerce_datetime_filter_value(column.key, value)
    return value


def _is_date_only_filter_literal(raw_value) -> bool:
    if isinstance(raw_value, date) and not isinstance(raw_value, datetime):
        return True
    if not isinstance(raw_value, str):
        return False
    text = raw_value.strip()
    if not text or "T" in text or " " in text:
        return False
    try:
        date.fromisoformat(text)
        return True
    except ValueError:
        return False


def resolve_column(model, field: str):
    """Mapped column attribute named ``field`` on ``model``, or None."""
    mapper = sa_inspect(model)
    if field not in mapper.column_attrs:
        return None
    return getattr(model, field)


def _bound(column, name: str, value):
    return bindparam(name, coerce_filter_value(column, value), type_=_column_type(column))


def _day_range(column, param: str, cond: FilterCondition):
    day_start = coerce_filter_value(column, cond.value)
    day_end = day_start + timedelta(days=1)
    start = bindparam(f"{param}_start", day_start, type_=_column_type(column))
    end = bindparam(f"{param}_end", day_end, type_=_column_type(column))
    return and_(column >= start, column < end)


def _eq(column, param, cond):
    if _column_python_type(column) is datetime and _is_date_only_filter_literal(cond.value):
        return _day_range(column, param, cond)
    return column == _bound(column, param, cond.value)


def _ne(column, param, cond):
    if _column_python_type(column) is datetime and _is_date_only_filter_literal(cond.value):
        return ~_day_range(column, param, cond)
    return column != _bound(column, param, cond.value)


def _as_text(column):
    if isinstance(_column_type(column), String):
        return column
    return cast(column, String)


def _substring(cond: FilterCondition) -> str:
    # Wildcards inside the value are not escaped.
    return f"%{cond.value}%"


def _in(column, param, cond):
    values = [coerce_filter_value(column, v) for v in cond.values or ()]
    if not values:
        return None
    return column.in_(bindparam(param, values, expanding=True, type_=_column_type(column)))


def _nin(column, param, cond):
    values = [coerce_filter_value(column, v) for v in cond.values or ()]
    if not values:
        return None
    return column.not_in(bindparam(param, values, expanding=True, type_=_column_type(column)))


def _between(column, param, cond):
    if cond.values is None or len(cond.values) != 2:
        return None
    low, high = cond.values
    return column.between(
        _bound(column, f"{param}_start", low),
        _bound(column, f"{param}_end", high),
    )


PredicateBuilder = Callable[[Any, str, FilterCondition], Any]

PREDICATE_BUILDERS: dict[FilterOperator, PredicateBuilder] = {
    FilterOperator.EQ: _eq,
    FilterOperator.NE: _ne,
    FilterOperator.GT: lambda column, param, cond: column > _bound(column, param, cond.value),
    FilterOperator.GTE: lambda column, param, cond: column >= _bound(column, param, cond.value),
    FilterOperator.LT: lambda column, param, cond: column < _bound(column, param, cond.value),
    FilterOperator.LTE: lambda column, param, cond: column <= _bound(column, param, cond.value),
    FilterOperator.LIKE: lambda column, param, cond: _as_text(column).like(bindparam(param, _substring(cond))),
    FilterOperator.ILIKE: lambda column, param, cond: _as_text(column).ilike(bindparam(param, _substring(cond))),
    FilterOperator.IN: _in,
    FilterOperator.NIN: _nin,
    FilterOperator.BETWEEN: _between,
    FilterOperator.IS_NULL: lambda column, param, cond: column.is_(None),
    FilterOperator.IS_NOT_NULL: lambda column, param, cond: column.is_not(None),
}

_VALUE_OPERATORS = frozenset(FilterOperator) - LIST_OPERATORS - NULLARY_OPERATORS


def build_filter_predicate(model, cond: FilterCondition, index: int):
    """Backend predicate for one condition, or None when it has no effect."""
    column = resolve_column(model, cond.field)
    if column is None:
        _LOG.debug("Skipping filter on unknown field %r", cond.field)
        return None
    if cond.operator in _VALUE_OPERATORS and cond.value is None:
        return None
    return PREDICATE_BUILDERS[cond.operator](column, f"filter_{index}", cond)


def apply_filters(q: Query, model, filters) -> Query:
    for index, cond in enumerate(filters or ()):
        predicate = build_filter_predicate(model, cond, index)
        if predicate is not None:
            q = q.filter(predicate)
    return q


def build_search_predicate(model, search: SearchClause):
    if not search.query or not search.fields:
        return None
    clauses = []
    for index, field in enumerate(search.fields):
        column = resolve_column(model, field)
        if column is None:
            _LOG.debug("Skipping search on unknown field %r", field)
            continue
        clauses.append(_as_text(column).ilike(bindparam(f"search_{index}", f"%{search.query}%")))
    if not clauses:
        return None
    combine = and_ if search.combinator == SearchCombinator.AND else or_
    return combine(*clauses).self_group()


def apply_search(q: Query, model, search: Optional[SearchClause]) -> Query:
    if search is None:
        return q
    predicate = build_search_predicate(model, search)
    if predicate is None:
        return q
    return q.filter(predicate)


def apply_sorting(q: Query, model, sort) -> Query:
    for s in sort or ():
        col = resolve_column(model, s.field)
        if col is None:
            _LOG.debug("Skipping sort on unknown field %r", s.field)
            continue
        q = q.order_by(asc(col) if s.direction == SortDirection.ASC else desc(col))
    return q


def apply_soft_delete(q: Query, model, include_soft_deleted: Optional[bool]) -> Query:
    if include_soft_deleted:
        return q
    col = resolve_column(model, settings.QUERY_SOFT_DELETE_COLUMN)
    if col is None:
        return q
    return q.filter(col.is_(None))


def apply_select(q: Query, model, select) -> Query:
    columns = [c for c in (resolve_column(model, name) for name in select or ()) if c is not None]
    if not columns:
        return q
    return q.options(load_only(*columns))


def apply_universal_query(q: Query, model, spec: QuerySpec) -> Query:
    q = apply_soft_delete(q, model, spec.include_soft_deleted)
    q = apply_filters(q, model, spec.filters)
    q = apply_search(q, model, spec.search)
    q = apply_sorting(q, model, spec.sort)
    return q
