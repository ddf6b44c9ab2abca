from enum import Enum
from typing import Any, Generic, List, Optional, Tuple, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from app.core.config import settings

T = TypeVar("T")


class FilterOperator(str, Enum):
    EQ = "eq"
    NE = "ne"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    LIKE = "like"
    ILIKE = "ilike"
    IN = "in"
    NIN = "nin"
    BETWEEN = "between"
    IS_NULL = "isNull"
    IS_NOT_NULL = "isNotNull"


# Operators reading `values` instead of `value`.
LIST_OPERATORS = frozenset({FilterOperator.IN, FilterOperator.NIN, FilterOperator.BETWEEN})
# Operators reading neither.
NULLARY_OPERATORS = frozenset({FilterOperator.IS_NULL, FilterOperator.IS_NOT_NULL})


class SortDirection(str, Enum):
    ASC = "ASC"
    DESC = "DESC"


class SearchCombinator(str, Enum):
    AND = "AND"
    OR = "OR"


class _Canonical(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class Pagination(_Canonical):
    page: int = Field(default_factory=lambda: settings.QUERY_DEFAULT_PAGE, ge=1)
    limit: int = Field(default_factory=lambda: settings.QUERY_DEFAULT_LIMIT, ge=1)


class SortClause(_Canonical):
    field: str
    direction: SortDirection = SortDirection.ASC


class FilterCondition(_Canonical):
    field: str
    operator: FilterOperator
    value: Any = None
    values: Optional[Tuple[Any, ...]] = None


class SearchClause(_Canonical):
    fields: Tuple[str, ...] = ()
    query: str = ""
    combinator: SearchCombinator = Field(SearchCombinator.OR, alias="operator")


class QuerySpec(_Canonical):
    """Canonical description of one listing request.

    Every section is optional; an absent section has no effect on the query.
    """

    pagination: Optional[Pagination] = None
    sort: Optional[Tuple[SortClause, ...]] = None
    filters: Optional[Tuple[FilterCondition, ...]] = None
    search: Optional[SearchClause] = None
    relations: Optional[Tuple[str, ...]] = None
    select: Optional[Tuple[str, ...]] = None
    include_soft_deleted: Optional[bool] = Field(None, alias="withDeleted")

    def resolved_pagination(self) -> Pagination:
        return self.pagination if self.pagination is not None else Pagination()


class PageMeta(_Canonical):
    total: int
    page: int
    limit: int
    total_pages: int = Field(alias="totalPages")
    has_next_page: bool = Field(alias="hasNextPage")
    has_prev_page: bool = Field(alias="hasPrevPage")


class PaginatedResult(BaseModel, Generic[T]):
    model_config = ConfigDict(frozen=True, populate_by_name=True, arbitrary_types_allowed=True)

    data: List[T]
    meta: PageMeta
