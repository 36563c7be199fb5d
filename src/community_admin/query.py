from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union


@dataclass(frozen=True)
class EqualsFilter:
    column: str
    value: Any


@dataclass(frozen=True)
class RangeFilter:
    """
    Inclusive ``gte``/``lte`` bounds on one column. Either side may be ``None``
    to leave it open.
    """

    column: str
    gte: Any = None
    lte: Any = None


@dataclass(frozen=True)
class NotNullFilter:
    column: str


@dataclass(frozen=True)
class InFilter:
    column: str
    values: Tuple[Any, ...]


Filter = Union[EqualsFilter, RangeFilter, NotNullFilter, InFilter]


@dataclass(frozen=True)
class SearchClause:
    """Case-insensitive substring match OR-combined across ``columns``."""

    columns: Tuple[str, ...]
    term: str


@dataclass(frozen=True)
class OrderBy:
    column: str
    ascending: bool = True


@dataclass(frozen=True)
class PageRequest:
    page: int = 1
    page_size: int = 20

    def __post_init__(self) -> None:
        if self.page < 1:
            raise ValueError("page must be >= 1")
        if self.page_size < 1:
            raise ValueError("page_size must be > 0")

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size

    def row_range(self) -> Tuple[int, int]:
        """Inclusive ``(from, to)`` row indexes covered by this page."""
        start = self.offset
        return start, start + self.page_size - 1

    def total_pages(self, count: int) -> int:
        return total_pages(count, self.page_size)


def total_pages(count: int, page_size: int) -> int:
    if page_size < 1:
        raise ValueError("page_size must be > 0")
    return math.ceil(max(count, 0) / page_size)


@dataclass(frozen=True)
class Query:
    """
    Immutable description of a read against one table.

    Backends translate it into their own dialect; ``row_range`` is inclusive on
    both ends, matching the hosted store's range semantics.
    """

    table: str
    columns: str = "*"
    filters: Tuple[Filter, ...] = ()
    search: Optional[SearchClause] = None
    order: Tuple[OrderBy, ...] = ()
    row_range: Optional[Tuple[int, int]] = None
    limit: Optional[int] = None
    count: bool = False

    def where(self, *filters: Filter) -> "Query":
        return replace(self, filters=self.filters + tuple(filters))

    def search_for(self, term: str, columns: Sequence[str]) -> "Query":
        term = (term or "").strip()
        if not term or not columns:
            return self
        return replace(self, search=SearchClause(columns=tuple(columns), term=term))

    def order_by(self, column: str, ascending: bool = True) -> "Query":
        return replace(self, order=self.order + (OrderBy(column, ascending),))

    def paginate(self, page: PageRequest) -> "Query":
        return replace(self, row_range=page.row_range(), count=True)

    def with_limit(self, limit: Optional[int]) -> "Query":
        return replace(self, limit=limit)

    def with_count(self) -> "Query":
        return replace(self, count=True)


@dataclass
class QueryResult:
    rows: List[Dict[str, Any]] = field(default_factory=list)
    count: Optional[int] = None
