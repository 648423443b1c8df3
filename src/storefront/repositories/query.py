"""
Query, pagination and result types for storefront repositories.

Repositories retrieve candidates from their store (through an index where an
equality filter allows it), then apply the remaining filters, the keyword
search and the ordering in memory. Pagination slices that filtered, ordered
result set, so counts always describe the filtered set.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Generic, Literal, TypeVar

from storefront.exceptions import ValidationError

T = TypeVar("T")

Operator = Literal["eq", "ne", "gt", "gte", "lt", "lte", "in", "not_in"]


@dataclass(frozen=True)
class Filter:
    """
    A single filter condition.

    Attributes:
        field: Entity attribute to filter on
        operator: Comparison operator (eq, ne, gt, gte, lt, lte, in, not_in)
        value: Value to compare against

    Example:
        >>> Filter.eq("category", "Books")
        Filter(field='category', operator='eq', value='Books')
        >>> str(Filter.gte("price", 100000))
        'price >= 100000'
    """

    field: str
    operator: Operator
    value: Any

    @classmethod
    def eq(cls, field: str, value: Any) -> Filter:
        return cls(field=field, operator="eq", value=value)

    @classmethod
    def ne(cls, field: str, value: Any) -> Filter:
        return cls(field=field, operator="ne", value=value)

    @classmethod
    def gt(cls, field: str, value: Any) -> Filter:
        return cls(field=field, operator="gt", value=value)

    @classmethod
    def gte(cls, field: str, value: Any) -> Filter:
        return cls(field=field, operator="gte", value=value)

    @classmethod
    def lt(cls, field: str, value: Any) -> Filter:
        return cls(field=field, operator="lt", value=value)

    @classmethod
    def lte(cls, field: str, value: Any) -> Filter:
        return cls(field=field, operator="lte", value=value)

    @classmethod
    def in_(cls, field: str, values: Sequence[Any]) -> Filter:
        return cls(field=field, operator="in", value=list(values))

    @classmethod
    def not_in(cls, field: str, values: Sequence[Any]) -> Filter:
        return cls(field=field, operator="not_in", value=list(values))

    def __str__(self) -> str:
        op_symbols = {
            "eq": "=",
            "ne": "!=",
            "gt": ">",
            "gte": ">=",
            "lt": "<",
            "lte": "<=",
            "in": "IN",
            "not_in": "NOT IN",
        }
        return f"{self.field} {op_symbols[self.operator]} {self.value!r}"


@dataclass
class Query:
    """
    Filters, keyword and ordering for ``find_all``.

    All filters are combined with AND. The keyword matches the entity's
    searchable text case-insensitively, with or without diacritics.

    Attributes:
        filters: Filter conditions
        keyword: Free-text search term
        order_by: Attribute to order by (None keeps store order)
        order_direction: 'asc' or 'desc'

    Example:
        >>> query = Query(
        ...     filters=[Filter.eq("category", "Books"), Filter.lte("price", 200000)],
        ...     keyword="sach",
        ...     order_by="price",
        ... )
    """

    filters: list[Filter] = field(default_factory=list)
    keyword: str | None = None
    order_by: str | None = None
    order_direction: Literal["asc", "desc"] = "asc"

    @classmethod
    def from_params(
        cls,
        *,
        keyword: str | None = None,
        category: str | None = None,
        price_gte: float | None = None,
        price_lte: float | None = None,
        ratings_gte: float | None = None,
        sort_by_price: str | int | None = None,
    ) -> Query:
        """
        Build a product listing query from storefront request parameters.

        ``sort_by_price`` accepts ``"asc"``, ``"1"`` or ``1`` for ascending;
        any other non-empty value sorts descending.
        """
        filters: list[Filter] = []
        if category:
            filters.append(Filter.eq("category", category))
        if price_gte is not None:
            filters.append(Filter.gte("price", price_gte))
        if price_lte is not None:
            filters.append(Filter.lte("price", price_lte))
        if ratings_gte is not None:
            filters.append(Filter.gte("ratings", ratings_gte))
        query = cls(filters=filters, keyword=keyword or None)
        if sort_by_price not in (None, ""):
            ascending = str(sort_by_price).lower() in ("asc", "1")
            query = query.with_order("price", "asc" if ascending else "desc")
        return query

    def with_filter(self, filter_: Filter) -> Query:
        return Query(
            filters=[*self.filters, filter_],
            keyword=self.keyword,
            order_by=self.order_by,
            order_direction=self.order_direction,
        )

    def with_keyword(self, keyword: str | None) -> Query:
        return Query(
            filters=self.filters.copy(),
            keyword=keyword,
            order_by=self.order_by,
            order_direction=self.order_direction,
        )

    def with_order(self, field: str, direction: Literal["asc", "desc"] = "asc") -> Query:
        return Query(
            filters=self.filters.copy(),
            keyword=self.keyword,
            order_by=field,
            order_direction=direction,
        )

    def equality_value(self, field: str) -> Any | None:
        """Value of the first ``eq`` filter on ``field``, if any."""
        for f in self.filters:
            if f.field == field and f.operator == "eq":
                return f.value
        return None

    def __str__(self) -> str:
        parts = []
        if self.filters:
            parts.append("WHERE " + " AND ".join(str(f) for f in self.filters))
        if self.keyword:
            parts.append(f"KEYWORD {self.keyword!r}")
        if self.order_by:
            parts.append(f"ORDER BY {self.order_by} {self.order_direction.upper()}")
        return " ".join(parts) if parts else "(all records)"


@dataclass(frozen=True)
class Pagination:
    """
    Page request.

    Attributes:
        page: 1-based page number
        limit: Page size; 0 returns every record on one page
    """

    page: int = 1
    limit: int = 12

    def __post_init__(self) -> None:
        if self.page < 1:
            raise ValidationError(f"page must be >= 1, got {self.page}", field="page")
        if self.limit < 0:
            raise ValidationError(f"limit must be >= 0, got {self.limit}", field="limit")

    @classmethod
    def all(cls) -> Pagination:
        """Request every record."""
        return cls(page=1, limit=0)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


@dataclass(frozen=True)
class Page(Generic[T]):
    """
    One page of results.

    Attributes:
        items: Records on this page
        count: Number of records matching the query (all pages)
        page: 1-based page number
        pages: Number of pages; 1 when the page size is 0
    """

    items: list[T]
    count: int
    page: int
    pages: int

    @classmethod
    def slice(cls, records: list[T], pagination: Pagination) -> Page[T]:
        """Cut one page out of an already filtered and ordered result set."""
        count = len(records)
        if pagination.limit == 0:
            return cls(items=list(records), count=count, page=pagination.page, pages=1)
        start = pagination.offset
        return cls(
            items=records[start : start + pagination.limit],
            count=count,
            page=pagination.page,
            pages=math.ceil(count / pagination.limit),
        )


@dataclass(frozen=True)
class CursorPage(Generic[T]):
    """
    One page of a cursor-paginated listing.

    Attributes:
        items: Records on this page
        next_cursor: Opaque cursor for the following page, or None
    """

    items: list[T]
    next_cursor: str | None = None

    @property
    def has_more(self) -> bool:
        return self.next_cursor is not None


__all__ = [
    "CursorPage",
    "Filter",
    "Operator",
    "Page",
    "Pagination",
    "Query",
]
