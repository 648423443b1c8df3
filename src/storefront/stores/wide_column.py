"""
Single-table wide-column store interface and in-memory implementation.

The table holds items addressed by ``(PK, SK)`` with up to three secondary
indexes (``GSI1``-``GSI3``), each defined by an ``<index>PK`` and
``<index>SK`` attribute pair. Items without an index's partition attribute
are absent from that index.

Reads are page-at-a-time: ``query`` and ``scan`` return at most ``limit``
items plus a ``last_evaluated_key`` to resume from. ``query_all`` and
``scan_all`` follow the keys until the result set is exhausted.
"""

from __future__ import annotations

import asyncio
import copy
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from storefront.exceptions import ConditionalCheckFailedError
from storefront.observability import (
    ATTR_DB_NAME,
    ATTR_DB_OPERATION,
    ATTR_DB_SYSTEM,
    ATTR_INDEX_NAME,
    ATTR_PARTITION_KEY,
    Tracer,
    create_tracer,
)
from storefront.schema.mapper import ENTITY_TYPE_ATTR, INDEX_NAMES, Item

StartKey = dict[str, str]


@dataclass(frozen=True)
class ItemPage:
    """
    One page of a query or scan.

    Attributes:
        items: Items on this page, in read order
        last_evaluated_key: Key to pass as ``start_key`` for the next page,
            or None when there are no more items
    """

    items: list[Item] = field(default_factory=list)
    last_evaluated_key: StartKey | None = None


def key_attributes(index: str | None) -> tuple[str, str]:
    """Partition and sort attribute names for the base table or an index."""
    if index is None:
        return "PK", "SK"
    if index not in INDEX_NAMES:
        raise ValueError(f"Unknown index {index!r}; expected one of {INDEX_NAMES}")
    return f"{index}PK", f"{index}SK"


def start_key_for(item: Item, index: str | None) -> StartKey:
    """Build the resume key for ``item`` when reading ``index``."""
    key = {"PK": item["PK"], "SK": item["SK"]}
    if index is not None:
        pk_attr, sk_attr = key_attributes(index)
        key[pk_attr] = item[pk_attr]
        key[sk_attr] = item.get(sk_attr, "")
    return key


@runtime_checkable
class WideColumnTable(Protocol):
    """
    Protocol for single-table wide-column stores.

    Implementations:
    - InMemoryWideColumnTable: dict-backed, for tests and development
    - SQLiteWideColumnTable: aiosqlite-backed with real secondary indexes
    """

    @property
    def table_name(self) -> str: ...

    async def get_item(self, pk: str, sk: str) -> Item | None:
        """Fetch one item by primary key, or None."""
        ...

    async def put_item(self, item: Item, *, if_not_exists: bool = False) -> None:
        """
        Insert or replace an item.

        Raises:
            ConditionalCheckFailedError: If ``if_not_exists`` and the key is taken
        """
        ...

    async def delete_item(self, pk: str, sk: str) -> bool:
        """Delete one item. Returns True if it existed."""
        ...

    async def query(
        self,
        partition_value: str,
        *,
        index: str | None = None,
        sort_key_prefix: str | None = None,
        descending: bool = False,
        limit: int | None = None,
        start_key: StartKey | None = None,
    ) -> ItemPage:
        """
        Read items sharing a partition key, ordered by sort key.

        Args:
            partition_value: Value of ``PK`` (or ``<index>PK``)
            index: Secondary index name, or None for the base table
            sort_key_prefix: Only items whose sort key starts with this
            descending: Reverse sort order
            limit: Maximum items on the page (None for unlimited)
            start_key: ``last_evaluated_key`` of the previous page
        """
        ...

    async def scan(
        self,
        *,
        entity_type: str | None = None,
        limit: int | None = None,
        start_key: StartKey | None = None,
    ) -> ItemPage:
        """Read the whole table in primary-key order, optionally by ``EntityType``."""
        ...

    async def increment(
        self,
        pk: str,
        sk: str,
        attribute: str,
        delta: int | float,
        *,
        minimum: int | float | None = None,
        set_attributes: Mapping[str, Any] | None = None,
    ) -> Item:
        """
        Atomically add ``delta`` to a numeric attribute.

        The write happens only if the item exists and, when ``minimum`` is
        given, the new value would be ``>= minimum``.

        Returns:
            The item after the update

        Raises:
            ConditionalCheckFailedError: If the item is missing or the
                minimum would be violated. The item is left unchanged.
        """
        ...

    async def update_attributes(
        self,
        pk: str,
        sk: str,
        attributes: Mapping[str, Any],
        *,
        remove: Sequence[str] = (),
    ) -> Item:
        """
        Set and remove individual attributes of an existing item.

        Attributes not named keep their stored values, so a concurrent
        ``increment`` of another attribute is never overwritten.

        Returns:
            The item after the update

        Raises:
            ConditionalCheckFailedError: If the item does not exist
        """
        ...

    async def count(self, entity_type: str) -> int:
        """Number of items with the given ``EntityType``."""
        ...


async def query_all(
    table: WideColumnTable,
    partition_value: str,
    *,
    index: str | None = None,
    sort_key_prefix: str | None = None,
    descending: bool = False,
    page_size: int | None = None,
    max_items: int | None = None,
) -> list[Item]:
    """
    Follow ``last_evaluated_key`` until the query is exhausted.

    Args:
        max_items: Stop early once this many items are collected
    """
    items: list[Item] = []
    start_key: StartKey | None = None
    while True:
        limit = page_size
        if max_items is not None:
            remaining = max_items - len(items)
            limit = remaining if limit is None else min(limit, remaining)
        page = await table.query(
            partition_value,
            index=index,
            sort_key_prefix=sort_key_prefix,
            descending=descending,
            limit=limit,
            start_key=start_key,
        )
        items.extend(page.items)
        start_key = page.last_evaluated_key
        if start_key is None or (max_items is not None and len(items) >= max_items):
            return items


async def scan_all(
    table: WideColumnTable,
    *,
    entity_type: str | None = None,
    page_size: int | None = None,
) -> list[Item]:
    """Follow ``last_evaluated_key`` until the scan is exhausted."""
    items: list[Item] = []
    start_key: StartKey | None = None
    while True:
        page = await table.scan(entity_type=entity_type, limit=page_size, start_key=start_key)
        items.extend(page.items)
        start_key = page.last_evaluated_key
        if start_key is None:
            return items


class InMemoryWideColumnTable:
    """
    In-memory wide-column table.

    Items are deep-copied on the way in and out so callers cannot mutate
    stored state. All operations hold an asyncio.Lock, which makes
    ``increment`` atomic with respect to other coroutines.

    Example:
        >>> table = InMemoryWideColumnTable()
        >>> await table.put_item({"PK": "PRODUCT#1", "SK": "METADATA", "stock": 3})
        >>> await table.increment("PRODUCT#1", "METADATA", "stock", -5, minimum=0)
        Traceback (most recent call last):
        ...
        ConditionalCheckFailedError: ...
    """

    def __init__(
        self,
        table_name: str = "storefront",
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._table_name = table_name
        self._items: dict[tuple[str, str], Item] = {}
        self._lock = asyncio.Lock()
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    @property
    def table_name(self) -> str:
        return self._table_name

    def _attrs(self, operation: str) -> dict[str, Any]:
        return {ATTR_DB_SYSTEM: "memory", ATTR_DB_NAME: self._table_name, ATTR_DB_OPERATION: operation}

    async def get_item(self, pk: str, sk: str) -> Item | None:
        async with self._lock:
            item = self._items.get((pk, sk))
            return copy.deepcopy(item) if item is not None else None

    async def put_item(self, item: Item, *, if_not_exists: bool = False) -> None:
        key = (item["PK"], item["SK"])
        async with self._lock:
            if if_not_exists and key in self._items:
                raise ConditionalCheckFailedError(key[0], key[1], "item already exists")
            self._items[key] = copy.deepcopy(item)

    async def delete_item(self, pk: str, sk: str) -> bool:
        async with self._lock:
            return self._items.pop((pk, sk), None) is not None

    async def query(
        self,
        partition_value: str,
        *,
        index: str | None = None,
        sort_key_prefix: str | None = None,
        descending: bool = False,
        limit: int | None = None,
        start_key: StartKey | None = None,
    ) -> ItemPage:
        pk_attr, sk_attr = key_attributes(index)
        with self._tracer.span(
            "storefront.wide_column.query",
            {**self._attrs("query"), ATTR_INDEX_NAME: index or "", ATTR_PARTITION_KEY: partition_value},
        ):
            async with self._lock:
                matches = [
                    item
                    for item in self._items.values()
                    if item.get(pk_attr) == partition_value
                    and (sort_key_prefix is None or str(item.get(sk_attr, "")).startswith(sort_key_prefix))
                ]

            def order(item: Item) -> tuple[str, ...]:
                if index is None:
                    return (item["SK"],)
                return (str(item.get(sk_attr, "")), item["PK"], item["SK"])

            return self._page(matches, order, descending, limit, start_key, index)

    async def scan(
        self,
        *,
        entity_type: str | None = None,
        limit: int | None = None,
        start_key: StartKey | None = None,
    ) -> ItemPage:
        with self._tracer.span("storefront.wide_column.scan", self._attrs("scan")):
            async with self._lock:
                matches = [
                    item
                    for item in self._items.values()
                    if entity_type is None or item.get(ENTITY_TYPE_ATTR) == entity_type
                ]
            return self._page(matches, lambda i: (i["PK"], i["SK"]), False, limit, start_key, None)

    def _page(
        self,
        matches: list[Item],
        order: Any,
        descending: bool,
        limit: int | None,
        start_key: StartKey | None,
        index: str | None,
    ) -> ItemPage:
        matches.sort(key=order, reverse=descending)
        if start_key is not None:
            resume = order(start_key)
            if descending:
                matches = [m for m in matches if order(m) < resume]
            else:
                matches = [m for m in matches if order(m) > resume]
        if limit is not None and len(matches) > limit:
            page = matches[:limit]
            return ItemPage(
                items=[copy.deepcopy(i) for i in page],
                last_evaluated_key=start_key_for(page[-1], index),
            )
        return ItemPage(items=[copy.deepcopy(i) for i in matches])

    async def increment(
        self,
        pk: str,
        sk: str,
        attribute: str,
        delta: int | float,
        *,
        minimum: int | float | None = None,
        set_attributes: Mapping[str, Any] | None = None,
    ) -> Item:
        async with self._lock:
            item = self._items.get((pk, sk))
            if item is None:
                raise ConditionalCheckFailedError(pk, sk, "item does not exist")
            new_value = item.get(attribute, 0) + delta
            if minimum is not None and new_value < minimum:
                raise ConditionalCheckFailedError(
                    pk, sk, f"{attribute} would become {new_value}, below {minimum}"
                )
            item[attribute] = new_value
            if set_attributes:
                item.update(copy.deepcopy(dict(set_attributes)))
            return copy.deepcopy(item)

    async def update_attributes(
        self,
        pk: str,
        sk: str,
        attributes: Mapping[str, Any],
        *,
        remove: Sequence[str] = (),
    ) -> Item:
        async with self._lock:
            item = self._items.get((pk, sk))
            if item is None:
                raise ConditionalCheckFailedError(pk, sk, "item does not exist")
            item.update(copy.deepcopy(dict(attributes)))
            for name in remove:
                item.pop(name, None)
            return copy.deepcopy(item)

    async def count(self, entity_type: str) -> int:
        async with self._lock:
            return sum(1 for i in self._items.values() if i.get(ENTITY_TYPE_ATTR) == entity_type)

    async def clear(self) -> None:
        """Remove every item. Intended for tests."""
        async with self._lock:
            self._items.clear()


__all__ = [
    "InMemoryWideColumnTable",
    "ItemPage",
    "StartKey",
    "WideColumnTable",
    "key_attributes",
    "query_all",
    "scan_all",
    "start_key_for",
]
