"""
DualWriteCoordinator - one repository backed by a primary and a secondary store.

Used during the two dual-write phases. The coordinator implements the same
repository contract as a single store adapter, so callers cannot tell it
apart from one.

Write semantics:
    - Reads go to the primary only; the secondary is never consulted
    - Writes go to the primary first and are awaited
    - On primary success the same write is handed to the Replicator, which
      applies it to the secondary in the background
    - On primary failure the error propagates unchanged and the secondary
      is not touched
    - Secondary failures are recorded in the ErrorLog and never reach the
      caller

Replicated records keep the primary's identity: ``create`` replicates the
primary's result rather than the caller's input, and ``add_review`` builds
the review once so both stores hold the same review id.

Usage:
    >>> coordinator = DualWriteCoordinator(
    ...     document_products,
    ...     wide_column_products,
    ...     replicator,
    ...     kind=EntityKind.PRODUCT,
    ...     primary_role=StoreRole.DOCUMENT,
    ... )
    >>> product = await coordinator.create({"name": "Notebook", "price": 120000, "category": "Books"})
    >>> await coordinator.find_by_id(product.id)  # primary only
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from storefront.domain.entities import EntityKind, Review, build
from storefront.migration.models import StoreRole
from storefront.migration.replication import Replicator
from storefront.observability import (
    ATTR_ENTITY_KIND,
    ATTR_OPERATION,
    ATTR_RECORD_ID,
    ATTR_STORE_ROLE,
    Tracer,
    create_tracer,
)
from storefront.repositories.interface import EntityData
from storefront.repositories.query import Pagination, Query

logger = logging.getLogger(__name__)

READ_OPERATIONS: frozenset[str] = frozenset(
    {
        "find_by_id",
        "find_all",
        "search",
        "count",
        "find_by_category",
        "get_reviews",
        "find_by_user",
        "find_by_email",
        "find_by_name",
        "find_by_order_code",
        "find_by_status",
        "find_all_with_cursor",
        "get_related_products",
        "get_best_sellers",
        "get_products_by_ids",
    }
)
"""Operations served by the primary store alone."""

WRITE_OPERATIONS: frozenset[str] = frozenset(
    {"create", "update", "delete", "update_stock", "add_review", "delete_review"}
)
"""Operations applied to the primary, then replicated to the secondary."""


class DualWriteCoordinator:
    """
    Repository that writes to two stores and reads from one.

    Args:
        primary: Adapter serving reads and synchronous writes
        secondary: Adapter receiving replicated writes
        replicator: Background runner for secondary writes
        kind: Entity kind both adapters serve
        primary_role: Which physical store the primary is
        tracer: Optional custom Tracer instance
        enable_tracing: If True and OpenTelemetry is available, emit traces
    """

    def __init__(
        self,
        primary: Any,
        secondary: Any,
        replicator: Replicator,
        *,
        kind: EntityKind,
        primary_role: StoreRole,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._primary = primary
        self._secondary = secondary
        self._replicator = replicator
        self._kind = kind
        self._primary_role = primary_role
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    @property
    def primary(self) -> Any:
        return self._primary

    @property
    def secondary(self) -> Any:
        return self._secondary

    @property
    def kind(self) -> EntityKind:
        return self._kind

    # =========================================================================
    # Dispatch
    # =========================================================================

    async def _read(self, operation: str, *args: Any, **kwargs: Any) -> Any:
        if operation not in READ_OPERATIONS:
            raise ValueError(f"{operation} is not a read operation")
        return await getattr(self._primary, operation)(*args, **kwargs)

    async def _write(
        self,
        operation: str,
        record_id: str | None,
        args: tuple[Any, ...],
        *,
        replicate_result: bool = False,
    ) -> Any:
        """
        Apply ``operation`` to the primary, then replicate it.

        Args:
            operation: Write operation name
            record_id: Affected record, for tracing
            args: Positional arguments for both calls
            replicate_result: Pass the primary's result to the secondary instead of ``args``
        """
        if operation not in WRITE_OPERATIONS:
            raise ValueError(f"{operation} is not a write operation")

        attrs: dict[str, Any] = {
            ATTR_ENTITY_KIND: self._kind.value,
            ATTR_OPERATION: operation,
            ATTR_STORE_ROLE: self._primary_role.value,
        }
        if record_id is not None:
            attrs[ATTR_RECORD_ID] = record_id

        with self._tracer.span(f"storefront.dual_write.{operation}", attrs):
            result = await getattr(self._primary, operation)(*args)

        replicated = (result,) if replicate_result else args
        secondary_call = getattr(self._secondary, operation)
        self._replicator.submit(
            operation,
            lambda: secondary_call(*replicated),
            {"kind": self._kind.value, "args": list(replicated)},
        )
        logger.debug(
            "Primary %s of %s %s done; replication queued",
            operation,
            self._kind.value,
            record_id or getattr(result, "id", ""),
        )
        return result

    # =========================================================================
    # Repository contract - reads
    # =========================================================================

    async def find_by_id(self, record_id: str) -> Any:
        return await self._read("find_by_id", record_id)

    async def find_all(
        self, query: Query | None = None, pagination: Pagination | None = None
    ) -> Any:
        return await self._read("find_all", query, pagination)

    async def count(self, query: Query | None = None) -> int:
        return await self._read("count", query)

    async def search(self, keyword: str, pagination: Pagination | None = None) -> Any:
        return await self._read("search", keyword, pagination)

    async def find_by_category(self, category: str, pagination: Pagination | None = None) -> Any:
        return await self._read("find_by_category", category, pagination)

    async def get_reviews(self, product_id: str) -> list[Review]:
        return await self._read("get_reviews", product_id)

    async def find_all_with_cursor(
        self, query: Query | None = None, limit: int = 12, cursor: str | None = None
    ) -> Any:
        return await self._read("find_all_with_cursor", query, limit, cursor)

    async def get_related_products(self, product_id: str, limit: int = 6) -> Any:
        return await self._read("get_related_products", product_id, limit)

    async def get_best_sellers(self, limit: int = 10, category: str | None = None) -> Any:
        return await self._read("get_best_sellers", limit, category)

    async def get_products_by_ids(self, product_ids: Sequence[str]) -> Any:
        return await self._read("get_products_by_ids", product_ids)

    async def find_by_user(self, user_id: str) -> Any:
        return await self._read("find_by_user", user_id)

    async def find_by_order_code(self, order_code: str) -> Any:
        return await self._read("find_by_order_code", order_code)

    async def find_by_status(self, order_status: str) -> Any:
        return await self._read("find_by_status", order_status)

    async def find_by_email(self, email: str) -> Any:
        return await self._read("find_by_email", email)

    async def find_by_name(self, name: str) -> Any:
        return await self._read("find_by_name", name)

    # =========================================================================
    # Repository contract - writes
    # =========================================================================

    async def create(self, data: EntityData) -> Any:
        # the secondary receives the stored entity so it keeps the primary's id
        return await self._write("create", None, (data,), replicate_result=True)

    async def update(self, record_id: str, changes: Mapping[str, Any]) -> Any:
        return await self._write("update", record_id, (record_id, dict(changes)))

    async def delete(self, record_id: str) -> bool:
        return await self._write("delete", record_id, (record_id,))

    async def update_stock(self, product_id: str, delta: int) -> Any:
        return await self._write("update_stock", product_id, (product_id, delta))

    async def add_review(self, product_id: str, review: Review | Mapping[str, Any]) -> Any:
        built = build(Review, review)
        return await self._write("add_review", product_id, (product_id, built))

    async def delete_review(self, product_id: str, review_id: str) -> Any:
        return await self._write("delete_review", product_id, (product_id, review_id))


__all__ = [
    "READ_OPERATIONS",
    "WRITE_OPERATIONS",
    "DualWriteCoordinator",
]
