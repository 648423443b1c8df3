"""
Wide-column store adapters.

Entities live in one table as a metadata item plus owned child items under
the same partition key (see ``storefront.schema.mapper`` for the layout).

Listing reads candidates through a secondary index when the query has an
equality filter on an indexed attribute, and falls back to a full scan
filtered by ``EntityType`` otherwise. Candidates are always re-checked
against the entity type, since some index partitions (``USER#<id>`` on
GSI1) hold more than one kind of item.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from contextlib import AbstractContextManager
from typing import Any, ClassVar, Generic

from storefront.domain.entities import (
    Category,
    EntityKind,
    Order,
    Product,
    Review,
    TEntity,
    User,
    aggregate_ratings,
    apply_changes,
    build,
    utcnow,
)
from storefront.exceptions import (
    ConditionalCheckFailedError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)
from storefront.observability import (
    ATTR_ENTITY_KIND,
    ATTR_INDEX_NAME,
    ATTR_OPERATION,
    ATTR_RECORD_COUNT,
    ATTR_RECORD_ID,
    ATTR_STORE_ROLE,
    Tracer,
    create_tracer,
)
from storefront.repositories._filtering import (
    apply_query,
    decode_cursor,
    encode_cursor,
    rank_best_sellers,
)
from storefront.repositories.interface import EntityData
from storefront.repositories.query import CursorPage, Filter, Page, Pagination, Query
from storefront.schema.mapper import (
    ENTITY_TYPE_ATTR,
    METADATA,
    EntityMapper,
    Item,
    ProductMapper,
    SchemaMapper,
)
from storefront.stores.wide_column import WideColumnTable, query_all, scan_all

logger = logging.getLogger(__name__)

_RATING_ATTRIBUTES = ("ratings", "num_of_reviews", "GSI2SK", "updated_at")


class WideColumnRepository(Generic[TEntity]):
    """
    Base adapter mapping one entity kind onto the shared wide-column table.

    Args:
        table: Wide-column table backend
        mapper: Entity/item translation for every kind
        default_page_size: Page size used when ``find_all`` gets no pagination
        tracer: Optional custom Tracer instance
        enable_tracing: If True and OpenTelemetry is available, emit traces
    """

    kind: ClassVar[EntityKind]

    def __init__(
        self,
        table: WideColumnTable,
        mapper: SchemaMapper,
        *,
        default_page_size: int = 12,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._table = table
        self._schema = mapper
        self._mapper: EntityMapper[Any] = mapper.for_kind(self.kind)
        self._default_pagination = Pagination(page=1, limit=default_page_size)
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    def _span(
        self, operation: str, record_id: str | None = None, index: str | None = None
    ) -> AbstractContextManager[Any]:
        attrs: dict[str, Any] = {
            ATTR_ENTITY_KIND: self.kind.value,
            ATTR_OPERATION: operation,
            ATTR_STORE_ROLE: "wide_column",
        }
        if record_id is not None:
            attrs[ATTR_RECORD_ID] = record_id
        if index is not None:
            attrs[ATTR_INDEX_NAME] = index
        return self._tracer.span(f"storefront.wide_column_repository.{operation}", attrs)

    @property
    def _has_children(self) -> bool:
        return bool(self._mapper.model._child_fields())

    def _entities(self, items: list[Item]) -> list[TEntity]:
        """Decode metadata items of this kind, skipping everything else."""
        entity_type = self.kind.entity_type
        return [
            self._mapper.from_item(item)
            for item in items
            if item.get(ENTITY_TYPE_ATTR) == entity_type and item.get("SK") == METADATA
        ]

    async def _partition(self, record_id: str) -> list[Item]:
        return await query_all(self._table, self._mapper.partition_key(record_id))

    async def _with_children(self, entity: TEntity) -> TEntity:
        if not self._has_children:
            return entity
        items = [i for i in await self._partition(entity.id) if i["SK"] != METADATA]
        return self._mapper.attach_children(entity, items)

    async def _put_children(self, entity: TEntity) -> None:
        for child in self._mapper.child_items(entity):
            await self._table.put_item(child)

    async def _delete_children(self, record_id: str) -> None:
        for item in await self._partition(record_id):
            if item["SK"] != METADATA:
                await self._table.delete_item(item["PK"], item["SK"])

    async def _query_index(
        self,
        index: str,
        partition_value: str,
        *,
        sort_key_prefix: str | None = None,
        max_items: int | None = None,
    ) -> list[TEntity]:
        items = await query_all(
            self._table,
            partition_value,
            index=index,
            sort_key_prefix=sort_key_prefix,
            descending=True,
            max_items=max_items,
        )
        return self._entities(items)

    async def _candidates(self, query: Query | None) -> list[TEntity]:
        """Entities of this kind narrowed by the first indexed equality filter."""
        for filter_ in query.filters if query else ():
            if filter_.operator != "eq":
                continue
            index = self._mapper.index_for(filter_.field)
            if index is not None:
                index_name, prefix = index
                return await self._query_index(index_name, f"{prefix}{filter_.value}")

        logger.debug(
            "No indexed equality filter for %s query (%s); scanning table %s",
            self.kind.value,
            query or "all records",
            self._table.table_name,
        )
        return self._entities(await scan_all(self._table, entity_type=self.kind.entity_type))

    async def _patch(
        self, current: TEntity, updated: TEntity, always: Sequence[str] = ()
    ) -> Item:
        """
        Write only the metadata attributes that differ between two versions.

        Attributes the caller did not change (``stock`` in particular) keep
        whatever the table holds now, not the value read into ``current``.
        """
        before = self._mapper.to_item(current)
        after = self._mapper.to_item(updated)
        attributes = {
            name: value
            for name, value in after.items()
            if name in always or before.get(name) != value
        }
        remove = [name for name in before if name not in after]
        try:
            return await self._table.update_attributes(
                after["PK"], after["SK"], attributes, remove=remove
            )
        except ConditionalCheckFailedError:
            raise NotFoundError(self.kind.value, current.id) from None

    async def _require(self, record_id: str) -> TEntity:
        entity = await self.find_by_id(record_id)
        if entity is None:
            raise NotFoundError(self.kind.value, record_id)
        return entity

    async def find_by_id(self, record_id: str) -> TEntity | None:
        with self._span("find_by_id", record_id):
            item = await self._table.get_item(*self._mapper.keys(record_id))
            if item is None:
                return None
            return await self._with_children(self._mapper.from_item(item))

    async def find_all(
        self,
        query: Query | None = None,
        pagination: Pagination | None = None,
    ) -> Page[TEntity]:
        with self._span("find_all") as span:
            results = apply_query(await self._candidates(query), query)
            page = Page.slice(results, pagination or self._default_pagination)
            if span:
                span.set_attribute(ATTR_RECORD_COUNT, page.count)
            if self.kind is EntityKind.ORDER:
                items = list(await asyncio.gather(*(self._with_children(e) for e in page.items)))
                page = Page(items=items, count=page.count, page=page.page, pages=page.pages)
            return page

    async def create(self, data: EntityData) -> TEntity:
        entity = build(self._mapper.model, data)
        with self._span("create", entity.id):
            try:
                await self._table.put_item(self._mapper.to_item(entity), if_not_exists=True)
            except ConditionalCheckFailedError as exc:
                raise ValidationError(
                    f"{self.kind.value} {entity.id} already exists", field="id"
                ) from exc
            await self._put_children(entity)
            logger.debug("Created %s %s in wide-column store", self.kind.value, entity.id)
            return entity

    async def update(self, record_id: str, changes: Mapping[str, Any]) -> TEntity:
        with self._span("update", record_id):
            current = await self._require(record_id)
            updated = apply_changes(current, dict(changes))
            item = await self._patch(current, updated)
            if self._mapper.model._child_fields() & set(changes):
                await self._delete_children(record_id)
                await self._put_children(updated)
            return await self._with_children(self._mapper.from_item(item))

    async def delete(self, record_id: str) -> bool:
        with self._span("delete", record_id):
            existed = False
            for item in await self._partition(record_id):
                deleted = await self._table.delete_item(item["PK"], item["SK"])
                existed = existed or (deleted and item["SK"] == METADATA)
            if existed:
                logger.debug("Deleted %s %s from wide-column store", self.kind.value, record_id)
            return existed

    async def count(self, query: Query | None = None) -> int:
        with self._span("count"):
            if query is None:
                return await self._table.count(self.kind.entity_type)
            return len(apply_query(await self._candidates(query), query))


class WideColumnProductRepository(WideColumnRepository[Product]):
    """Products, with reviews stored as ``REVIEW#<userId>`` child items."""

    kind = EntityKind.PRODUCT

    @property
    def _products(self) -> ProductMapper:
        return self._schema.products

    async def update_stock(self, product_id: str, delta: int) -> Product:
        pk, sk = self._mapper.keys(product_id)
        with self._span("update_stock", product_id):
            try:
                item = await self._table.increment(
                    pk,
                    sk,
                    "stock",
                    delta,
                    minimum=0,
                    set_attributes={"updated_at": utcnow().isoformat()},
                )
            except ConditionalCheckFailedError:
                current = await self._table.get_item(pk, sk)
                if current is None:
                    raise NotFoundError(self.kind.value, product_id) from None
                raise InsufficientStockError(product_id, current.get("stock", 0), delta) from None
            return await self._with_children(self._mapper.from_item(item))

    async def _save_ratings(self, product: Product) -> Product:
        """Recompute the aggregate from the review items now in the table."""
        ratings, num_of_reviews = aggregate_ratings(await self.get_reviews(product.id))
        updated = product.model_copy(
            update={"ratings": ratings, "num_of_reviews": num_of_reviews, "updated_at": utcnow()}
        )
        item = await self._patch(product, updated, always=_RATING_ATTRIBUTES)
        return await self._with_children(self._mapper.from_item(item))

    async def add_review(self, product_id: str, review: Review | Mapping[str, Any]) -> Product:
        new_review = build(Review, review)
        with self._span("add_review", product_id):
            product = await self._require(product_id)
            await self._table.put_item(self._products.review_item(product_id, new_review))
            return await self._save_ratings(product)

    async def delete_review(self, product_id: str, review_id: str) -> Product:
        with self._span("delete_review", product_id):
            product = await self._require(product_id)
            target = next((r for r in product.reviews if r.id == review_id), None)
            if target is None:
                raise NotFoundError("review", review_id)
            await self._table.delete_item(
                self._mapper.partition_key(product_id), f"REVIEW#{target.user_id}"
            )
            return await self._save_ratings(product)

    async def get_reviews(self, product_id: str) -> list[Review]:
        items = await query_all(
            self._table, self._mapper.partition_key(product_id), sort_key_prefix="REVIEW#"
        )
        reviews = [self._products.review_from_item(item) for item in items]
        return sorted(reviews, key=lambda r: r.created_at)

    async def find_by_category(
        self, category: str, pagination: Pagination | None = None
    ) -> list[Product]:
        page = await self.find_all(Query(filters=[Filter.eq("category", category)]), pagination)
        return page.items

    async def search(self, keyword: str, pagination: Pagination | None = None) -> list[Product]:
        page = await self.find_all(Query(keyword=keyword), pagination)
        return page.items

    async def find_all_with_cursor(
        self,
        query: Query | None = None,
        limit: int = 12,
        cursor: str | None = None,
    ) -> CursorPage[Product]:
        """
        Read one store page and filter it.

        Pages are cut before filtering, so a page may hold fewer than
        ``limit`` products while ``next_cursor`` is still set.
        """
        start_key = decode_cursor(cursor) if cursor else None
        category = query.equality_value("category") if query else None
        with self._span("find_all_with_cursor", index="GSI1" if category else None):
            if category is not None:
                item_page = await self._table.query(
                    f"CATEGORY#{category}",
                    index="GSI1",
                    descending=True,
                    limit=limit,
                    start_key=start_key,
                )
            else:
                item_page = await self._table.scan(
                    entity_type=self.kind.entity_type, limit=limit, start_key=start_key
                )
            products = apply_query(self._entities(item_page.items), query)
            next_key = item_page.last_evaluated_key
            return CursorPage(
                items=products,
                next_cursor=encode_cursor(next_key) if next_key is not None else None,
            )

    async def get_related_products(self, product_id: str, limit: int = 6) -> list[Product]:
        item = await self._table.get_item(*self._mapper.keys(product_id))
        if item is None:
            return []
        related = await self._query_index(
            "GSI1", f"CATEGORY#{item['category']}", max_items=limit + 1
        )
        return [p for p in related if p.id != product_id][:limit]

    async def get_best_sellers(self, limit: int = 10, category: str | None = None) -> list[Product]:
        query = Query(filters=[Filter.eq("category", category)]) if category else None
        return rank_best_sellers(await self._candidates(query), limit)

    async def get_products_by_ids(self, product_ids: Sequence[str]) -> list[Product]:
        found = await asyncio.gather(*(self.find_by_id(pid) for pid in product_ids))
        return [p for p in found if p is not None]


class WideColumnOrderRepository(WideColumnRepository[Order]):
    """Orders, with line items stored as ``ITEM#<productId>`` child items."""

    kind = EntityKind.ORDER

    async def _hydrate(self, orders: list[Order]) -> list[Order]:
        return list(await asyncio.gather(*(self._with_children(o) for o in orders)))

    async def find_by_user(self, user_id: str) -> list[Order]:
        with self._span("find_by_user", index="GSI1"):
            orders = await self._query_index("GSI1", f"USER#{user_id}", sort_key_prefix="ORDER#")
            return await self._hydrate(orders)

    async def find_by_order_code(self, order_code: str) -> Order | None:
        with self._span("find_by_order_code", index="GSI3"):
            orders = await self._query_index("GSI3", f"ORDERCODE#{order_code}", max_items=1)
            return await self._with_children(orders[0]) if orders else None

    async def find_by_status(self, order_status: str) -> list[Order]:
        with self._span("find_by_status", index="GSI2"):
            orders = await self._query_index("GSI2", f"STATUS#{order_status}")
            return await self._hydrate(orders)


class WideColumnUserRepository(WideColumnRepository[User]):
    kind = EntityKind.USER

    async def find_by_email(self, email: str) -> User | None:
        users = await self._query_index("GSI1", f"EMAIL#{email}", max_items=1)
        return users[0] if users else None


class WideColumnCategoryRepository(WideColumnRepository[Category]):
    kind = EntityKind.CATEGORY

    async def find_by_name(self, name: str) -> Category | None:
        categories = await self._query_index("GSI1", f"NAME#{name}", max_items=1)
        return categories[0] if categories else None


WIDE_COLUMN_REPOSITORIES: dict[EntityKind, type[WideColumnRepository[Any]]] = {
    EntityKind.PRODUCT: WideColumnProductRepository,
    EntityKind.ORDER: WideColumnOrderRepository,
    EntityKind.USER: WideColumnUserRepository,
    EntityKind.CATEGORY: WideColumnCategoryRepository,
}


__all__ = [
    "WIDE_COLUMN_REPOSITORIES",
    "WideColumnCategoryRepository",
    "WideColumnOrderRepository",
    "WideColumnProductRepository",
    "WideColumnRepository",
    "WideColumnUserRepository",
]
