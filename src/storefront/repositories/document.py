"""
Document-store adapters.

Each entity is one document in its collection, with owned sub-records
(reviews, order line items) embedded. Listing loads the collection and
applies filters, keyword search and ordering in memory.
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
    ATTR_OPERATION,
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
from storefront.stores.documents import Document, DocumentStore

logger = logging.getLogger(__name__)

_REVIEW_FIELDS = ("reviews", "ratings", "num_of_reviews", "updated_at")


class DocumentRepository(Generic[TEntity]):
    """
    Base adapter mapping one entity kind onto one document collection.

    Args:
        store: Document store backend
        default_page_size: Page size used when ``find_all`` gets no pagination
        tracer: Optional custom Tracer instance
        enable_tracing: If True and OpenTelemetry is available, emit traces
    """

    kind: ClassVar[EntityKind]
    model: ClassVar[type[Any]]
    collection: ClassVar[str]

    def __init__(
        self,
        store: DocumentStore,
        *,
        default_page_size: int = 12,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._store = store
        self._default_pagination = Pagination(page=1, limit=default_page_size)
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    def _span(self, operation: str, record_id: str | None = None) -> AbstractContextManager[Any]:
        attrs: dict[str, Any] = {
            ATTR_ENTITY_KIND: self.kind.value,
            ATTR_OPERATION: operation,
            ATTR_STORE_ROLE: "document",
        }
        if record_id is not None:
            attrs[ATTR_RECORD_ID] = record_id
        return self._tracer.span(f"storefront.document.{operation}", attrs)

    def _to_document(self, entity: TEntity) -> Document:
        return entity.model_dump(mode="json")

    def _from_document(self, document: Document) -> TEntity:
        return build(self.model, document)

    async def _load_all(self) -> list[TEntity]:
        return [self._from_document(d) for d in await self._store.find(self.collection)]

    async def _find_where(self, **where: Any) -> list[TEntity]:
        return [self._from_document(d) for d in await self._store.find(self.collection, where)]

    async def _set_fields(self, record_id: str, fields: Document) -> TEntity:
        document = await self._store.set_fields(self.collection, record_id, fields)
        if document is None:
            raise NotFoundError(self.kind.value, record_id)
        return self._from_document(document)

    async def _require(self, record_id: str) -> TEntity:
        entity = await self.find_by_id(record_id)
        if entity is None:
            raise NotFoundError(self.kind.value, record_id)
        return entity

    async def find_by_id(self, record_id: str) -> TEntity | None:
        with self._span("find_by_id", record_id):
            document = await self._store.get(self.collection, record_id)
            return self._from_document(document) if document is not None else None

    async def find_all(
        self,
        query: Query | None = None,
        pagination: Pagination | None = None,
    ) -> Page[TEntity]:
        with self._span("find_all"):
            results = apply_query(await self._load_all(), query)
            return Page.slice(results, pagination or self._default_pagination)

    async def create(self, data: EntityData) -> TEntity:
        entity = build(self.model, data)
        with self._span("create", entity.id):
            try:
                await self._store.insert(self.collection, self._to_document(entity))
            except ConditionalCheckFailedError as exc:
                raise ValidationError(
                    f"{self.kind.value} {entity.id} already exists", field="id"
                ) from exc
            logger.debug("Created %s %s in document store", self.kind.value, entity.id)
            return entity

    async def update(self, record_id: str, changes: Mapping[str, Any]) -> TEntity:
        with self._span("update", record_id):
            current = await self._require(record_id)
            before = self._to_document(current)
            after = self._to_document(apply_changes(current, dict(changes)))
            fields = {name: value for name, value in after.items() if before.get(name) != value}
            return await self._set_fields(record_id, fields)

    async def delete(self, record_id: str) -> bool:
        with self._span("delete", record_id):
            deleted = await self._store.delete(self.collection, record_id)
            if deleted:
                logger.debug("Deleted %s %s from document store", self.kind.value, record_id)
            return deleted

    async def count(self, query: Query | None = None) -> int:
        with self._span("count"):
            if query is None:
                return await self._store.count(self.collection)
            return len(apply_query(await self._load_all(), query))


class DocumentProductRepository(DocumentRepository[Product]):
    """Products with embedded reviews."""

    kind = EntityKind.PRODUCT
    model = Product
    collection = "products"

    async def update_stock(self, product_id: str, delta: int) -> Product:
        with self._span("update_stock", product_id):
            try:
                document = await self._store.increment(
                    self.collection,
                    product_id,
                    "stock",
                    delta,
                    minimum=0,
                    set_fields={"updated_at": utcnow().isoformat()},
                )
            except ConditionalCheckFailedError:
                current = await self.find_by_id(product_id)
                if current is None:
                    raise NotFoundError(self.kind.value, product_id) from None
                raise InsufficientStockError(product_id, current.stock, delta) from None
            return self._from_document(document)

    async def _save_reviews(self, product: Product, reviews: list[Review]) -> Product:
        ratings, num_of_reviews = aggregate_ratings(reviews)
        updated = product.model_copy(
            update={
                "reviews": reviews,
                "ratings": ratings,
                "num_of_reviews": num_of_reviews,
                "updated_at": utcnow(),
            }
        )
        document = self._to_document(updated)
        # stock is never written back from the snapshot
        return await self._set_fields(
            product.id, {name: document[name] for name in _REVIEW_FIELDS}
        )

    async def add_review(self, product_id: str, review: Review | Mapping[str, Any]) -> Product:
        new_review = build(Review, review)
        with self._span("add_review", product_id):
            product = await self._require(product_id)
            reviews = [r for r in product.reviews if r.user_id != new_review.user_id]
            reviews.append(new_review)
            return await self._save_reviews(product, reviews)

    async def delete_review(self, product_id: str, review_id: str) -> Product:
        with self._span("delete_review", product_id):
            product = await self._require(product_id)
            reviews = [r for r in product.reviews if r.id != review_id]
            if len(reviews) == len(product.reviews):
                raise NotFoundError("review", review_id)
            return await self._save_reviews(product, reviews)

    async def get_reviews(self, product_id: str) -> list[Review]:
        product = await self.find_by_id(product_id)
        return list(product.reviews) if product is not None else []

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
        offset = int(decode_cursor(cursor).get("offset", 0)) if cursor else 0
        with self._span("find_all_with_cursor"):
            results = apply_query(await self._load_all(), query)
            end = offset + limit
            next_cursor = encode_cursor({"offset": end}) if end < len(results) else None
            return CursorPage(items=results[offset:end], next_cursor=next_cursor)

    async def get_related_products(self, product_id: str, limit: int = 6) -> list[Product]:
        product = await self.find_by_id(product_id)
        if product is None:
            return []
        related = await self._find_where(category=product.category)
        return [p for p in related if p.id != product_id][:limit]

    async def get_best_sellers(self, limit: int = 10, category: str | None = None) -> list[Product]:
        products = await self._find_where(category=category) if category else await self._load_all()
        return rank_best_sellers(products, limit)

    async def get_products_by_ids(self, product_ids: Sequence[str]) -> list[Product]:
        found = await asyncio.gather(*(self.find_by_id(pid) for pid in product_ids))
        return [p for p in found if p is not None]


class DocumentOrderRepository(DocumentRepository[Order]):
    """Orders with embedded line items."""

    kind = EntityKind.ORDER
    model = Order
    collection = "orders"

    async def find_by_user(self, user_id: str) -> list[Order]:
        orders = await self._find_where(user_id=user_id)
        return sorted(orders, key=lambda o: o.created_at, reverse=True)

    async def find_by_order_code(self, order_code: str) -> Order | None:
        orders = await self._find_where(order_code=order_code)
        return orders[0] if orders else None

    async def find_by_status(self, order_status: str) -> list[Order]:
        return await self._find_where(order_status=order_status)


class DocumentUserRepository(DocumentRepository[User]):
    kind = EntityKind.USER
    model = User
    collection = "users"

    async def find_by_email(self, email: str) -> User | None:
        users = await self._find_where(email=email)
        return users[0] if users else None


class DocumentCategoryRepository(DocumentRepository[Category]):
    kind = EntityKind.CATEGORY
    model = Category
    collection = "categories"

    async def find_by_name(self, name: str) -> Category | None:
        categories = await self._find_where(name=name)
        return categories[0] if categories else None


DOCUMENT_REPOSITORIES: dict[EntityKind, type[DocumentRepository[Any]]] = {
    EntityKind.PRODUCT: DocumentProductRepository,
    EntityKind.ORDER: DocumentOrderRepository,
    EntityKind.USER: DocumentUserRepository,
    EntityKind.CATEGORY: DocumentCategoryRepository,
}


__all__ = [
    "DOCUMENT_REPOSITORIES",
    "DocumentCategoryRepository",
    "DocumentOrderRepository",
    "DocumentProductRepository",
    "DocumentRepository",
    "DocumentUserRepository",
]
