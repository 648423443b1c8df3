"""
Repository contract for storefront entities.

Domain services depend only on these protocols. Each is implemented by a
document-store adapter, a wide-column adapter and the dual-write
coordinator, and callers cannot tell which one they were handed.

Behaviour shared by every implementation:

- ``find_by_id`` returns None for an unknown id.
- ``update`` raises ``NotFoundError`` for an unknown id and refreshes
  ``updated_at``.
- ``delete`` returns whether a record was removed.
- ``create`` keeps the id of an entity it is given, which is how replicated
  records keep their identity, and raises ``ValidationError`` if the id
  is taken.
- ``find_all`` pages through the filtered, ordered result set; ``limit=0``
  returns everything on one page.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Protocol, TypeVar, runtime_checkable

from storefront.domain.entities import Category, Entity, Order, Product, Review, User
from storefront.repositories.query import CursorPage, Page, Pagination, Query

TEntity_co = TypeVar("TEntity_co", bound=Entity, covariant=True)

EntityData = Entity | Mapping[str, Any]


@runtime_checkable
class Repository(Protocol[TEntity_co]):
    """CRUD operations common to every entity kind."""

    async def find_by_id(self, record_id: str) -> TEntity_co | None: ...

    async def find_all(
        self,
        query: Query | None = None,
        pagination: Pagination | None = None,
    ) -> Page[TEntity_co]: ...

    async def create(self, data: EntityData) -> TEntity_co: ...

    async def update(self, record_id: str, changes: Mapping[str, Any]) -> TEntity_co: ...

    async def delete(self, record_id: str) -> bool: ...

    async def count(self, query: Query | None = None) -> int: ...


@runtime_checkable
class ProductRepository(Repository[Product], Protocol):
    """Products, their stock and their reviews."""

    async def update_stock(self, product_id: str, delta: int) -> Product:
        """
        Add ``delta`` to stock atomically.

        Raises:
            NotFoundError: If the product does not exist
            InsufficientStockError: If stock would drop below zero; stock is unchanged
        """
        ...

    async def add_review(self, product_id: str, review: Review | Mapping[str, Any]) -> Product:
        """Add or replace the reviewer's review and recompute ratings."""
        ...

    async def delete_review(self, product_id: str, review_id: str) -> Product:
        """Remove a review and recompute ratings."""
        ...

    async def get_reviews(self, product_id: str) -> list[Review]: ...

    async def find_by_category(
        self, category: str, pagination: Pagination | None = None
    ) -> list[Product]: ...

    async def search(self, keyword: str, pagination: Pagination | None = None) -> list[Product]: ...

    async def find_all_with_cursor(
        self,
        query: Query | None = None,
        limit: int = 12,
        cursor: str | None = None,
    ) -> CursorPage[Product]: ...

    async def get_related_products(self, product_id: str, limit: int = 6) -> list[Product]: ...

    async def get_best_sellers(
        self, limit: int = 10, category: str | None = None
    ) -> list[Product]: ...

    async def get_products_by_ids(self, product_ids: Sequence[str]) -> list[Product]: ...


@runtime_checkable
class OrderRepository(Repository[Order], Protocol):
    async def find_by_user(self, user_id: str) -> list[Order]: ...

    async def find_by_order_code(self, order_code: str) -> Order | None: ...

    async def find_by_status(self, order_status: str) -> list[Order]: ...


@runtime_checkable
class UserRepository(Repository[User], Protocol):
    async def find_by_email(self, email: str) -> User | None: ...


@runtime_checkable
class CategoryRepository(Repository[Category], Protocol):
    async def find_by_name(self, name: str) -> Category | None: ...


__all__ = [
    "CategoryRepository",
    "EntityData",
    "OrderRepository",
    "ProductRepository",
    "Repository",
    "UserRepository",
]
