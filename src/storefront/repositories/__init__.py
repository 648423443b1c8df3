"""
Repository contract and store adapters.

Protocols:
- Repository, ProductRepository, OrderRepository, UserRepository, CategoryRepository

Adapters:
- Document*Repository: one document per entity, children embedded
- WideColumn*Repository: single-table items with secondary indexes

Factories:
- document_repositories(store): adapter per entity kind on a document store
- wide_column_repositories(table, mapper): adapter per entity kind on a table
"""

from __future__ import annotations

from typing import Any

from storefront.domain.entities import EntityKind
from storefront.observability import Tracer
from storefront.repositories.document import (
    DOCUMENT_REPOSITORIES,
    DocumentCategoryRepository,
    DocumentOrderRepository,
    DocumentProductRepository,
    DocumentRepository,
    DocumentUserRepository,
)
from storefront.repositories.interface import (
    CategoryRepository,
    EntityData,
    OrderRepository,
    ProductRepository,
    Repository,
    UserRepository,
)
from storefront.repositories.query import CursorPage, Filter, Page, Pagination, Query
from storefront.repositories.wide_column import (
    WIDE_COLUMN_REPOSITORIES,
    WideColumnCategoryRepository,
    WideColumnOrderRepository,
    WideColumnProductRepository,
    WideColumnRepository,
    WideColumnUserRepository,
)
from storefront.schema.mapper import SchemaMapper
from storefront.stores.documents import DocumentStore
from storefront.stores.wide_column import WideColumnTable


def document_repositories(
    store: DocumentStore,
    *,
    default_page_size: int = 12,
    tracer: Tracer | None = None,
    enable_tracing: bool = True,
) -> dict[EntityKind, Any]:
    """Build one document-store adapter per entity kind."""
    return {
        kind: cls(
            store,
            default_page_size=default_page_size,
            tracer=tracer,
            enable_tracing=enable_tracing,
        )
        for kind, cls in DOCUMENT_REPOSITORIES.items()
    }


def wide_column_repositories(
    table: WideColumnTable,
    mapper: SchemaMapper,
    *,
    default_page_size: int = 12,
    tracer: Tracer | None = None,
    enable_tracing: bool = True,
) -> dict[EntityKind, Any]:
    """Build one wide-column adapter per entity kind, sharing ``table`` and ``mapper``."""
    return {
        kind: cls(
            table,
            mapper,
            default_page_size=default_page_size,
            tracer=tracer,
            enable_tracing=enable_tracing,
        )
        for kind, cls in WIDE_COLUMN_REPOSITORIES.items()
    }


__all__ = [
    # Protocols
    "CategoryRepository",
    "EntityData",
    "OrderRepository",
    "ProductRepository",
    "Repository",
    "UserRepository",
    # Query types
    "CursorPage",
    "Filter",
    "Page",
    "Pagination",
    "Query",
    # Document adapters
    "DocumentCategoryRepository",
    "DocumentOrderRepository",
    "DocumentProductRepository",
    "DocumentRepository",
    "DocumentUserRepository",
    # Wide-column adapters
    "WideColumnCategoryRepository",
    "WideColumnOrderRepository",
    "WideColumnProductRepository",
    "WideColumnRepository",
    "WideColumnUserRepository",
    # Factories
    "document_repositories",
    "wide_column_repositories",
]
