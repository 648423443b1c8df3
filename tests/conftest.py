"""
Shared pytest fixtures for the storefront tests.

This module provides:
- Entity data factories (product_data, order_data, user_data, category_data)
- In-memory backends (document_store, table)
- Adapter fixtures (mapper, document_repos, wide_column_repos)
- Yielding adapters whose stores suspend at every call (yielding_document_repos,
  yielding_wide_column_repos)
- Migration fixtures (error_log, controller)
- SQLite fixtures (sqlite_table, sql_document_store)
"""

from __future__ import annotations

import asyncio
import functools
import inspect
from collections.abc import AsyncGenerator, Callable
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import pytest
import pytest_asyncio

from storefront.domain.entities import EntityKind
from storefront.migration.error_log import ErrorLog
from storefront.migration.router import PhaseController
from storefront.repositories import document_repositories, wide_column_repositories
from storefront.schema.mapper import SchemaMapper
from storefront.stores.documents import InMemoryDocumentStore
from storefront.stores.wide_column import InMemoryWideColumnTable

if TYPE_CHECKING:
    from storefront.stores.sql_documents import SQLDocumentStore
    from storefront.stores.sqlite_wide_column import SQLiteWideColumnTable

ASSET_BASE_URL = "https://cdn.example.com"

# ============================================================================
# SQLite Availability Check
# ============================================================================

AIOSQLITE_AVAILABLE = False
try:
    import aiosqlite  # noqa: F401

    AIOSQLITE_AVAILABLE = True
except ImportError:
    pass


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "sqlite: marks tests that require SQLite (aiosqlite)")


# ============================================================================
# Entity Data Factories
# ============================================================================


@pytest.fixture
def product_data() -> Callable[..., dict[str, Any]]:
    """
    Factory for product input data.

    Example:
        def test_something(product_data):
            data = product_data(price=250000, stock=3)
    """

    def _make(**overrides: Any) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": uuid4().hex,
            "name": "Sách Tiếng Việt",
            "price": 120000,
            "description": "Giáo trình cơ bản",
            "stock": 10,
            "seller": "Nhà sách",
            "category": "Books",
            "images": [{"public_id": "img1", "url": f"{ASSET_BASE_URL}/uploads/img1.jpg"}],
        }
        data.update(overrides)
        return data

    return _make


@pytest.fixture
def order_data() -> Callable[..., dict[str, Any]]:
    def _make(**overrides: Any) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": uuid4().hex,
            "user_id": "u1",
            "order_code": f"OC-{uuid4().hex[:8]}",
            "order_items": [
                {"product_id": "p1", "name": "Notebook", "quantity": 2, "price": 50000},
            ],
            "shipping_info": {"address": "1 Main St", "city": "Hanoi"},
            "items_price": 100000,
            "tax_price": 10000,
            "shipping_price": 20000,
            "total_price": 130000,
        }
        data.update(overrides)
        return data

    return _make


@pytest.fixture
def user_data() -> Callable[..., dict[str, Any]]:
    def _make(**overrides: Any) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": uuid4().hex,
            "name": "Lan",
            "email": f"lan-{uuid4().hex[:6]}@example.com",
            "avatar": {"public_id": "a1", "url": f"{ASSET_BASE_URL}/avatars/a1.png"},
        }
        data.update(overrides)
        return data

    return _make


@pytest.fixture
def category_data() -> Callable[..., dict[str, Any]]:
    def _make(**overrides: Any) -> dict[str, Any]:
        data: dict[str, Any] = {"id": uuid4().hex, "name": "Books", "description": "Printed"}
        data.update(overrides)
        return data

    return _make


# ============================================================================
# In-Memory Backends and Adapters
# ============================================================================


@pytest.fixture
def mapper() -> SchemaMapper:
    return SchemaMapper(ASSET_BASE_URL)


@pytest.fixture
def document_store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def table() -> InMemoryWideColumnTable:
    return InMemoryWideColumnTable(enable_tracing=False)


@pytest.fixture
def document_repos(document_store: InMemoryDocumentStore) -> dict[EntityKind, Any]:
    return document_repositories(document_store, enable_tracing=False)


@pytest.fixture
def wide_column_repos(
    table: InMemoryWideColumnTable, mapper: SchemaMapper
) -> dict[EntityKind, Any]:
    return wide_column_repositories(table, mapper, enable_tracing=False)


class YieldingBackend:
    """
    Wraps a store so every coroutine method suspends before and after it runs.

    Adapters built on it interleave at each store call when run under
    ``asyncio.gather``, the way they would against a networked database.
    """

    def __init__(self, backend: Any) -> None:
        self._backend = backend

    def __getattr__(self, name: str) -> Any:
        attr = getattr(self._backend, name)
        if not inspect.iscoroutinefunction(attr):
            return attr

        @functools.wraps(attr)
        async def yielding(*args: Any, **kwargs: Any) -> Any:
            await asyncio.sleep(0)
            try:
                return await attr(*args, **kwargs)
            finally:
                await asyncio.sleep(0)

        return yielding


@pytest.fixture
def yielding_document_repos(document_store: InMemoryDocumentStore) -> dict[EntityKind, Any]:
    return document_repositories(YieldingBackend(document_store), enable_tracing=False)


@pytest.fixture
def yielding_wide_column_repos(
    table: InMemoryWideColumnTable, mapper: SchemaMapper
) -> dict[EntityKind, Any]:
    return wide_column_repositories(YieldingBackend(table), mapper, enable_tracing=False)


@pytest.fixture
def error_log() -> ErrorLog:
    return ErrorLog()


@pytest_asyncio.fixture
async def controller(
    document_repos: dict[EntityKind, Any],
    wide_column_repos: dict[EntityKind, Any],
    error_log: ErrorLog,
) -> AsyncGenerator[PhaseController, None]:
    """PhaseController over the in-memory adapters; background tasks are stopped afterwards."""
    phase_controller = PhaseController(
        document_repos, wide_column_repos, error_log, enable_tracing=False
    )
    yield phase_controller
    await phase_controller.close()


# ============================================================================
# SQLite Fixtures
# ============================================================================


@pytest_asyncio.fixture
async def sqlite_table(tmp_path: Any) -> AsyncGenerator[SQLiteWideColumnTable, None]:
    """File-backed SQLite wide-column table with its schema created."""
    if not AIOSQLITE_AVAILABLE:
        pytest.skip("aiosqlite not installed")

    from storefront.stores.sqlite_wide_column import SQLiteWideColumnTable

    wide_table = SQLiteWideColumnTable(str(tmp_path / "widecol.db"), enable_tracing=False)
    async with wide_table:
        await wide_table.ensure_table()
        yield wide_table


@pytest_asyncio.fixture
async def sql_document_store(tmp_path: Any) -> AsyncGenerator[SQLDocumentStore, None]:
    """SQLDocumentStore on a file-backed sqlite+aiosqlite engine."""
    if not AIOSQLITE_AVAILABLE:
        pytest.skip("aiosqlite not installed")

    from sqlalchemy.ext.asyncio import create_async_engine

    from storefront.stores.sql_documents import SQLDocumentStore

    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'documents.db'}")
    store = SQLDocumentStore(engine, enable_tracing=False)
    await store.initialize()
    yield store
    await engine.dispose()
