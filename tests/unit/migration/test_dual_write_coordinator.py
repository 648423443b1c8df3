"""
Unit tests for DualWriteCoordinator.

Tests cover:
- Reads served by the primary only
- Writes awaited on the primary, then replicated to the secondary
- Primary failures propagate and skip the secondary
- Secondary failures land in the ErrorLog, never with the caller
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from storefront.domain.entities import EntityKind, Product, Review
from storefront.exceptions import InsufficientStockError, NotFoundError
from storefront.migration.dual_write import (
    READ_OPERATIONS,
    WRITE_OPERATIONS,
    DualWriteCoordinator,
)
from storefront.migration.error_log import ErrorLog
from storefront.migration.models import StoreRole
from storefront.migration.replication import Replicator
from storefront.observability import MockTracer
from storefront.repositories import Pagination, Query

OPERATIONS = READ_OPERATIONS | WRITE_OPERATIONS


def make_adapter() -> MagicMock:
    adapter = MagicMock()
    for name in OPERATIONS:
        setattr(adapter, name, AsyncMock(name=name))
    return adapter


@pytest.fixture
def primary() -> MagicMock:
    return make_adapter()


@pytest.fixture
def secondary() -> MagicMock:
    return make_adapter()


@pytest_asyncio.fixture
async def replicator(error_log: ErrorLog):
    replicator = Replicator(error_log, secondary_name="wide_column", enable_tracing=False)
    yield replicator
    await replicator.close()


@pytest.fixture
def coordinator(primary, secondary, replicator) -> DualWriteCoordinator:
    return DualWriteCoordinator(
        primary,
        secondary,
        replicator,
        kind=EntityKind.PRODUCT,
        primary_role=StoreRole.DOCUMENT,
        enable_tracing=False,
    )


class TestOperationSets:
    def test_reads_and_writes_are_disjoint(self) -> None:
        assert not READ_OPERATIONS & WRITE_OPERATIONS

    def test_every_operation_has_a_method(self) -> None:
        for name in OPERATIONS:
            assert callable(getattr(DualWriteCoordinator, name))


class TestReads:
    @pytest.mark.asyncio
    async def test_find_by_id_uses_primary_only(self, coordinator, primary, secondary) -> None:
        primary.find_by_id.return_value = "from-primary"

        result = await coordinator.find_by_id("p1")

        assert result == "from-primary"
        primary.find_by_id.assert_awaited_once_with("p1")
        secondary.find_by_id.assert_not_called()

    @pytest.mark.asyncio
    async def test_every_read_skips_secondary(
        self, coordinator, primary, secondary, replicator
    ) -> None:
        query = Query()
        await coordinator.find_all(query, Pagination(page=2, limit=5))
        await coordinator.count(query)
        await coordinator.search("sach")
        await coordinator.find_by_category("Books")
        await coordinator.get_reviews("p1")
        await coordinator.find_all_with_cursor(query, 3, None)
        await coordinator.get_related_products("p1", 4)
        await coordinator.get_best_sellers(5, "Books")
        await coordinator.get_products_by_ids(["p1"])
        await coordinator.find_by_user("u1")
        await coordinator.find_by_order_code("OC-1")
        await coordinator.find_by_status("Shipped")
        await coordinator.find_by_email("a@b.co")
        await coordinator.find_by_name("Books")

        primary.find_all.assert_awaited_once_with(query, Pagination(page=2, limit=5))
        primary.get_best_sellers.assert_awaited_once_with(5, "Books")
        for name in READ_OPERATIONS - {"find_by_id"}:
            getattr(primary, name).assert_awaited_once()
            getattr(secondary, name).assert_not_called()
        assert replicator.pending == 0

    @pytest.mark.asyncio
    async def test_read_errors_propagate(self, coordinator, primary) -> None:
        primary.find_by_id.side_effect = RuntimeError("primary down")

        with pytest.raises(RuntimeError, match="primary down"):
            await coordinator.find_by_id("p1")

    @pytest.mark.asyncio
    async def test_unknown_read_is_rejected(self, coordinator) -> None:
        with pytest.raises(ValueError):
            await coordinator._read("delete", "p1")


class TestWrites:
    @pytest.mark.asyncio
    async def test_update_replicates_same_arguments(
        self, coordinator, primary, secondary, replicator
    ) -> None:
        primary.update.return_value = "updated"

        result = await coordinator.update("p1", {"price": 1})
        await replicator.drain()

        assert result == "updated"
        primary.update.assert_awaited_once_with("p1", {"price": 1})
        secondary.update.assert_awaited_once_with("p1", {"price": 1})

    @pytest.mark.asyncio
    async def test_create_replicates_primary_result(
        self, coordinator, primary, secondary, replicator
    ) -> None:
        stored = Product(id="generated", name="Pen", price=5000, category="Office")
        primary.create.return_value = stored

        result = await coordinator.create({"name": "Pen", "price": 5000, "category": "Office"})
        await replicator.drain()

        assert result is stored
        secondary.create.assert_awaited_once_with(stored)

    @pytest.mark.asyncio
    async def test_add_review_sends_same_review_to_both(
        self, coordinator, primary, secondary, replicator
    ) -> None:
        await coordinator.add_review("p1", {"user_id": "u1", "rating": 5})
        await replicator.drain()

        primary_review = primary.add_review.await_args.args[1]
        secondary_review = secondary.add_review.await_args.args[1]
        assert isinstance(primary_review, Review)
        assert primary_review.id == secondary_review.id

    @pytest.mark.asyncio
    async def test_each_write_is_replicated(
        self, coordinator, primary, secondary, replicator
    ) -> None:
        await coordinator.delete("p1")
        await coordinator.update_stock("p1", -1)
        await coordinator.delete_review("p1", "r1")
        await replicator.drain()

        secondary.delete.assert_awaited_once_with("p1")
        secondary.update_stock.assert_awaited_once_with("p1", -1)
        secondary.delete_review.assert_awaited_once_with("p1", "r1")

    @pytest.mark.asyncio
    async def test_secondary_is_not_awaited_by_caller(
        self, coordinator, primary, secondary, replicator
    ) -> None:
        await coordinator.delete("p1")

        assert replicator.pending == 1
        await replicator.drain()
        assert replicator.pending == 0

    @pytest.mark.asyncio
    async def test_primary_failure_skips_secondary(
        self, coordinator, primary, secondary, replicator, error_log
    ) -> None:
        primary.update_stock.side_effect = InsufficientStockError("p1", 3, -5)

        with pytest.raises(InsufficientStockError):
            await coordinator.update_stock("p1", -5)
        await replicator.drain()

        secondary.update_stock.assert_not_called()
        assert len(error_log) == 0

    @pytest.mark.asyncio
    async def test_secondary_failure_is_logged_not_raised(
        self, coordinator, primary, secondary, replicator, error_log
    ) -> None:
        stored = Product(id="p1", name="Pen", price=5000, category="Office")
        primary.create.return_value = stored
        secondary.create.side_effect = ConnectionError("wide-column store unreachable")

        result = await coordinator.create(stored)
        await replicator.drain()

        assert result is stored
        entries = error_log.list()
        assert len(entries) == 1
        assert entries[0].operation == "create"
        assert entries[0].args["kind"] == "product"
        assert entries[0].args["args"][0]["id"] == "p1"
        assert "wide-column store unreachable" in entries[0].error

    @pytest.mark.asyncio
    async def test_secondary_not_found_is_logged(
        self, coordinator, secondary, replicator, error_log
    ) -> None:
        secondary.delete.side_effect = NotFoundError("product", "p1")

        assert await coordinator.delete("p1") is not None
        await replicator.drain()

        assert [e.operation for e in error_log.list()] == ["delete"]


class TestTracing:
    @pytest.mark.asyncio
    async def test_write_span(self, primary, secondary, replicator) -> None:
        tracer = MockTracer()
        coordinator = DualWriteCoordinator(
            primary,
            secondary,
            replicator,
            kind=EntityKind.ORDER,
            primary_role=StoreRole.WIDE_COLUMN,
            tracer=tracer,
        )

        await coordinator.update("o1", {"order_status": "Shipped"})

        name, attributes = tracer.spans[0]
        assert name == "storefront.dual_write.update"
        assert attributes["storefront.entity.kind"] == "order"
        assert attributes["storefront.store.role"] == "wide_column"
        assert attributes["storefront.record.id"] == "o1"
