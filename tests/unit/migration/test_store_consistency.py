"""
Unit tests for ConsistencyVerifier.

Tests cover:
- Matching stores report no discrepancies
- A diverged field is reported exactly once, with both values
- Records missing from the wide-column store
- Lookup failures recorded in the ErrorLog
- Sample size handling and report serialization
"""

from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from storefront.domain.entities import EntityKind
from storefront.exceptions import ValidationError
from storefront.migration.consistency import (
    ConsistencyReport,
    ConsistencyVerifier,
    Discrepancy,
)
from storefront.observability import MockTracer


@pytest.fixture
def verifier(document_repos, wide_column_repos, error_log) -> ConsistencyVerifier:
    return ConsistencyVerifier(
        document_repos, wide_column_repos, error_log, default_sample_size=10, enable_tracing=False
    )


@pytest_asyncio.fixture
async def replicated_products(document_repos, wide_column_repos, product_data):
    """Five products written identically to both stores."""
    products = []
    for n in range(5):
        data = product_data(id=f"p{n}", stock=n + 1)
        products.append(await document_repos[EntityKind.PRODUCT].create(data))
        await wide_column_repos[EntityKind.PRODUCT].create(data)
    return products


class TestVerify:
    @pytest.mark.asyncio
    async def test_consistent_stores(self, verifier, replicated_products) -> None:
        report = await verifier.verify(10)

        assert report.total == 5
        assert report.matched == 5
        assert report.mismatched == 0
        assert report.is_consistent
        assert report.consistency_percentage == 100.0

    @pytest.mark.asyncio
    async def test_stock_divergence_is_one_discrepancy(
        self, verifier, replicated_products, wide_column_repos
    ) -> None:
        await wide_column_repos[EntityKind.PRODUCT].update_stock("p2", 4)

        report = await verifier.verify(10)

        assert report.mismatched == 1
        assert report.matched == 4
        assert report.discrepancies == [
            Discrepancy(
                record_id="p2",
                reason="field_mismatch",
                field="stock",
                document_value=3,
                wide_column_value=7,
            )
        ]
        assert report.consistency_percentage == 80.0

    @pytest.mark.asyncio
    async def test_several_fields_on_one_record(
        self, verifier, replicated_products, wide_column_repos
    ) -> None:
        await wide_column_repos[EntityKind.PRODUCT].update("p0", {"name": "Renamed", "price": 1})

        report = await verifier.verify(10)

        assert report.mismatched == 1
        assert sorted(d.field for d in report.discrepancies) == ["name", "price"]

    @pytest.mark.asyncio
    async def test_missing_record(self, verifier, replicated_products, wide_column_repos) -> None:
        await wide_column_repos[EntityKind.PRODUCT].delete("p1")

        report = await verifier.verify(10)

        assert [(d.record_id, d.reason) for d in report.discrepancies] == [("p1", "not_found")]

    @pytest.mark.asyncio
    async def test_lookup_failure_is_logged(
        self, document_repos, error_log, replicated_products
    ) -> None:
        failing = AsyncMock()
        failing.find_by_id.side_effect = ConnectionError("table unavailable")
        verifier = ConsistencyVerifier(
            document_repos, {EntityKind.PRODUCT: failing}, error_log, enable_tracing=False
        )

        report = await verifier.verify(2)

        assert report.total == 2
        assert report.mismatched == 2
        assert {d.reason for d in report.discrepancies} == {"error"}
        assert [e.operation for e in error_log.list()] == ["verify", "verify"]
        assert error_log.list()[0].error_type == "ConnectionError"

    @pytest.mark.asyncio
    async def test_sample_size_limits_records(self, verifier, replicated_products) -> None:
        assert (await verifier.verify(3)).total == 3
        assert (await verifier.verify(0)).total == 0

    @pytest.mark.asyncio
    async def test_default_sample_size(
        self, document_repos, wide_column_repos, error_log, replicated_products
    ) -> None:
        verifier = ConsistencyVerifier(
            document_repos, wide_column_repos, error_log, default_sample_size=2, enable_tracing=False
        )

        assert (await verifier.verify()).total == 2

    @pytest.mark.asyncio
    async def test_random_sample(self, verifier, replicated_products) -> None:
        report = await verifier.verify(3, randomize=True)

        assert report.total == 3
        assert report.is_consistent

    @pytest.mark.asyncio
    async def test_negative_sample_size(self, verifier) -> None:
        with pytest.raises(ValidationError):
            await verifier.verify(-1)

    @pytest.mark.asyncio
    async def test_empty_store(self, verifier) -> None:
        report = await verifier.verify(10, "order")

        assert report.kind is EntityKind.ORDER
        assert report.total == 0
        assert report.is_consistent

    @pytest.mark.asyncio
    async def test_other_kinds(self, verifier, document_repos, wide_column_repos, user_data) -> None:
        data = user_data(id="u1")
        await document_repos[EntityKind.USER].create(data)
        await wide_column_repos[EntityKind.USER].create(data)
        await wide_column_repos[EntityKind.USER].update("u1", {"role": "admin"})

        report = await verifier.verify(10, EntityKind.USER)

        assert [(d.field, d.document_value, d.wide_column_value) for d in report.discrepancies] == [
            ("role", "user", "admin")
        ]

    @pytest.mark.asyncio
    async def test_verify_never_writes(
        self, verifier, replicated_products, document_repos, wide_column_repos
    ) -> None:
        await wide_column_repos[EntityKind.PRODUCT].delete("p0")

        await verifier.verify(10)

        assert await document_repos[EntityKind.PRODUCT].count() == 5
        assert await wide_column_repos[EntityKind.PRODUCT].count() == 4

    @pytest.mark.asyncio
    async def test_span(self, document_repos, wide_column_repos, error_log) -> None:
        tracer = MockTracer()
        verifier = ConsistencyVerifier(document_repos, wide_column_repos, error_log, tracer=tracer)

        await verifier.verify(4)

        assert tracer.spans == [
            (
                "storefront.consistency.verify",
                {"storefront.entity.kind": "product", "storefront.verify.sample_size": 4},
            )
        ]


class TestReport:
    def test_to_dict(self) -> None:
        report = ConsistencyReport(
            kind=EntityKind.PRODUCT,
            total=2,
            matched=1,
            mismatched=1,
            discrepancies=[Discrepancy(record_id="p1", reason="not_found")],
        )

        data = report.to_dict()

        assert data["kind"] == "product"
        assert data["is_consistent"] is False
        assert data["consistency_percentage"] == 50.0
        assert data["discrepancies"][0]["reason"] == "not_found"

    def test_discrepancy_str(self) -> None:
        discrepancy = Discrepancy(
            record_id="p1",
            reason="field_mismatch",
            field="stock",
            document_value=3,
            wide_column_value=7,
        )

        assert str(discrepancy) == "[field_mismatch] id=p1 stock: document=3, wide_column=7"
