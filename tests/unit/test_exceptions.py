"""
Unit tests for the storefront exception hierarchy.
"""

import pytest

from storefront.exceptions import (
    ConditionalCheckFailedError,
    InsufficientStockError,
    InvalidPhaseError,
    NotFoundError,
    ReplicationError,
    StorefrontError,
    ValidationError,
)


class TestHierarchy:
    @pytest.mark.parametrize(
        "error",
        [
            NotFoundError("product", "p1"),
            ValidationError("bad"),
            InsufficientStockError("p1", 3, -5),
            InvalidPhaseError("x"),
            ReplicationError("create", RuntimeError("boom")),
            ConditionalCheckFailedError("PRODUCT#p1", "METADATA"),
        ],
    )
    def test_all_derive_from_base(self, error: Exception) -> None:
        assert isinstance(error, StorefrontError)


class TestAttributes:
    def test_not_found(self) -> None:
        error = NotFoundError("order", "o1")

        assert error.kind == "order"
        assert error.record_id == "o1"
        assert str(error) == "order not found: o1"

    def test_validation_field(self) -> None:
        assert ValidationError("duplicate", field="id").field == "id"
        assert ValidationError("bad").field is None

    def test_insufficient_stock(self) -> None:
        error = InsufficientStockError("p1", 3, -5)

        assert (error.available, error.requested_delta) == (3, -5)
        assert "available 3" in str(error)

    def test_invalid_phase_keeps_value(self) -> None:
        assert InvalidPhaseError("mongo_only").value == "mongo_only"

    def test_replication_keeps_cause(self) -> None:
        cause = ConnectionError("reset")
        error = ReplicationError("update_stock", cause)

        assert error.cause is cause
        assert str(error) == "Replication of update_stock failed: reset"

    def test_conditional_check(self) -> None:
        error = ConditionalCheckFailedError("PRODUCT#p1", "METADATA", "item exists")

        assert str(error) == "Conditional check failed for PRODUCT#p1/METADATA: item exists"
