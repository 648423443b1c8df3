"""Library exceptions for the storefront package."""

from typing import Any


class StorefrontError(Exception):
    """Base exception for the storefront library."""

    pass


class NotFoundError(StorefrontError):
    """Raised when a record cannot be found in the backing store."""

    def __init__(self, kind: str, record_id: str) -> None:
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind} not found: {record_id}")


class ValidationError(StorefrontError):
    """Raised when an entity or argument violates a business rule."""

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


class InsufficientStockError(StorefrontError):
    """Raised when a stock adjustment would drive stock below zero."""

    def __init__(self, product_id: str, available: int, requested_delta: int) -> None:
        self.product_id = product_id
        self.available = available
        self.requested_delta = requested_delta
        super().__init__(
            f"Insufficient stock for product {product_id}: "
            f"available {available}, requested change {requested_delta}"
        )


class InvalidPhaseError(StorefrontError):
    """Raised when an unknown migration phase is requested."""

    def __init__(self, value: Any) -> None:
        self.value = value
        super().__init__(f"Invalid migration phase: {value!r}")


class ReplicationError(StorefrontError):
    """
    Raised when a write to the secondary store fails.

    Never reaches callers of the repository contract; it is recorded in the
    migration error log instead.
    """

    def __init__(self, operation: str, cause: BaseException) -> None:
        self.operation = operation
        self.cause = cause
        super().__init__(f"Replication of {operation} failed: {cause}")


class ConditionalCheckFailedError(StorefrontError):
    """Raised by a wide-column table when a conditional write is rejected."""

    def __init__(self, pk: str, sk: str, reason: str = "condition not met") -> None:
        self.pk = pk
        self.sk = sk
        self.reason = reason
        super().__init__(f"Conditional check failed for {pk}/{sk}: {reason}")


__all__ = [
    "StorefrontError",
    "NotFoundError",
    "ValidationError",
    "InsufficientStockError",
    "InvalidPhaseError",
    "ReplicationError",
    "ConditionalCheckFailedError",
]
