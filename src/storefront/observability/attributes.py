"""
Standard span attributes for storefront.

Attribute constants used by every traced component so span attributes are
named consistently. Database attributes follow OpenTelemetry semantic
conventions.

Example:
    >>> from storefront.observability.attributes import ATTR_ENTITY_KIND, ATTR_RECORD_ID
    >>>
    >>> with tracer.span(
    ...     "storefront.wide_column.find_by_id",
    ...     {ATTR_ENTITY_KIND: "product", ATTR_RECORD_ID: product_id},
    ... ):
    ...     pass
"""

# =============================================================================
# Record Attributes
# =============================================================================

ATTR_ENTITY_KIND = "storefront.entity.kind"
"""Entity kind being operated on (e.g., 'product', 'order')."""

ATTR_RECORD_ID = "storefront.record.id"
"""Identifier of the record being operated on."""

ATTR_RECORD_COUNT = "storefront.record.count"
"""Number of records returned or processed (integer)."""

# =============================================================================
# Migration Attributes
# =============================================================================

ATTR_MIGRATION_PHASE = "storefront.migration.phase"
"""Current migration phase value."""

ATTR_OPERATION = "storefront.operation"
"""Repository operation name (e.g., 'create', 'update_stock')."""

ATTR_STORE_ROLE = "storefront.store.role"
"""Which store handled the call ('document' or 'wide_column')."""

ATTR_SAMPLE_SIZE = "storefront.verify.sample_size"
"""Requested sample size for a consistency check (integer)."""

ATTR_MISMATCH_COUNT = "storefront.verify.mismatched"
"""Number of mismatched records found by a consistency check (integer)."""

# =============================================================================
# Wide-Column Attributes
# =============================================================================

ATTR_INDEX_NAME = "storefront.wide_column.index"
"""Secondary index used by a query ('GSI1', 'GSI2', 'GSI3'), if any."""

ATTR_PARTITION_KEY = "storefront.wide_column.partition_key"
"""Partition key value of a query or item access."""

# =============================================================================
# Database Attributes (OTEL semantic conventions)
# =============================================================================

ATTR_DB_SYSTEM = "db.system"
"""Database system identifier (e.g., 'sqlite', 'postgresql')."""

ATTR_DB_NAME = "db.name"
"""Database or table name."""

ATTR_DB_OPERATION = "db.operation"
"""Database operation (e.g., 'SELECT', 'UPDATE')."""

# =============================================================================
# Error Attributes
# =============================================================================

ATTR_ERROR_TYPE = "error.type"
"""Exception class name for failed operations."""


__all__ = [
    "ATTR_ENTITY_KIND",
    "ATTR_RECORD_ID",
    "ATTR_RECORD_COUNT",
    "ATTR_MIGRATION_PHASE",
    "ATTR_OPERATION",
    "ATTR_STORE_ROLE",
    "ATTR_SAMPLE_SIZE",
    "ATTR_MISMATCH_COUNT",
    "ATTR_INDEX_NAME",
    "ATTR_PARTITION_KEY",
    "ATTR_DB_SYSTEM",
    "ATTR_DB_NAME",
    "ATTR_DB_OPERATION",
    "ATTR_ERROR_TYPE",
]
