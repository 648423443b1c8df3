"""
storefront - online migration of an e-commerce data layer.

This library provides:
- Domain entities (products, orders, users, categories) as pydantic models
- Document-store and single-table wide-column repository adapters
- A phase-driven router with dual-write coordination between the stores
- Sampled consistency verification and an in-memory replication error log
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("storefront-migration")
except PackageNotFoundError:
    # Package not installed (running from source without install)
    __version__ = "0.0.0.dev0"

from storefront.config import MigrationSettings
from storefront.domain import (
    Category,
    Entity,
    EntityKind,
    Image,
    Order,
    OrderItem,
    Product,
    Review,
    User,
)
from storefront.exceptions import (
    ConditionalCheckFailedError,
    InsufficientStockError,
    InvalidPhaseError,
    NotFoundError,
    ReplicationError,
    StorefrontError,
    ValidationError,
)
from storefront.migration import (
    ConsistencyReport,
    ConsistencyVerifier,
    DualWriteCoordinator,
    ErrorLog,
    MigrationManager,
    MigrationPhase,
    PhaseController,
    build_migration_manager,
)
from storefront.repositories import Filter, Page, Pagination, Query
from storefront.schema import SchemaMapper

__all__ = [
    "__version__",
    # Configuration
    "MigrationSettings",
    # Domain
    "Category",
    "Entity",
    "EntityKind",
    "Image",
    "Order",
    "OrderItem",
    "Product",
    "Review",
    "User",
    # Exceptions
    "ConditionalCheckFailedError",
    "InsufficientStockError",
    "InvalidPhaseError",
    "NotFoundError",
    "ReplicationError",
    "StorefrontError",
    "ValidationError",
    # Migration
    "ConsistencyReport",
    "ConsistencyVerifier",
    "DualWriteCoordinator",
    "ErrorLog",
    "MigrationManager",
    "MigrationPhase",
    "PhaseController",
    "build_migration_manager",
    # Repositories
    "Filter",
    "Page",
    "Pagination",
    "Query",
    "SchemaMapper",
]
