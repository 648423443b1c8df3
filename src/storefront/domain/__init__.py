"""Domain entities shared by every store adapter."""

from storefront.domain.entities import (
    ENTITY_TYPES,
    Category,
    Entity,
    EntityKind,
    Image,
    Order,
    OrderItem,
    Product,
    Review,
    User,
    aggregate_ratings,
    apply_changes,
    build,
)

__all__ = [
    "ENTITY_TYPES",
    "Category",
    "Entity",
    "EntityKind",
    "Image",
    "Order",
    "OrderItem",
    "Product",
    "Review",
    "User",
    "aggregate_ratings",
    "apply_changes",
    "build",
]
