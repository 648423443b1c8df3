"""
Domain entities for the storefront.

Entities are pydantic models with the same logical shape whichever store
backs them. Each carries a string ``id`` that is kept when a record is
replicated from one store to the other.

Business-rule violations are reported as ``storefront.exceptions.ValidationError``
rather than pydantic's own error type, so callers handle one exception family.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any, ClassVar, TypeVar
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from storefront.exceptions import ValidationError


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def new_id() -> str:
    """Generate a new record identifier."""
    return uuid4().hex


class EntityKind(Enum):
    """
    Kinds of top-level entity served through the repository contract.

    The value is used in operator-facing output; ``entity_type`` is the
    discriminator written to every wide-column item.
    """

    PRODUCT = "product"
    ORDER = "order"
    USER = "user"
    CATEGORY = "category"

    @property
    def entity_type(self) -> str:
        """Discriminator stored in the ``EntityType`` attribute."""
        return self.value.capitalize()

    @classmethod
    def parse(cls, value: EntityKind | str) -> EntityKind:
        """Resolve a kind from a member, value or name."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValidationError(f"Unknown entity kind: {value!r}", field="kind") from None


class Image(BaseModel):
    """Externally hosted image reference."""

    model_config = ConfigDict(extra="ignore")

    public_id: str | None = None
    url: str


class Entity(BaseModel):
    """
    Base class for top-level storefront entities.

    Attributes:
        id: Record identifier, stable across stores
        created_at: Creation time
        updated_at: Last modification time
    """

    model_config = ConfigDict(extra="ignore", from_attributes=True)

    id: str = Field(default_factory=new_id)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    kind: ClassVar[EntityKind]

    def business_fields(self) -> dict[str, Any]:
        """Dump the entity without child collections, in JSON-compatible form."""
        return self.model_dump(mode="json", exclude=self._child_fields())

    @classmethod
    def _child_fields(cls) -> set[str]:
        return set()


class Review(BaseModel):
    """
    A customer's review of a product.

    A user holds at most one review per product.
    """

    model_config = ConfigDict(extra="ignore")

    id: str = Field(default_factory=new_id)
    user_id: str
    name: str = ""
    rating: int = Field(ge=1, le=5)
    comment: str = ""
    created_at: datetime = Field(default_factory=utcnow)


class Product(Entity):
    """Catalog product with embedded reviews."""

    kind: ClassVar[EntityKind] = EntityKind.PRODUCT

    name: str = Field(min_length=1, max_length=200)
    price: float = Field(ge=0)
    description: str = ""
    ratings: float = Field(default=0, ge=0, le=5)
    num_of_reviews: int = Field(default=0, ge=0)
    stock: int = Field(default=0, ge=0)
    seller: str | None = None
    category: str = Field(min_length=1)
    images: list[Image] = Field(default_factory=list)
    user_id: str | None = None
    reviews: list[Review] = Field(default_factory=list)

    @classmethod
    def _child_fields(cls) -> set[str]:
        return {"reviews"}


class OrderItem(BaseModel):
    """A line item of an order."""

    model_config = ConfigDict(extra="ignore")

    product_id: str
    name: str
    quantity: int = Field(ge=1)
    price: float = Field(ge=0)
    image: str | None = None


class Order(Entity):
    """Customer order with line items."""

    kind: ClassVar[EntityKind] = EntityKind.ORDER

    user_id: str
    order_code: str | None = None
    order_items: list[OrderItem] = Field(default_factory=list)
    shipping_info: dict[str, Any] = Field(default_factory=dict)
    payment_info: dict[str, Any] = Field(default_factory=dict)
    items_price: float = Field(default=0, ge=0)
    tax_price: float = Field(default=0, ge=0)
    shipping_price: float = Field(default=0, ge=0)
    total_price: float = Field(default=0, ge=0)
    order_status: str = "Processing"
    delivered_at: datetime | None = None

    @classmethod
    def _child_fields(cls) -> set[str]:
        return {"order_items"}


class User(Entity):
    """Storefront account."""

    kind: ClassVar[EntityKind] = EntityKind.USER

    name: str = Field(min_length=1, max_length=100)
    email: str = Field(pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    password_hash: str | None = None
    avatar: Image | None = None
    role: str = "user"


class Category(Entity):
    """Product category."""

    kind: ClassVar[EntityKind] = EntityKind.CATEGORY

    name: str = Field(min_length=1)
    description: str = ""
    images: list[Image] = Field(default_factory=list)


ENTITY_TYPES: dict[EntityKind, type[Entity]] = {
    EntityKind.PRODUCT: Product,
    EntityKind.ORDER: Order,
    EntityKind.USER: User,
    EntityKind.CATEGORY: Category,
}

TEntity = TypeVar("TEntity", bound=Entity)
TModel = TypeVar("TModel", bound=BaseModel)


def _describe(exc: PydanticValidationError) -> tuple[str, str | None]:
    first = exc.errors()[0]
    field = ".".join(str(part) for part in first.get("loc", ())) or None
    return f"{field or 'value'}: {first.get('msg', 'invalid')}", field


def build(model: type[TModel], data: Any) -> TModel:
    """
    Validate ``data`` into ``model``.

    Args:
        model: Entity or value-object class
        data: Mapping, model instance or attribute-bearing object

    Returns:
        Validated instance

    Raises:
        ValidationError: If the data violates a field rule
    """
    if isinstance(data, model):
        return data
    if isinstance(data, BaseModel):
        data = data.model_dump()
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        message, field = _describe(exc)
        raise ValidationError(f"Invalid {model.__name__}: {message}", field=field) from exc


def apply_changes(entity: TEntity, changes: dict[str, Any]) -> TEntity:
    """
    Return a copy of ``entity`` with ``changes`` applied and revalidated.

    Identity and creation time cannot be changed; ``updated_at`` is refreshed.

    Raises:
        ValidationError: If the result violates a field rule
    """
    data = entity.model_dump()
    data.update({k: v for k, v in changes.items() if k not in ("id", "created_at")})
    data["id"] = entity.id
    data["created_at"] = entity.created_at
    data["updated_at"] = utcnow()
    return build(type(entity), data)


def aggregate_ratings(reviews: list[Review]) -> tuple[float, int]:
    """
    Compute the mean rating and review count.

    Returns:
        ``(ratings, num_of_reviews)`` with ratings 0 when there are no reviews
    """
    if not reviews:
        return 0.0, 0
    return sum(r.rating for r in reviews) / len(reviews), len(reviews)


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
    "TEntity",
    "User",
    "aggregate_ratings",
    "apply_changes",
    "build",
    "new_id",
    "utcnow",
]
