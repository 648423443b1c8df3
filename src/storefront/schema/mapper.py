"""
Translation between domain entities and single-table wide-column items.

Every item carries:

- ``PK`` / ``SK``: the primary key. Top-level records use
  ``<ENTITY>#<id>`` / ``METADATA``; owned sub-records use
  ``<ENTITY>#<id>`` / ``<CHILD>#<childId>``.
- ``GSI1PK`` ... ``GSI3SK``: projections for the secondary indexes.
- ``EntityType``: discriminator used to filter table scans.
- Business attributes under the entity's own field names.

Key layout:

    Item       PK / SK                      GSI1                          GSI2                            GSI3
    Product    PRODUCT#id / METADATA        CATEGORY#cat / created#id     PRICE#bucket / RATING#r#id
    Review     PRODUCT#pid / REVIEW#uid     USER#uid / REVIEW#created
    Order      ORDER#id / METADATA          USER#uid / ORDER#created      STATUS#status / CREATED#created ORDERCODE#code / ORDER#id
    OrderItem  ORDER#oid / ITEM#pid         PRODUCT#pid / ORDER#oid
    User       USER#id / METADATA           EMAIL#email / USER#created    ROLE#role / CREATED#created
    Category   CATEGORY#id / METADATA       NAME#name / CATEGORY#created

Everything here is pure: no I/O and no clock reads.
"""

from __future__ import annotations

import unicodedata
from abc import ABC, abstractmethod
from typing import Any, Generic

from storefront.domain.entities import (
    Category,
    Entity,
    EntityKind,
    Image,
    Order,
    OrderItem,
    Product,
    Review,
    TEntity,
    User,
    build,
)
from storefront.exceptions import ValidationError

Item = dict[str, Any]

METADATA = "METADATA"
ENTITY_TYPE_ATTR = "EntityType"

INDEX_NAMES: tuple[str, ...] = ("GSI1", "GSI2", "GSI3")

KEY_ATTRIBUTES: frozenset[str] = frozenset(
    {
        "PK",
        "SK",
        "GSI1PK",
        "GSI1SK",
        "GSI2PK",
        "GSI2SK",
        "GSI3PK",
        "GSI3SK",
        ENTITY_TYPE_ATTR,
    }
)

# (upper bound, label); the final bucket is unbounded above
PRICE_BUCKETS: tuple[tuple[float, str], ...] = (
    (100_000, "0-100000"),
    (200_000, "100000-200000"),
    (300_000, "200000-300000"),
    (500_000, "300000-500000"),
)
TOP_PRICE_BUCKET = "500000+"


def price_bucket(price: float | None) -> str:
    """
    Classify a price into its index bucket.

    Args:
        price: Non-negative price

    Returns:
        Bucket label, e.g. ``"100000-200000"``

    Raises:
        ValidationError: If price is missing or negative

    Example:
        >>> price_bucket(99_999)
        '0-100000'
        >>> price_bucket(100_000)
        '100000-200000'
        >>> price_bucket(750_000)
        '500000+'
    """
    if price is None or isinstance(price, bool):
        raise ValidationError("price is required to compute a price bucket", field="price")
    if price < 0:
        raise ValidationError(f"price must be >= 0, got {price}", field="price")
    for upper, label in PRICE_BUCKETS:
        if price < upper:
            return label
    return TOP_PRICE_BUCKET


def strip_diacritics(text: str) -> str:
    """Remove combining marks and fold the Vietnamese ``đ``/``Đ``."""
    decomposed = unicodedata.normalize("NFD", text)
    stripped = "".join(ch for ch in decomposed if not 0x0300 <= ord(ch) <= 0x036F)
    return stripped.replace("đ", "d").replace("Đ", "D")


def normalize_text(text: str | None) -> str:
    """
    Lowercased, diacritic-free copy of ``text`` for keyword search.

    Example:
        >>> normalize_text("Sách Tiếng Việt Đẹp")
        'sach tieng viet dep'
    """
    if not text:
        return ""
    return strip_diacritics(text).lower()


def matches_keyword(keyword: str, *texts: str | None) -> bool:
    """
    Case-insensitive containment against raw and normalized text.

    A keyword typed without diacritics still matches accented content.
    """
    if not keyword:
        return True
    raw_keyword = keyword.lower()
    plain_keyword = normalize_text(keyword)
    for text in texts:
        if not text:
            continue
        lowered = text.lower()
        if raw_keyword in lowered or plain_keyword in normalize_text(text):
            return True
    return False


class AssetUrls:
    """
    Converts hosted asset URLs to portable relative paths and back.

    Paths starting with ``/`` are relative to ``base_url``. URLs on a
    different host are left untouched in both directions.
    """

    def __init__(self, base_url: str) -> None:
        self._base_url = base_url.rstrip("/")

    @property
    def base_url(self) -> str:
        return self._base_url

    def to_path(self, url: str) -> str:
        if self._base_url and url.startswith(self._base_url + "/"):
            return url[len(self._base_url) :]
        return url

    def to_url(self, path: str) -> str:
        if path.startswith("/"):
            return f"{self._base_url}{path}"
        return path

    def store_images(self, images: list[Image]) -> list[dict[str, Any]]:
        return [{"public_id": img.public_id, "path": self.to_path(img.url)} for img in images]

    def load_images(self, stored: Any) -> list[dict[str, Any]]:
        if isinstance(stored, dict):
            stored = list(stored.values())
        result = []
        for img in stored or []:
            path = img.get("path") or img.get("url") or ""
            result.append({"public_id": img.get("public_id"), "url": self.to_url(path)})
        return result


def _ts(value: Any) -> str:
    return value.isoformat() if hasattr(value, "isoformat") else str(value)


def _strip_keys(item: Item, *extra: str) -> dict[str, Any]:
    return {k: v for k, v in item.items() if k not in KEY_ATTRIBUTES and k not in extra}


class EntityMapper(ABC, Generic[TEntity]):
    """
    Mapper for one entity kind.

    Subclasses define the key prefix, index projections and any derived or
    child items of their entity.
    """

    kind: EntityKind
    model: type[TEntity]
    prefix: str

    def __init__(self, assets: AssetUrls) -> None:
        self._assets = assets

    def partition_key(self, record_id: str) -> str:
        return f"{self.prefix}#{record_id}"

    def keys(self, record_id: str) -> tuple[str, str]:
        """Primary key of the metadata item for ``record_id``."""
        return self.partition_key(record_id), METADATA

    def to_item(self, entity: TEntity, explicit_id: str | None = None) -> Item:
        """
        Build the metadata item for ``entity``.

        Args:
            entity: Entity to map
            explicit_id: Identifier to use instead of ``entity.id``

        Returns:
            Item with keys, index projections, discriminator and attributes
        """
        record_id = explicit_id or entity.id
        pk, sk = self.keys(record_id)
        attributes = entity.business_fields()
        attributes["id"] = record_id
        item: Item = {"PK": pk, "SK": sk, ENTITY_TYPE_ATTR: self.kind.entity_type}
        item.update(self.index_keys(entity, record_id))
        item.update(self.encode(attributes))
        return item

    def from_item(self, item: Item) -> TEntity:
        """Rebuild an entity (without child records) from its metadata item."""
        return build(self.model, self.decode(_strip_keys(item)))

    def child_items(self, entity: TEntity, explicit_id: str | None = None) -> list[Item]:
        """Items for owned sub-records of ``entity``."""
        return []

    def attach_children(self, entity: TEntity, items: list[Item]) -> TEntity:
        """Return ``entity`` with child records rebuilt from ``items``."""
        return entity

    @abstractmethod
    def index_keys(self, entity: TEntity, record_id: str) -> dict[str, str]:
        """Secondary index projections for ``entity``."""

    def encode(self, attributes: dict[str, Any]) -> dict[str, Any]:
        return attributes

    def decode(self, attributes: dict[str, Any]) -> dict[str, Any]:
        return attributes

    def index_for(self, field: str) -> tuple[str, str] | None:
        """
        Index usable for an equality filter on ``field``.

        Returns:
            ``(index_name, partition_prefix)`` or None if the field is not indexed
        """
        return None


class ProductMapper(EntityMapper[Product]):
    """Products, with reviews as ``REVIEW#<userId>`` child items."""

    kind = EntityKind.PRODUCT
    model = Product
    prefix = "PRODUCT"

    def index_keys(self, entity: Product, record_id: str) -> dict[str, str]:
        return {
            "GSI1PK": f"CATEGORY#{entity.category}",
            "GSI1SK": f"{_ts(entity.created_at)}#{record_id}",
            "GSI2PK": f"PRICE#{price_bucket(entity.price)}",
            "GSI2SK": f"RATING#{entity.ratings:.2f}#{record_id}",
        }

    def encode(self, attributes: dict[str, Any]) -> dict[str, Any]:
        attributes["images"] = self._assets.store_images(
            [Image.model_validate(img) for img in attributes.get("images", [])]
        )
        attributes["name_normalized"] = normalize_text(attributes.get("name"))
        attributes["description_normalized"] = normalize_text(attributes.get("description"))
        return attributes

    def decode(self, attributes: dict[str, Any]) -> dict[str, Any]:
        attributes.pop("name_normalized", None)
        attributes.pop("description_normalized", None)
        attributes["images"] = self._assets.load_images(attributes.get("images"))
        attributes["reviews"] = []
        return attributes

    def index_for(self, field: str) -> tuple[str, str] | None:
        if field == "category":
            return "GSI1", "CATEGORY#"
        return None

    def review_item(self, product_id: str, review: Review) -> Item:
        created = _ts(review.created_at)
        return {
            "PK": self.partition_key(product_id),
            "SK": f"REVIEW#{review.user_id}",
            "GSI1PK": f"USER#{review.user_id}",
            "GSI1SK": f"REVIEW#{created}",
            ENTITY_TYPE_ATTR: "Review",
            "review_id": review.id,
            "product_id": product_id,
            "user_id": review.user_id,
            "name": review.name,
            "rating": review.rating,
            "comment": review.comment,
            "created_at": created,
        }

    def review_from_item(self, item: Item) -> Review:
        return build(
            Review,
            {
                "id": item.get("review_id"),
                "user_id": item["user_id"],
                "name": item.get("name", ""),
                "rating": item["rating"],
                "comment": item.get("comment", ""),
                "created_at": item.get("created_at"),
            },
        )

    def child_items(self, entity: Product, explicit_id: str | None = None) -> list[Item]:
        product_id = explicit_id or entity.id
        return [self.review_item(product_id, review) for review in entity.reviews]

    def attach_children(self, entity: Product, items: list[Item]) -> Product:
        reviews = [self.review_from_item(i) for i in items if i.get(ENTITY_TYPE_ATTR) == "Review"]
        reviews.sort(key=lambda r: r.created_at)
        return entity.model_copy(update={"reviews": reviews})


class OrderMapper(EntityMapper[Order]):
    """Orders, with line items as ``ITEM#<productId>`` child items."""

    kind = EntityKind.ORDER
    model = Order
    prefix = "ORDER"

    def index_keys(self, entity: Order, record_id: str) -> dict[str, str]:
        created = _ts(entity.created_at)
        keys = {
            "GSI1PK": f"USER#{entity.user_id}",
            "GSI1SK": f"ORDER#{created}",
            "GSI2PK": f"STATUS#{entity.order_status}",
            "GSI2SK": f"CREATED#{created}",
        }
        if entity.order_code:
            keys["GSI3PK"] = f"ORDERCODE#{entity.order_code}"
            keys["GSI3SK"] = f"ORDER#{record_id}"
        return keys

    def decode(self, attributes: dict[str, Any]) -> dict[str, Any]:
        attributes["order_items"] = []
        return attributes

    def index_for(self, field: str) -> tuple[str, str] | None:
        return {
            "user_id": ("GSI1", "USER#"),
            "order_status": ("GSI2", "STATUS#"),
            "order_code": ("GSI3", "ORDERCODE#"),
        }.get(field)

    def child_items(self, entity: Order, explicit_id: str | None = None) -> list[Item]:
        order_id = explicit_id or entity.id
        return [
            {
                "PK": self.partition_key(order_id),
                "SK": f"ITEM#{line.product_id}",
                "GSI1PK": f"PRODUCT#{line.product_id}",
                "GSI1SK": f"ORDER#{order_id}",
                ENTITY_TYPE_ATTR: "OrderItem",
                "order_id": order_id,
                "product_id": line.product_id,
                "name": line.name,
                "quantity": line.quantity,
                "price": line.price,
                "image": line.image,
            }
            for line in entity.order_items
        ]

    def attach_children(self, entity: Order, items: list[Item]) -> Order:
        lines = [
            build(OrderItem, _strip_keys(i, "order_id"))
            for i in items
            if i.get(ENTITY_TYPE_ATTR) == "OrderItem"
        ]
        return entity.model_copy(update={"order_items": lines})


class UserMapper(EntityMapper[User]):
    kind = EntityKind.USER
    model = User
    prefix = "USER"

    def index_keys(self, entity: User, record_id: str) -> dict[str, str]:
        created = _ts(entity.created_at)
        return {
            "GSI1PK": f"EMAIL#{entity.email}",
            "GSI1SK": f"USER#{created}",
            "GSI2PK": f"ROLE#{entity.role}",
            "GSI2SK": f"CREATED#{created}",
        }

    def encode(self, attributes: dict[str, Any]) -> dict[str, Any]:
        avatar = attributes.get("avatar")
        if avatar:
            attributes["avatar"] = self._assets.store_images([Image.model_validate(avatar)])[0]
        return attributes

    def decode(self, attributes: dict[str, Any]) -> dict[str, Any]:
        avatar = attributes.get("avatar")
        if avatar:
            attributes["avatar"] = self._assets.load_images([avatar])[0]
        return attributes

    def index_for(self, field: str) -> tuple[str, str] | None:
        return {"email": ("GSI1", "EMAIL#"), "role": ("GSI2", "ROLE#")}.get(field)


class CategoryMapper(EntityMapper[Category]):
    kind = EntityKind.CATEGORY
    model = Category
    prefix = "CATEGORY"

    def index_keys(self, entity: Category, record_id: str) -> dict[str, str]:
        return {
            "GSI1PK": f"NAME#{entity.name}",
            "GSI1SK": f"CATEGORY#{_ts(entity.created_at)}",
        }

    def encode(self, attributes: dict[str, Any]) -> dict[str, Any]:
        attributes["images"] = self._assets.store_images(
            [Image.model_validate(img) for img in attributes.get("images", [])]
        )
        return attributes

    def decode(self, attributes: dict[str, Any]) -> dict[str, Any]:
        attributes["images"] = self._assets.load_images(attributes.get("images"))
        return attributes

    def index_for(self, field: str) -> tuple[str, str] | None:
        if field == "name":
            return "GSI1", "NAME#"
        return None


class SchemaMapper:
    """
    Entry point for entity/item translation across all kinds.

    Args:
        asset_base_url: Base URL prefixed to stored relative asset paths

    Example:
        >>> mapper = SchemaMapper("https://cdn.example.com")
        >>> item = mapper.to_item(product)
        >>> item["PK"], item["GSI2PK"]
        ('PRODUCT#p1', 'PRICE#100000-200000')
        >>> mapper.from_item(item) == product.model_copy(update={"reviews": []})
        True
    """

    def __init__(self, asset_base_url: str) -> None:
        self._assets = AssetUrls(asset_base_url)
        self._mappers: dict[EntityKind, EntityMapper[Any]] = {
            mapper.kind: mapper
            for mapper in (
                ProductMapper(self._assets),
                OrderMapper(self._assets),
                UserMapper(self._assets),
                CategoryMapper(self._assets),
            )
        }
        self._by_entity_type = {m.kind.entity_type: m for m in self._mappers.values()}

    @property
    def assets(self) -> AssetUrls:
        return self._assets

    def for_kind(self, kind: EntityKind) -> EntityMapper[Any]:
        return self._mappers[kind]

    @property
    def products(self) -> ProductMapper:
        return self._mappers[EntityKind.PRODUCT]  # type: ignore[return-value]

    def to_item(self, entity: Entity, explicit_id: str | None = None) -> Item:
        """Map any entity to its metadata item."""
        return self.for_kind(entity.kind).to_item(entity, explicit_id)

    def from_item(self, item: Item) -> Entity:
        """
        Map a metadata item back to its entity.

        Raises:
            ValidationError: If the item has no known ``EntityType``
        """
        mapper = self._by_entity_type.get(item.get(ENTITY_TYPE_ATTR, ""))
        if mapper is None:
            raise ValidationError(
                f"Item {item.get('PK')}/{item.get('SK')} has unknown entity type "
                f"{item.get(ENTITY_TYPE_ATTR)!r}",
                field=ENTITY_TYPE_ATTR,
            )
        return mapper.from_item(item)

    def child_items(self, entity: Entity, explicit_id: str | None = None) -> list[Item]:
        return self.for_kind(entity.kind).child_items(entity, explicit_id)


__all__ = [
    "ENTITY_TYPE_ATTR",
    "INDEX_NAMES",
    "KEY_ATTRIBUTES",
    "METADATA",
    "PRICE_BUCKETS",
    "TOP_PRICE_BUCKET",
    "AssetUrls",
    "CategoryMapper",
    "EntityMapper",
    "Item",
    "OrderMapper",
    "ProductMapper",
    "SchemaMapper",
    "UserMapper",
    "matches_keyword",
    "normalize_text",
    "price_bucket",
    "strip_diacritics",
]
