"""Mapping between domain entities and the single-table wide-column layout."""

from storefront.schema.mapper import (
    ENTITY_TYPE_ATTR,
    INDEX_NAMES,
    METADATA,
    AssetUrls,
    EntityMapper,
    Item,
    SchemaMapper,
    matches_keyword,
    normalize_text,
    price_bucket,
)

__all__ = [
    "ENTITY_TYPE_ATTR",
    "INDEX_NAMES",
    "METADATA",
    "AssetUrls",
    "EntityMapper",
    "Item",
    "SchemaMapper",
    "matches_keyword",
    "normalize_text",
    "price_bucket",
]
