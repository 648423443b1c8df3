"""In-memory filtering, keyword search and ordering shared by both store adapters."""

from __future__ import annotations

import base64
import binascii
import json
from collections.abc import Sequence
from typing import Any

from storefront.domain.entities import Entity, EntityKind, Product
from storefront.exceptions import ValidationError
from storefront.repositories.query import Filter, Query
from storefront.schema.mapper import matches_keyword

SEARCH_FIELDS: dict[EntityKind, tuple[str, ...]] = {
    EntityKind.PRODUCT: ("name", "description"),
    EntityKind.CATEGORY: ("name", "description"),
    EntityKind.USER: ("name", "email"),
    EntityKind.ORDER: ("order_code",),
}


def apply_filter(entity: Entity, filter_: Filter) -> bool:
    """Evaluate one filter against an entity attribute."""
    value = getattr(entity, filter_.field, None)
    op = filter_.operator
    target = filter_.value

    if op == "eq":
        return bool(value == target)
    if op == "ne":
        return bool(value != target)
    if op == "in":
        return value in target
    if op == "not_in":
        return value not in target
    if value is None:
        return False
    if op == "gt":
        return bool(value > target)
    if op == "gte":
        return bool(value >= target)
    if op == "lt":
        return bool(value < target)
    if op == "lte":
        return bool(value <= target)
    raise ValidationError(f"Unsupported filter operator: {op}", field=filter_.field)


def apply_query(entities: Sequence[Entity], query: Query | None) -> list[Any]:
    """Apply filters, keyword search and ordering, in that order."""
    results = list(entities)
    if query is None:
        return results

    for filter_ in query.filters:
        results = [e for e in results if apply_filter(e, filter_)]

    if query.keyword:
        results = [
            e
            for e in results
            if matches_keyword(
                query.keyword, *(getattr(e, f, None) for f in SEARCH_FIELDS[e.kind])
            )
        ]

    if query.order_by:
        order_by = query.order_by
        # None sorts first ascending
        results.sort(
            key=lambda e: (getattr(e, order_by, None) is not None, getattr(e, order_by, None)),
            reverse=query.order_direction == "desc",
        )
    return results


def rank_best_sellers(products: Sequence[Product], limit: int) -> list[Product]:
    """Order by review count, then rating, both descending."""
    ranked = sorted(products, key=lambda p: (p.num_of_reviews, p.ratings), reverse=True)
    return ranked[:limit]


def encode_cursor(position: dict[str, Any]) -> str:
    """Opaque cursor for a resume position."""
    return base64.urlsafe_b64encode(json.dumps(position, sort_keys=True).encode()).decode()


def decode_cursor(cursor: str) -> dict[str, Any]:
    """
    Decode a cursor produced by ``encode_cursor``.

    Raises:
        ValidationError: If the cursor is malformed
    """
    try:
        position = json.loads(base64.urlsafe_b64decode(cursor.encode()).decode())
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ValidationError(f"Malformed cursor: {cursor!r}", field="cursor") from exc
    if not isinstance(position, dict):
        raise ValidationError(f"Malformed cursor: {cursor!r}", field="cursor")
    return position


__all__ = [
    "SEARCH_FIELDS",
    "apply_filter",
    "apply_query",
    "decode_cursor",
    "encode_cursor",
    "rank_best_sellers",
]
