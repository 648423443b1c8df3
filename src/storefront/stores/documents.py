"""
Document store interface and in-memory implementation.

A document store holds named collections of JSON documents. Each document
is a dict with a string ``"id"`` that is unique within its collection.
Documents embed their owned sub-records (a product's reviews, an order's
line items) rather than splitting them into separate records.
"""

from __future__ import annotations

import asyncio
import copy
from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable

from storefront.exceptions import ConditionalCheckFailedError

Document = dict[str, Any]


def matches(document: Document, where: Mapping[str, Any] | None) -> bool:
    """True if every ``where`` field equals the document's top-level value."""
    if not where:
        return True
    return all(document.get(key) == value for key, value in where.items())


@runtime_checkable
class DocumentStore(Protocol):
    """
    Protocol for document stores.

    Implementations:
    - InMemoryDocumentStore: dict-backed, for tests and development
    - SQLDocumentStore: SQLAlchemy async engine (PostgreSQL or SQLite)
    """

    async def get(self, collection: str, doc_id: str) -> Document | None:
        """Fetch a document by id, or None."""
        ...

    async def insert(self, collection: str, document: Document) -> None:
        """
        Insert a new document.

        Raises:
            ConditionalCheckFailedError: If the id is already taken
        """
        ...

    async def set_fields(
        self, collection: str, doc_id: str, fields: Mapping[str, Any]
    ) -> Document | None:
        """
        Overwrite the named top-level fields of an existing document.

        Other fields keep their stored values, so a concurrent ``increment``
        is never lost.

        Returns:
            The document after the update, or None if it does not exist
        """
        ...

    async def delete(self, collection: str, doc_id: str) -> bool:
        """Delete a document. Returns True if it existed."""
        ...

    async def find(
        self,
        collection: str,
        where: Mapping[str, Any] | None = None,
        limit: int | None = None,
    ) -> list[Document]:
        """Documents matching ``where`` equality filters, in insertion order."""
        ...

    async def count(self, collection: str) -> int:
        """Number of documents in a collection."""
        ...

    async def increment(
        self,
        collection: str,
        doc_id: str,
        field: str,
        delta: int | float,
        *,
        minimum: int | float | None = None,
        set_fields: Mapping[str, Any] | None = None,
    ) -> Document:
        """
        Atomically add ``delta`` to a numeric top-level field.

        Raises:
            ConditionalCheckFailedError: If the document is missing or the new
                value would be below ``minimum``. The document is unchanged.
        """
        ...


class InMemoryDocumentStore:
    """
    In-memory document store.

    Documents are deep-copied in and out. All operations hold an
    asyncio.Lock, so ``increment`` is atomic with respect to other coroutines.

    Example:
        >>> store = InMemoryDocumentStore()
        >>> await store.insert("products", {"id": "p1", "stock": 3})
        >>> await store.get("products", "p1")
        {'id': 'p1', 'stock': 3}
    """

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, Document]] = {}
        self._lock = asyncio.Lock()

    def _collection(self, name: str) -> dict[str, Document]:
        return self._collections.setdefault(name, {})

    async def get(self, collection: str, doc_id: str) -> Document | None:
        async with self._lock:
            document = self._collection(collection).get(doc_id)
            return copy.deepcopy(document) if document is not None else None

    async def insert(self, collection: str, document: Document) -> None:
        doc_id = document["id"]
        async with self._lock:
            docs = self._collection(collection)
            if doc_id in docs:
                raise ConditionalCheckFailedError(collection, doc_id, "document already exists")
            docs[doc_id] = copy.deepcopy(document)

    async def set_fields(
        self, collection: str, doc_id: str, fields: Mapping[str, Any]
    ) -> Document | None:
        async with self._lock:
            document = self._collection(collection).get(doc_id)
            if document is None:
                return None
            document.update(copy.deepcopy(dict(fields)))
            return copy.deepcopy(document)

    async def delete(self, collection: str, doc_id: str) -> bool:
        async with self._lock:
            return self._collection(collection).pop(doc_id, None) is not None

    async def find(
        self,
        collection: str,
        where: Mapping[str, Any] | None = None,
        limit: int | None = None,
    ) -> list[Document]:
        async with self._lock:
            results = [
                copy.deepcopy(d) for d in self._collection(collection).values() if matches(d, where)
            ]
        return results[:limit] if limit is not None else results

    async def count(self, collection: str) -> int:
        async with self._lock:
            return len(self._collection(collection))

    async def increment(
        self,
        collection: str,
        doc_id: str,
        field: str,
        delta: int | float,
        *,
        minimum: int | float | None = None,
        set_fields: Mapping[str, Any] | None = None,
    ) -> Document:
        async with self._lock:
            document = self._collection(collection).get(doc_id)
            if document is None:
                raise ConditionalCheckFailedError(collection, doc_id, "document does not exist")
            new_value = document.get(field, 0) + delta
            if minimum is not None and new_value < minimum:
                raise ConditionalCheckFailedError(
                    collection, doc_id, f"{field} would become {new_value}, below {minimum}"
                )
            document[field] = new_value
            if set_fields:
                document.update(copy.deepcopy(dict(set_fields)))
            return copy.deepcopy(document)

    async def clear(self) -> None:
        """Remove every document. Intended for tests."""
        async with self._lock:
            self._collections.clear()


__all__ = [
    "Document",
    "DocumentStore",
    "InMemoryDocumentStore",
    "matches",
]
