"""
SQL-backed document store.

Stores every collection in one ``documents`` table through a SQLAlchemy
async engine. Works with PostgreSQL (asyncpg) and SQLite (aiosqlite).

Schema:
    documents(seq PK autoincrement, collection, doc_id, body JSON text,
              UNIQUE(collection, doc_id))

``seq`` preserves insertion order for ``find``.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping
from typing import Any

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, UniqueConstraint, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from storefront.exceptions import ConditionalCheckFailedError
from storefront.observability import (
    ATTR_DB_NAME,
    ATTR_DB_OPERATION,
    ATTR_DB_SYSTEM,
    ATTR_RECORD_ID,
    Tracer,
    create_tracer,
)
from storefront.stores._connection import execute_with_connection
from storefront.stores.documents import Document, matches

logger = logging.getLogger(__name__)

_FIELD_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _json_path(field: str) -> str:
    if not _FIELD_NAME.match(field):
        raise ValueError(f"Invalid field name {field!r}: must be a plain identifier")
    return f'$."{field}"'


def documents_table(metadata: MetaData, name: str = "documents") -> Table:
    """Table definition used for schema creation."""
    return Table(
        name,
        metadata,
        Column("seq", Integer, primary_key=True, autoincrement=True),
        Column("collection", String(64), nullable=False),
        Column("doc_id", String(64), nullable=False),
        Column("body", Text, nullable=False),
        UniqueConstraint("collection", "doc_id", name=f"uq_{name}_collection_doc_id"),
    )


class SQLDocumentStore:
    """
    Document store on a SQLAlchemy AsyncEngine or AsyncConnection.

    ``increment`` and ``set_fields`` are single conditional ``UPDATE ...
    RETURNING`` statements that modify the stored JSON in place (``json_set``
    on SQLite, ``jsonb`` operators on PostgreSQL). Fields they do not name
    are never rewritten from a stale copy.

    Example:
        >>> engine = create_async_engine("sqlite+aiosqlite:///storefront.db")
        >>> store = SQLDocumentStore(engine)
        >>> await store.initialize()
        >>> await store.insert("products", {"id": "p1", "name": "Notebook", "stock": 3})
    """

    def __init__(
        self,
        conn: AsyncConnection | AsyncEngine,
        *,
        table_name: str = "documents",
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._conn = conn
        self._table_name = table_name
        self._metadata = MetaData()
        self._table = documents_table(self._metadata, table_name)
        self._dialect = conn.dialect.name
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    def _attrs(self, operation: str, doc_id: str | None = None) -> dict[str, Any]:
        attrs: dict[str, Any] = {
            ATTR_DB_SYSTEM: self._dialect,
            ATTR_DB_NAME: self._table_name,
            ATTR_DB_OPERATION: operation,
        }
        if doc_id is not None:
            attrs[ATTR_RECORD_ID] = doc_id
        return attrs

    async def initialize(self) -> None:
        """Create the documents table if it does not exist. Idempotent."""
        async with execute_with_connection(self._conn, transactional=True) as conn:
            await conn.run_sync(self._metadata.create_all)
        logger.debug("Initialized document table %s (%s)", self._table_name, self._dialect)

    async def get(self, collection: str, doc_id: str) -> Document | None:
        with self._tracer.span("storefront.sql_documents.get", self._attrs("SELECT", doc_id)):
            query = text(f"""
                SELECT body FROM {self._table_name}
                WHERE collection = :collection AND doc_id = :doc_id
            """)  # nosec B608 - table name is fixed at construction

            async with execute_with_connection(self._conn, transactional=False) as conn:
                result = await conn.execute(query, {"collection": collection, "doc_id": doc_id})
                row = result.fetchone()

            return json.loads(row[0]) if row is not None else None

    async def insert(self, collection: str, document: Document) -> None:
        doc_id = document["id"]
        with self._tracer.span("storefront.sql_documents.insert", self._attrs("INSERT", doc_id)):
            query = text(f"""
                INSERT INTO {self._table_name} (collection, doc_id, body)
                VALUES (:collection, :doc_id, :body)
            """)  # nosec B608
            params = {"collection": collection, "doc_id": doc_id, "body": json.dumps(document)}
            try:
                async with execute_with_connection(self._conn, transactional=True) as conn:
                    await conn.execute(query, params)
            except IntegrityError as exc:
                raise ConditionalCheckFailedError(
                    collection, doc_id, "document already exists"
                ) from exc

    def _merge_expression(self, base: str, fields: Mapping[str, Any], params: dict[str, Any]) -> str:
        """SQL expression for ``base`` with ``fields`` overwritten at the top level."""
        if not fields:
            return base
        if self._dialect == "postgresql":
            params["patch"] = json.dumps(dict(fields))
            return f"CAST({base} AS JSONB) || CAST(:patch AS JSONB)"
        pairs = []
        for n, (name, value) in enumerate(fields.items()):
            params[f"path_{n}"] = _json_path(name)
            params[f"value_{n}"] = json.dumps(value)
            pairs.append(f":path_{n}, json(:value_{n})")
        return f"json_set({base}, {', '.join(pairs)})"

    async def set_fields(
        self, collection: str, doc_id: str, fields: Mapping[str, Any]
    ) -> Document | None:
        params: dict[str, Any] = {"collection": collection, "doc_id": doc_id}
        body = self._merge_expression("body", fields, params)
        if self._dialect == "postgresql":
            body = f"CAST({body} AS TEXT)"
        query = text(f"""
            UPDATE {self._table_name} SET body = {body}
            WHERE collection = :collection AND doc_id = :doc_id
            RETURNING body
        """)  # nosec B608 - identifiers are validated, values are bound

        with self._tracer.span("storefront.sql_documents.set_fields", self._attrs("UPDATE", doc_id)):
            async with execute_with_connection(self._conn, transactional=True) as conn:
                row = (await conn.execute(query, params)).fetchone()
            return json.loads(row[0]) if row is not None else None

    async def delete(self, collection: str, doc_id: str) -> bool:
        with self._tracer.span("storefront.sql_documents.delete", self._attrs("DELETE", doc_id)):
            query = text(f"""
                DELETE FROM {self._table_name}
                WHERE collection = :collection AND doc_id = :doc_id
            """)  # nosec B608
            async with execute_with_connection(self._conn, transactional=True) as conn:
                result = await conn.execute(query, {"collection": collection, "doc_id": doc_id})
                return result.rowcount > 0

    async def find(
        self,
        collection: str,
        where: Mapping[str, Any] | None = None,
        limit: int | None = None,
    ) -> list[Document]:
        with self._tracer.span("storefront.sql_documents.find", self._attrs("SELECT")):
            query = text(f"""
                SELECT body FROM {self._table_name}
                WHERE collection = :collection
                ORDER BY seq
            """)  # nosec B608
            async with execute_with_connection(self._conn, transactional=False) as conn:
                result = await conn.execute(query, {"collection": collection})
                rows = result.fetchall()

            documents = [d for d in (json.loads(row[0]) for row in rows) if matches(d, where)]
            return documents[:limit] if limit is not None else documents

    async def count(self, collection: str) -> int:
        query = text(f"""
            SELECT COUNT(*) FROM {self._table_name} WHERE collection = :collection
        """)  # nosec B608
        async with execute_with_connection(self._conn, transactional=False) as conn:
            result = await conn.execute(query, {"collection": collection})
            return int(result.scalar_one())

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
        params: dict[str, Any] = {"collection": collection, "doc_id": doc_id, "delta": delta}
        if self._dialect == "postgresql":
            params["field"] = field
            params["field_path"] = [field]
            current = "COALESCE(CAST(CAST(body AS JSONB) ->> :field AS NUMERIC), 0)"
            new_value = f"{current} + CAST(:delta AS NUMERIC)"
            incremented = (
                f"jsonb_set(CAST(body AS JSONB), CAST(:field_path AS TEXT[]), to_jsonb({new_value}))"
            )
            body = f"CAST({self._merge_expression(incremented, set_fields or {}, params)} AS TEXT)"
        else:
            params["field"] = _json_path(field)
            current = "COALESCE(json_extract(body, :field), 0)"
            new_value = f"{current} + :delta"
            body = self._merge_expression(
                f"json_set(body, :field, {new_value})", set_fields or {}, params
            )

        condition = ""
        if minimum is not None:
            condition = f" AND {new_value} >= :minimum"
            params["minimum"] = minimum
        # one conditional statement, so concurrent increments cannot interleave
        query = text(f"""
            UPDATE {self._table_name} SET body = {body}
            WHERE collection = :collection AND doc_id = :doc_id{condition}
            RETURNING body
        """)  # nosec B608 - identifiers are validated, values are bound

        with self._tracer.span("storefront.sql_documents.increment", self._attrs("UPDATE", doc_id)):
            async with execute_with_connection(self._conn, transactional=True) as conn:
                row = (await conn.execute(query, params)).fetchone()

        if row is not None:
            return json.loads(row[0])
        existing = await self.get(collection, doc_id)
        if existing is None:
            raise ConditionalCheckFailedError(collection, doc_id, "document does not exist")
        raise ConditionalCheckFailedError(
            collection,
            doc_id,
            f"{field} would become {existing.get(field, 0) + delta}, below {minimum}",
        )


__all__ = ["SQLDocumentStore", "documents_table"]
