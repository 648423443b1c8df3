"""
SQLite wide-column table implementation.

Emulates a single-table design on SQLite via aiosqlite. Each item is one row:
the key and index attributes are real columns (with composite indexes for
``GSI1``-``GSI3`` and ``EntityType``) and the full item is kept as JSON in
the ``data`` column.

Suitable for development, tests and single-instance deployments.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

import aiosqlite

from storefront.exceptions import ConditionalCheckFailedError
from storefront.observability import (
    ATTR_DB_NAME,
    ATTR_DB_OPERATION,
    ATTR_DB_SYSTEM,
    ATTR_INDEX_NAME,
    ATTR_PARTITION_KEY,
    ATTR_RECORD_COUNT,
    Tracer,
    create_tracer,
)
from storefront.schema.mapper import ENTITY_TYPE_ATTR, INDEX_NAMES, Item
from storefront.stores.wide_column import ItemPage, StartKey, key_attributes, start_key_for

if TYPE_CHECKING:
    from storefront.config import MigrationSettings

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# item attribute -> column
_COLUMNS: dict[str, str] = {
    "PK": "pk",
    "SK": "sk",
    ENTITY_TYPE_ATTR: "entity_type",
    "GSI1PK": "gsi1pk",
    "GSI1SK": "gsi1sk",
    "GSI2PK": "gsi2pk",
    "GSI2SK": "gsi2sk",
    "GSI3PK": "gsi3pk",
    "GSI3SK": "gsi3sk",
}


def _check_identifier(value: str, what: str) -> str:
    if not _IDENTIFIER.match(value):
        raise ValueError(f"Invalid {what} {value!r}: must be a plain identifier")
    return value


def _json_path(attribute: str) -> str:
    return f'$."{_check_identifier(attribute, "attribute name")}"'


class SQLiteWideColumnTable:
    """
    Wide-column table backed by a SQLite database.

    Attributes:
        _database: Path to SQLite file or ':memory:'
        _table: Table name
        _connection: The aiosqlite connection (set after connect/ensure_table)

    Example:
        >>> async with SQLiteWideColumnTable(":memory:") as table:
        ...     await table.ensure_table()
        ...     await table.put_item(item)
        ...     page = await table.query("CATEGORY#Books", index="GSI1")
    """

    def __init__(
        self,
        database: str,
        table_name: str = "storefront",
        *,
        wal_mode: bool = True,
        busy_timeout: int = 5000,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the SQLite table.

        Args:
            database: Path to SQLite database file or ':memory:'
            table_name: Table name (plain identifier)
            wal_mode: If True, enable WAL mode (default: True)
            busy_timeout: Timeout in milliseconds when database is locked
            tracer: Optional custom Tracer instance
            enable_tracing: If True and OpenTelemetry is available, emit traces
        """
        self._database = database
        self._table = _check_identifier(table_name, "table name")
        self._wal_mode = wal_mode
        self._busy_timeout = busy_timeout
        self._connection: aiosqlite.Connection | None = None
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    @classmethod
    def from_settings(
        cls, database: str, settings: MigrationSettings, **kwargs: Any
    ) -> SQLiteWideColumnTable:
        """Table named ``settings.table_name``, traced per ``settings.enable_tracing``."""
        kwargs.setdefault("enable_tracing", settings.enable_tracing)
        return cls(database, settings.table_name, **kwargs)

    @property
    def table_name(self) -> str:
        return self._table

    async def __aenter__(self) -> SQLiteWideColumnTable:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        await self.close()

    async def connect(self) -> None:
        """Open the database connection. Safe to call when already connected."""
        if self._connection is not None:
            return
        self._connection = await aiosqlite.connect(self._database)
        await self._connection.execute(f"PRAGMA busy_timeout = {self._busy_timeout}")
        if self._wal_mode:
            await self._connection.execute("PRAGMA journal_mode = WAL")
        logger.debug(
            "Connected to SQLite wide-column table %s in %s", self._table, self._database
        )

    async def close(self) -> None:
        """Close the database connection. Safe to call multiple times."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            logger.debug("Closed SQLite wide-column table %s", self._table)

    def _ensure_connected(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise RuntimeError(
                "Not connected to database. Use 'async with table:' or call 'connect()' first."
            )
        return self._connection

    def _attrs(self, operation: str) -> dict[str, Any]:
        return {ATTR_DB_SYSTEM: "sqlite", ATTR_DB_NAME: self._table, ATTR_DB_OPERATION: operation}

    async def ensure_table(self) -> None:
        """
        Create the table and its indexes if missing.

        Tables created before ``GSI3`` existed gain its columns and index, and
        existing orders with an order code are backfilled into it.
        Idempotent.
        """
        if self._connection is None:
            await self.connect()
        conn = self._ensure_connected()
        t = self._table

        await conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {t} (
                pk TEXT NOT NULL,
                sk TEXT NOT NULL,
                entity_type TEXT,
                gsi1pk TEXT,
                gsi1sk TEXT,
                gsi2pk TEXT,
                gsi2sk TEXT,
                data TEXT NOT NULL,
                PRIMARY KEY (pk, sk)
            )
            """
        )

        cursor = await conn.execute(f"PRAGMA table_info({t})")
        existing = {row[1] for row in await cursor.fetchall()}
        await cursor.close()
        added_gsi3 = False
        for column in ("gsi3pk", "gsi3sk"):
            if column not in existing:
                await conn.execute(f"ALTER TABLE {t} ADD COLUMN {column} TEXT")
                added_gsi3 = True

        for index in INDEX_NAMES:
            n = index.lower()
            await conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{t}_{n} ON {t} ({n}pk, {n}sk, pk, sk)"
            )
        await conn.execute(
            f"CREATE INDEX IF NOT EXISTS idx_{t}_entity_type ON {t} (entity_type, pk, sk)"
        )

        if added_gsi3:
            cursor = await conn.execute(
                f"""
                UPDATE {t}
                SET gsi3pk = 'ORDERCODE#' || json_extract(data, '$.order_code'),
                    gsi3sk = 'ORDER#' || json_extract(data, '$.id'),
                    data = json_set(
                        data,
                        '$.GSI3PK', 'ORDERCODE#' || json_extract(data, '$.order_code'),
                        '$.GSI3SK', 'ORDER#' || json_extract(data, '$.id')
                    )
                WHERE entity_type = 'Order'
                  AND gsi3pk IS NULL
                  AND json_extract(data, '$.order_code') IS NOT NULL
                """
            )
            if cursor.rowcount:
                logger.info("Backfilled GSI3 for %d existing orders in %s", cursor.rowcount, t)
            await cursor.close()

        await conn.commit()

    async def get_item(self, pk: str, sk: str) -> Item | None:
        conn = self._ensure_connected()
        cursor = await conn.execute(
            f"SELECT data FROM {self._table} WHERE pk = ? AND sk = ?", (pk, sk)
        )
        row = await cursor.fetchone()
        await cursor.close()
        return json.loads(row[0]) if row else None

    async def put_item(self, item: Item, *, if_not_exists: bool = False) -> None:
        conn = self._ensure_connected()
        columns = list(_COLUMNS.values()) + ["data"]
        values = [item.get(attr) for attr in _COLUMNS] + [json.dumps(item)]
        verb = "INSERT" if if_not_exists else "INSERT OR REPLACE"
        placeholders = ", ".join("?" for _ in columns)
        with self._tracer.span("storefront.sqlite_wide_column.put_item", self._attrs("INSERT")):
            try:
                await conn.execute(
                    f"{verb} INTO {self._table} ({', '.join(columns)}) VALUES ({placeholders})",
                    values,
                )
            except aiosqlite.IntegrityError as exc:
                raise ConditionalCheckFailedError(
                    item["PK"], item["SK"], "item already exists"
                ) from exc
            await conn.commit()

    async def delete_item(self, pk: str, sk: str) -> bool:
        conn = self._ensure_connected()
        cursor = await conn.execute(
            f"DELETE FROM {self._table} WHERE pk = ? AND sk = ?", (pk, sk)
        )
        deleted = cursor.rowcount > 0
        await cursor.close()
        await conn.commit()
        return deleted

    async def query(
        self,
        partition_value: str,
        *,
        index: str | None = None,
        sort_key_prefix: str | None = None,
        descending: bool = False,
        limit: int | None = None,
        start_key: StartKey | None = None,
    ) -> ItemPage:
        conn = self._ensure_connected()
        pk_attr, sk_attr = key_attributes(index)
        pk_col, sk_col = _COLUMNS[pk_attr], _COLUMNS[sk_attr]

        if index is None:
            order_cols = ["sk"]
        else:
            order_cols = [f"COALESCE({sk_col}, '')", "pk", "sk"]

        clauses = [f"{pk_col} = ?"]
        params: list[Any] = [partition_value]
        if sort_key_prefix:
            clauses.append(f"substr(COALESCE({sk_col}, ''), 1, ?) = ?")
            params.extend([len(sort_key_prefix), sort_key_prefix])
        if start_key is not None:
            op = "<" if descending else ">"
            if index is None:
                clauses.append(f"sk {op} ?")
                params.append(start_key["SK"])
            else:
                clauses.append(f"({', '.join(order_cols)}) {op} (?, ?, ?)")
                params.extend([start_key.get(sk_attr, ""), start_key["PK"], start_key["SK"]])

        direction = "DESC" if descending else "ASC"
        sql = (
            f"SELECT data FROM {self._table} WHERE {' AND '.join(clauses)} "
            f"ORDER BY {', '.join(f'{c} {direction}' for c in order_cols)}"
        )

        with self._tracer.span(
            "storefront.sqlite_wide_column.query",
            {**self._attrs("SELECT"), ATTR_INDEX_NAME: index or "", ATTR_PARTITION_KEY: partition_value},
        ):
            return await self._read_page(conn, sql, params, limit, index)

    async def scan(
        self,
        *,
        entity_type: str | None = None,
        limit: int | None = None,
        start_key: StartKey | None = None,
    ) -> ItemPage:
        conn = self._ensure_connected()
        clauses: list[str] = []
        params: list[Any] = []
        if entity_type is not None:
            clauses.append("entity_type = ?")
            params.append(entity_type)
        if start_key is not None:
            clauses.append("(pk, sk) > (?, ?)")
            params.extend([start_key["PK"], start_key["SK"]])
        where = f"WHERE {' AND '.join(clauses)} " if clauses else ""
        sql = f"SELECT data FROM {self._table} {where}ORDER BY pk, sk"

        with self._tracer.span("storefront.sqlite_wide_column.scan", self._attrs("SELECT")) as span:
            page = await self._read_page(conn, sql, params, limit, None)
            if span is not None:
                span.set_attribute(ATTR_RECORD_COUNT, len(page.items))
            return page

    async def _read_page(
        self,
        conn: aiosqlite.Connection,
        sql: str,
        params: list[Any],
        limit: int | None,
        index: str | None,
    ) -> ItemPage:
        if limit is not None:
            # one extra row tells us whether another page exists
            sql += " LIMIT ?"
            params = [*params, limit + 1]
        cursor = await conn.execute(sql, params)
        rows = await cursor.fetchall()
        await cursor.close()
        items = [json.loads(row[0]) for row in rows]
        if limit is not None and len(items) > limit:
            items = items[:limit]
            return ItemPage(items=items, last_evaluated_key=start_key_for(items[-1], index))
        return ItemPage(items=items)

    async def increment(
        self,
        pk: str,
        sk: str,
        attribute: str,
        delta: int | float,
        *,
        minimum: int | float | None = None,
        set_attributes: Mapping[str, Any] | None = None,
    ) -> Item:
        conn = self._ensure_connected()
        path = _json_path(attribute)
        assignments = ["?", "COALESCE(json_extract(data, ?), 0) + ?"]
        params: list[Any] = [path, path, delta]
        for name, value in (set_attributes or {}).items():
            assignments.extend(["?", "json(?)"])
            params.extend([_json_path(name), json.dumps(value)])

        sql = (
            f"UPDATE {self._table} SET data = json_set(data, {', '.join(assignments)}) "
            "WHERE pk = ? AND sk = ?"
        )
        params.extend([pk, sk])
        if minimum is not None:
            sql += " AND COALESCE(json_extract(data, ?), 0) + ? >= ?"
            params.extend([path, delta, minimum])
        sql += " RETURNING data"

        with self._tracer.span(
            "storefront.sqlite_wide_column.increment",
            {**self._attrs("UPDATE"), ATTR_PARTITION_KEY: pk},
        ):
            cursor = await conn.execute(sql, params)
            row = await cursor.fetchone()
            await cursor.close()
            await conn.commit()

        if row is None:
            existing = await self.get_item(pk, sk)
            if existing is None:
                raise ConditionalCheckFailedError(pk, sk, "item does not exist")
            raise ConditionalCheckFailedError(
                pk,
                sk,
                f"{attribute} would become {existing.get(attribute, 0) + delta}, below {minimum}",
            )
        return json.loads(row[0])

    async def update_attributes(
        self,
        pk: str,
        sk: str,
        attributes: Mapping[str, Any],
        *,
        remove: Sequence[str] = (),
    ) -> Item:
        conn = self._ensure_connected()
        data_expr = "data"
        data_params: list[Any] = []
        if attributes:
            pairs = []
            for name, value in attributes.items():
                pairs.append("?, json(?)")
                data_params.extend([_json_path(name), json.dumps(value)])
            data_expr = f"json_set({data_expr}, {', '.join(pairs)})"
        if remove:
            data_expr = f"json_remove({data_expr}, {', '.join('?' for _ in remove)})"
            data_params.extend(_json_path(name) for name in remove)

        # index columns mirror their attributes so queries see the new values
        assignments = [f"data = {data_expr}"]
        column_params: list[Any] = []
        for name, value in attributes.items():
            if name in _COLUMNS:
                assignments.append(f"{_COLUMNS[name]} = ?")
                column_params.append(value)
        for name in remove:
            if name in _COLUMNS:
                assignments.append(f"{_COLUMNS[name]} = NULL")

        sql = (
            f"UPDATE {self._table} SET {', '.join(assignments)} "
            "WHERE pk = ? AND sk = ? RETURNING data"
        )
        with self._tracer.span(
            "storefront.sqlite_wide_column.update_attributes",
            {**self._attrs("UPDATE"), ATTR_PARTITION_KEY: pk},
        ):
            cursor = await conn.execute(sql, [*data_params, *column_params, pk, sk])
            row = await cursor.fetchone()
            await cursor.close()
            await conn.commit()

        if row is None:
            raise ConditionalCheckFailedError(pk, sk, "item does not exist")
        return json.loads(row[0])

    async def count(self, entity_type: str) -> int:
        conn = self._ensure_connected()
        cursor = await conn.execute(
            f"SELECT COUNT(*) FROM {self._table} WHERE entity_type = ?", (entity_type,)
        )
        row = await cursor.fetchone()
        await cursor.close()
        return int(row[0]) if row else 0


__all__ = ["SQLiteWideColumnTable"]
