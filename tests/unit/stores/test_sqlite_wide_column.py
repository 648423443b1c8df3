"""
Unit tests for SQLiteWideColumnTable.

Tests cover:
- Table and index creation, including GSI3 backfill for older tables
- Conditional puts and deletes
- Index queries with paging
- Atomic increment with a minimum bound
- Partial attribute updates that keep index columns in sync
- Table naming from MigrationSettings
"""

import asyncio
from typing import Any

import pytest

try:
    import aiosqlite

    AIOSQLITE_AVAILABLE = True
except ImportError:
    AIOSQLITE_AVAILABLE = False

from storefront.exceptions import ConditionalCheckFailedError
from storefront.stores.wide_column import WideColumnTable, query_all, scan_all

pytestmark = [
    pytest.mark.sqlite,
    pytest.mark.skipif(not AIOSQLITE_AVAILABLE, reason="aiosqlite not installed"),
]


def order_item(oid: str, code: str | None = None, **extra: Any) -> dict[str, Any]:
    item: dict[str, Any] = {
        "PK": f"ORDER#{oid}",
        "SK": "METADATA",
        "EntityType": "Order",
        "GSI1PK": "USER#u1",
        "GSI1SK": f"ORDER#2024-01-0{oid[-1]}",
        "GSI2PK": "STATUS#Processing",
        "GSI2SK": f"CREATED#2024-01-0{oid[-1]}",
        "id": oid,
        "order_code": code,
        "total_price": 100,
    }
    if code:
        item["GSI3PK"] = f"ORDERCODE#{code}"
        item["GSI3SK"] = f"ORDER#{oid}"
    item.update(extra)
    return item


class TestSchema:
    @pytest.mark.asyncio
    async def test_ensure_table_is_idempotent(self, sqlite_table) -> None:
        await sqlite_table.ensure_table()
        await sqlite_table.put_item(order_item("o1"))

        await sqlite_table.ensure_table()

        assert await sqlite_table.count("Order") == 1

    @pytest.mark.asyncio
    async def test_implements_protocol(self, sqlite_table) -> None:
        assert isinstance(sqlite_table, WideColumnTable)

    @pytest.mark.asyncio
    async def test_operations_require_connection(self, tmp_path) -> None:
        from storefront.stores.sqlite_wide_column import SQLiteWideColumnTable

        table = SQLiteWideColumnTable(str(tmp_path / "x.db"), enable_tracing=False)

        with pytest.raises(RuntimeError, match="Not connected"):
            await table.get_item("ORDER#o1", "METADATA")

    def test_rejects_unsafe_table_name(self) -> None:
        from storefront.stores.sqlite_wide_column import SQLiteWideColumnTable

        with pytest.raises(ValueError):
            SQLiteWideColumnTable(":memory:", "items; DROP TABLE x")

    @pytest.mark.asyncio
    async def test_gsi3_backfilled_on_older_table(self, tmp_path) -> None:
        from storefront.stores.sqlite_wide_column import SQLiteWideColumnTable

        path = str(tmp_path / "legacy.db")
        async with aiosqlite.connect(path) as conn:
            await conn.execute(
                """
                CREATE TABLE storefront (
                    pk TEXT NOT NULL, sk TEXT NOT NULL, entity_type TEXT,
                    gsi1pk TEXT, gsi1sk TEXT, gsi2pk TEXT, gsi2sk TEXT,
                    data TEXT NOT NULL, PRIMARY KEY (pk, sk)
                )
                """
            )
            await conn.execute(
                "INSERT INTO storefront (pk, sk, entity_type, data) VALUES (?, ?, ?, ?)",
                (
                    "ORDER#o1",
                    "METADATA",
                    "Order",
                    '{"PK": "ORDER#o1", "SK": "METADATA", "EntityType": "Order", '
                    '"id": "o1", "order_code": "OC-7"}',
                ),
            )
            await conn.commit()

        async with SQLiteWideColumnTable(path, enable_tracing=False) as table:
            await table.ensure_table()
            page = await table.query("ORDERCODE#OC-7", index="GSI3")

        assert [i["id"] for i in page.items] == ["o1"]
        assert page.items[0]["GSI3SK"] == "ORDER#o1"


class TestItems:
    @pytest.mark.asyncio
    async def test_put_get_round_trip(self, sqlite_table) -> None:
        item = order_item("o1", "OC-1", shipping_info={"city": "Hanoi"})

        await sqlite_table.put_item(item)

        assert await sqlite_table.get_item("ORDER#o1", "METADATA") == item

    @pytest.mark.asyncio
    async def test_conditional_put(self, sqlite_table) -> None:
        await sqlite_table.put_item(order_item("o1"))

        with pytest.raises(ConditionalCheckFailedError):
            await sqlite_table.put_item(order_item("o1", total_price=5), if_not_exists=True)

        assert (await sqlite_table.get_item("ORDER#o1", "METADATA"))["total_price"] == 100

    @pytest.mark.asyncio
    async def test_delete(self, sqlite_table) -> None:
        await sqlite_table.put_item(order_item("o1"))

        assert await sqlite_table.delete_item("ORDER#o1", "METADATA") is True
        assert await sqlite_table.get_item("ORDER#o1", "METADATA") is None
        assert await sqlite_table.delete_item("ORDER#o1", "METADATA") is False


class TestQueries:
    @pytest.mark.asyncio
    async def test_index_query_and_paging(self, sqlite_table) -> None:
        for n in range(1, 6):
            await sqlite_table.put_item(order_item(f"o{n}"))

        first = await sqlite_table.query("USER#u1", index="GSI1", descending=True, limit=2)
        second = await sqlite_table.query(
            "USER#u1",
            index="GSI1",
            descending=True,
            limit=2,
            start_key=first.last_evaluated_key,
        )

        assert [i["id"] for i in first.items] == ["o5", "o4"]
        assert [i["id"] for i in second.items] == ["o3", "o2"]

    @pytest.mark.asyncio
    async def test_gsi3_lookup(self, sqlite_table) -> None:
        await sqlite_table.put_item(order_item("o1", "OC-1"))
        await sqlite_table.put_item(order_item("o2"))

        page = await sqlite_table.query("ORDERCODE#OC-1", index="GSI3")

        assert [i["id"] for i in page.items] == ["o1"]

    @pytest.mark.asyncio
    async def test_sort_key_prefix(self, sqlite_table) -> None:
        await sqlite_table.put_item({"PK": "PRODUCT#p1", "SK": "METADATA", "EntityType": "Product"})
        await sqlite_table.put_item({"PK": "PRODUCT#p1", "SK": "REVIEW#u1", "EntityType": "Review"})

        items = await query_all(sqlite_table, "PRODUCT#p1", sort_key_prefix="REVIEW#")

        assert [i["SK"] for i in items] == ["REVIEW#u1"]

    @pytest.mark.asyncio
    async def test_scan_by_entity_type(self, sqlite_table) -> None:
        for n in range(1, 5):
            await sqlite_table.put_item(order_item(f"o{n}"))
        await sqlite_table.put_item({"PK": "USER#u1", "SK": "METADATA", "EntityType": "User"})

        items = await scan_all(sqlite_table, entity_type="Order", page_size=3)

        assert sorted(i["id"] for i in items) == ["o1", "o2", "o3", "o4"]


class TestIncrement:
    @pytest.mark.asyncio
    async def test_increment_with_set_attributes(self, sqlite_table) -> None:
        await sqlite_table.put_item({"PK": "PRODUCT#p1", "SK": "METADATA", "stock": 3})

        item = await sqlite_table.increment(
            "PRODUCT#p1", "METADATA", "stock", -2, minimum=0, set_attributes={"updated_at": "t1"}
        )

        assert item["stock"] == 1
        assert item["updated_at"] == "t1"

    @pytest.mark.asyncio
    async def test_minimum_violation_leaves_item_unchanged(self, sqlite_table) -> None:
        await sqlite_table.put_item({"PK": "PRODUCT#p1", "SK": "METADATA", "stock": 3})

        with pytest.raises(ConditionalCheckFailedError, match="below 0"):
            await sqlite_table.increment("PRODUCT#p1", "METADATA", "stock", -5, minimum=0)

        assert (await sqlite_table.get_item("PRODUCT#p1", "METADATA"))["stock"] == 3

    @pytest.mark.asyncio
    async def test_missing_item(self, sqlite_table) -> None:
        with pytest.raises(ConditionalCheckFailedError, match="does not exist"):
            await sqlite_table.increment("PRODUCT#none", "METADATA", "stock", 1)

    @pytest.mark.asyncio
    async def test_concurrent_decrements_are_all_applied(self, sqlite_table) -> None:
        await sqlite_table.put_item({"PK": "PRODUCT#p1", "SK": "METADATA", "stock": 10})

        await asyncio.gather(
            *(
                sqlite_table.increment("PRODUCT#p1", "METADATA", "stock", -1, minimum=0)
                for _ in range(5)
            )
        )

        assert (await sqlite_table.get_item("PRODUCT#p1", "METADATA"))["stock"] == 5


class TestUpdateAttributes:
    @pytest.mark.asyncio
    async def test_sets_and_removes_named_attributes(self, sqlite_table) -> None:
        await sqlite_table.put_item(order_item("o1", code="OC-1", note="gift"))

        item = await sqlite_table.update_attributes(
            "ORDER#o1", "METADATA", {"total_price": 250}, remove=["note"]
        )

        assert item["total_price"] == 250
        assert "note" not in item
        assert item["order_code"] == "OC-1"
        assert await sqlite_table.get_item("ORDER#o1", "METADATA") == item

    @pytest.mark.asyncio
    async def test_index_columns_follow_attributes(self, sqlite_table) -> None:
        await sqlite_table.put_item(order_item("o1", code="OC-1"))

        await sqlite_table.update_attributes(
            "ORDER#o1", "METADATA", {"GSI2PK": "STATUS#Delivered"}, remove=["GSI3PK", "GSI3SK"]
        )

        assert (await sqlite_table.query("STATUS#Processing", index="GSI2")).items == []
        delivered = await sqlite_table.query("STATUS#Delivered", index="GSI2")
        assert [i["id"] for i in delivered.items] == ["o1"]
        assert (await sqlite_table.query("ORDERCODE#OC-1", index="GSI3")).items == []

    @pytest.mark.asyncio
    async def test_missing_item(self, sqlite_table) -> None:
        with pytest.raises(ConditionalCheckFailedError, match="does not exist"):
            await sqlite_table.update_attributes("ORDER#none", "METADATA", {"total_price": 1})

    @pytest.mark.asyncio
    async def test_does_not_undo_increment(self, sqlite_table) -> None:
        await sqlite_table.put_item({"PK": "PRODUCT#p1", "SK": "METADATA", "stock": 10})

        await asyncio.gather(
            sqlite_table.increment("PRODUCT#p1", "METADATA", "stock", -2, minimum=0),
            sqlite_table.update_attributes("PRODUCT#p1", "METADATA", {"ratings": 4.5}),
        )

        item = await sqlite_table.get_item("PRODUCT#p1", "METADATA")
        assert item["stock"] == 8
        assert item["ratings"] == 4.5


class TestFromSettings:
    @pytest.mark.asyncio
    async def test_table_named_by_settings(self, tmp_path) -> None:
        from storefront.config import MigrationSettings
        from storefront.stores.sqlite_wide_column import SQLiteWideColumnTable

        settings = MigrationSettings(table_name="shop_items", enable_tracing=False)

        async with SQLiteWideColumnTable.from_settings(
            str(tmp_path / "shop.db"), settings
        ) as table:
            await table.ensure_table()
            await table.put_item(order_item("o1"))

            assert table.table_name == "shop_items"
            assert await table.count("Order") == 1

        async with aiosqlite.connect(str(tmp_path / "shop.db")) as conn:
            cursor = await conn.execute("SELECT COUNT(*) FROM shop_items")
            assert (await cursor.fetchone())[0] == 1
