"""
SQLite 어댑터 테스트
"""

from pathlib import Path

import aiosqlite
import pytest

from adapters.db.sqlite_adapter import SQLiteAdapter, init_schema


class TestSQLiteAdapter:
    """SQLiteAdapter 테스트"""

    @pytest.mark.asyncio
    async def test_connect_and_close(self, db_path: Path) -> None:
        adapter = SQLiteAdapter(db_path)
        assert adapter.is_connected is False

        await adapter.connect()
        assert adapter.is_connected is True
        assert db_path.exists()

        await adapter.close()
        assert adapter.is_connected is False

    @pytest.mark.asyncio
    async def test_wal_mode(self, db: SQLiteAdapter) -> None:
        row = await db.fetchone("PRAGMA journal_mode")

        assert row[0].lower() == "wal"

    @pytest.mark.asyncio
    async def test_execute_without_connection(self, db_path: Path) -> None:
        adapter = SQLiteAdapter(db_path)

        with pytest.raises(RuntimeError, match="Not connected"):
            await adapter.execute("SELECT 1")

    @pytest.mark.asyncio
    async def test_init_schema_creates_tables(self, db: SQLiteAdapter) -> None:
        for table in ("deposits", "withdrawals", "processed_events", "status_history"):
            assert await db.table_exists(table), table

        cursor = await db.execute("PRAGMA table_info(deposits)")
        columns = {row[1] for row in await cursor.fetchall()}
        assert {"tx_id", "amount", "status", "settlement_reference"} <= columns

    @pytest.mark.asyncio
    async def test_init_schema_is_idempotent(self, db: SQLiteAdapter) -> None:
        await init_schema(db)

        assert await db.table_exists("deposits")

    @pytest.mark.asyncio
    async def test_transaction_commit(self, db: SQLiteAdapter) -> None:
        async with db.transaction() as conn:
            await conn.execute(
                "INSERT INTO processed_events (event_id, event_type, processed_at) "
                "VALUES ('e1', 'redeem', '2026-01-01T00:00:00+00:00')"
            )

        row = await db.fetchone("SELECT event_id FROM processed_events")
        assert row[0] == "e1"

    @pytest.mark.asyncio
    async def test_transaction_rollback(self, db: SQLiteAdapter) -> None:
        with pytest.raises(ValueError):
            async with db.transaction() as conn:
                await conn.execute(
                    "INSERT INTO processed_events (event_id, event_type, processed_at) "
                    "VALUES ('e1', 'redeem', '2026-01-01T00:00:00+00:00')"
                )
                raise ValueError("boom")

        row = await db.fetchone("SELECT COUNT(*) FROM processed_events")
        assert row[0] == 0

    @pytest.mark.asyncio
    async def test_status_history_is_append_only(self, db: SQLiteAdapter) -> None:
        async with db.transaction() as conn:
            await conn.execute(
                "INSERT INTO status_history (entity_type, entity_id, new_status, changed_at) "
                "VALUES ('deposit', 'abc', 'pending', '2026-01-01T00:00:00+00:00')"
            )

        with pytest.raises(aiosqlite.IntegrityError, match="append-only"):
            async with db.transaction() as conn:
                await conn.execute("DELETE FROM status_history")

        with pytest.raises(aiosqlite.IntegrityError, match="append-only"):
            async with db.transaction() as conn:
                await conn.execute("UPDATE status_history SET note = 'x'")

    @pytest.mark.asyncio
    async def test_readonly_connection_rejects_writes(self, db: SQLiteAdapter, db_path: Path) -> None:
        async with SQLiteAdapter(db_path, readonly=True) as reader:
            assert await reader.table_exists("deposits")

            with pytest.raises(aiosqlite.OperationalError):
                await reader.execute(
                    "INSERT INTO processed_events (event_id, event_type, processed_at) "
                    "VALUES ('e1', 'redeem', 'x')"
                )
