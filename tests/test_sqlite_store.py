"""
Tests for the SQLite ticket store.
"""
import asyncio
import json
from datetime import datetime, timezone

import aiosqlite
import pytest
import pytest_asyncio

from database.sqlite_adapter import SQLiteTicketStore
from errors.exceptions import StorageConnectionError
from models.ticket import Ticket, TicketStatus


@pytest_asyncio.fixture
async def sqlite_store(tmp_path, ticket_dir):
    store = SQLiteTicketStore(str(tmp_path / "db" / "tickets.db"), str(ticket_dir))
    await store.connect()
    return store


async def fetch_row(store: SQLiteTicketStore, ticket_id: str):
    async with aiosqlite.connect(store.db_path) as conn:
        conn.row_factory = aiosqlite.Row
        cursor = await conn.execute("SELECT * FROM tickets WHERE id = ?", (ticket_id,))
        return await cursor.fetchone()


class TestSQLiteSchema:
    """Test database initialization."""

    @pytest.mark.asyncio
    async def test_connect_creates_schema(self, sqlite_store):
        async with aiosqlite.connect(sqlite_store.db_path) as conn:
            cursor = await conn.execute("SELECT name FROM sqlite_master WHERE type = 'index' AND tbl_name = 'tickets'")
            indexes = {row[0] for row in await cursor.fetchall()}

        assert {"idx_tickets_status", "idx_tickets_category", "idx_tickets_dueAt", "idx_tickets_created"} <= indexes

    @pytest.mark.asyncio
    async def test_connect_is_repeatable(self, sqlite_store):
        await sqlite_store.connect()
        assert await sqlite_store.count_tickets() == 0

    @pytest.mark.asyncio
    async def test_unopenable_database(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("file, not a directory")
        store = SQLiteTicketStore(str(blocker / "tickets.db"), str(tmp_path / "Ticket"))

        with pytest.raises(StorageConnectionError):
            await store.connect()


class TestSQLiteTicketStore:
    """Test row layout and denormalized columns."""

    @pytest.mark.asyncio
    async def test_columns_mirror_payload(self, sqlite_store):
        ticket = Ticket(id="NTC-SQL001", name="Alice", issue="printer jam", category="Hardware")
        await sqlite_store.save_ticket(ticket)

        row = await fetch_row(sqlite_store, "NTC-SQL001")
        payload = json.loads(row['data'])

        assert row['status'] == "Acknowledged"
        assert row['category'] == "Hardware"
        assert row['dueAt'] == payload['dueAt']
        assert row['created'] == payload['created']
        assert row['updatedAt'] is not None

    @pytest.mark.asyncio
    async def test_upsert_refreshes_columns(self, sqlite_store):
        ticket = Ticket(id="NTC-SQL002", name="Alice", issue="printer jam")
        await sqlite_store.save_ticket(ticket)
        first = await fetch_row(sqlite_store, "NTC-SQL002")

        await asyncio.sleep(0.01)
        ticket.status = TicketStatus.COMPLETE
        ticket.category = "Software"
        await sqlite_store.save_ticket(ticket)
        second = await fetch_row(sqlite_store, "NTC-SQL002")

        assert second['status'] == "Complete"
        assert second['category'] == "Software"
        assert second['created'] == first['created']
        assert second['updatedAt'] > first['updatedAt']
        assert await sqlite_store.count_tickets() == 1

    @pytest.mark.asyncio
    async def test_upsert_updates_created_column(self, sqlite_store):
        ticket = Ticket(
            id="NTC-SQL005", name="Alice", issue="printer jam",
            created=datetime(2024, 1, 1, 8, 0, tzinfo=timezone.utc)
        )
        await sqlite_store.save_ticket(ticket)
        await sqlite_store.save_ticket(Ticket(
            id="NTC-SQL006", name="Bob", issue="no wifi",
            created=datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc)
        ))

        ticket.created = datetime(2024, 6, 1, 8, 0, tzinfo=timezone.utc)
        await sqlite_store.save_ticket(ticket)
        row = await fetch_row(sqlite_store, "NTC-SQL005")

        assert row['created'] == "2024-06-01T08:00:00.000Z"
        assert row['created'] == json.loads(row['data'])['created']
        assert [t.id for t in await sqlite_store.list_tickets()] == ["NTC-SQL005", "NTC-SQL006"]

    @pytest.mark.asyncio
    async def test_remove_deletes_legacy_json(self, sqlite_store, ticket_dir):
        await sqlite_store.save_ticket(Ticket(id="NTC-SQL003", name="Alice", issue="printer jam"))
        legacy = ticket_dir / "NTC-SQL003.json"
        legacy.write_text("{}")

        assert await sqlite_store.remove_ticket("NTC-SQL003") is True

        assert not legacy.exists()
        assert await fetch_row(sqlite_store, "NTC-SQL003") is None

    @pytest.mark.asyncio
    async def test_unreadable_row_skipped(self, sqlite_store):
        await sqlite_store.save_ticket(Ticket(id="NTC-SQL004", name="Alice", issue="printer jam"))
        async with aiosqlite.connect(sqlite_store.db_path) as conn:
            await conn.execute(
                "INSERT INTO tickets (id, data, created) VALUES (?, ?, ?)",
                ("NTC-BROKEN", "{oops", "2024-01-01T00:00:00.000Z")
            )
            await conn.commit()

        assert [t.id for t in await sqlite_store.list_tickets()] == ["NTC-SQL004"]
        assert await sqlite_store.get_ticket("NTC-BROKEN") is None
