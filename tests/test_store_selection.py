"""
Tests for ticket store selection at start-up and the JSON to SQLite import.
"""
import json
from unittest.mock import patch

import pytest

from config.config_manager import ConfigManager
from database.file_store import FileTicketStore
from database.selector import create_ticket_store, migrate_file_store_to_sqlite
from database.sqlite_adapter import SQLiteTicketStore
from errors.exceptions import StorageConnectionError, StorageError


def make_config(tmp_path, **env) -> ConfigManager:
    environ = {'TICKET_DIR': str(tmp_path / "Ticket")}
    environ.update(env)
    return ConfigManager(str(tmp_path / "missing.json"), environ=environ)


class TestCreateTicketStore:
    """Test backend selection."""

    @pytest.mark.asyncio
    async def test_file_store_by_default(self, tmp_path):
        store = await create_ticket_store(make_config(tmp_path))
        assert isinstance(store, FileTicketStore)
        assert store.ticket_dir == tmp_path / "Ticket"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("backend", ["db", "sqlite", "DB"])
    async def test_backend_setting_selects_sqlite(self, tmp_path, backend):
        config = make_config(tmp_path, TICKET_BACKEND=backend, DB_FILE=str(tmp_path / "t.db"))
        store = await create_ticket_store(config)
        assert isinstance(store, SQLiteTicketStore)
        assert store.db_path == str(tmp_path / "t.db")

    @pytest.mark.asyncio
    async def test_db_file_alone_selects_sqlite(self, tmp_path):
        store = await create_ticket_store(make_config(tmp_path, DB_FILE=str(tmp_path / "t.db")))
        assert isinstance(store, SQLiteTicketStore)

    @pytest.mark.asyncio
    async def test_explicit_file_backend(self, tmp_path):
        store = await create_ticket_store(make_config(tmp_path, TICKET_BACKEND="fs"))
        assert isinstance(store, FileTicketStore)

    @pytest.mark.asyncio
    async def test_falls_back_when_database_fails(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("x")
        config = make_config(tmp_path, TICKET_BACKEND="db", DB_FILE=str(blocker / "t.db"))

        store = await create_ticket_store(config)

        assert isinstance(store, FileTicketStore)
        assert (tmp_path / "Ticket").is_dir()

    @pytest.mark.asyncio
    async def test_fails_when_no_store_works(self, tmp_path):
        with patch.object(FileTicketStore, "connect", side_effect=StorageConnectionError("denied")):
            with pytest.raises(StorageConnectionError):
                await create_ticket_store(make_config(tmp_path))

    @pytest.mark.asyncio
    async def test_sla_minutes_passed_to_store(self, tmp_path):
        store = await create_ticket_store(make_config(tmp_path), sla_minutes=90)
        assert store.sla_minutes == 90


class TestMigration:
    """Test importing file store tickets into SQLite."""

    @pytest.mark.asyncio
    async def test_imports_tickets(self, tmp_path):
        source = tmp_path / "Ticket"
        source.mkdir()
        (source / "NTC-MIG001.json").write_text(json.dumps({
            'id': "NTC-MIG001", 'name': "Alice", 'issue': "printer jam",
            'created': "2024-03-01T10:00:00.000Z"
        }))
        (source / "NTC-MIG002.json").write_text(json.dumps({
            'id': "NTC-MIG002", 'name': "Bob", 'issue': "no wifi", 'status': "Complete",
            'created': "2024-03-02T10:00:00.000Z"
        }))
        (source / "broken.json").write_text("{nope")
        (source / "noid.json").write_text(json.dumps({'name': "Nobody"}))

        count = await migrate_file_store_to_sqlite(str(source), str(tmp_path / "t.db"))

        assert count == 2
        store = SQLiteTicketStore(str(tmp_path / "t.db"), str(source))
        await store.connect()
        tickets = await store.list_tickets()
        assert [t.id for t in tickets] == ["NTC-MIG002", "NTC-MIG001"]
        assert tickets[1].category == "Uncategorized"
        assert tickets[1].due_at is not None

    @pytest.mark.asyncio
    async def test_missing_source_directory(self, tmp_path):
        with pytest.raises(StorageError):
            await migrate_file_store_to_sqlite(str(tmp_path / "nope"), str(tmp_path / "t.db"))

    @pytest.mark.asyncio
    async def test_skips_path_like_and_undecodable_files(self, tmp_path):
        source = tmp_path / "Ticket"
        source.mkdir()
        (source / "NTC-MIG003.json").write_text(json.dumps({
            'id': "NTC-MIG003", 'name': "Alice", 'issue': "printer jam"
        }))
        (source / "evil.json").write_text(json.dumps({'id': "../evil", 'name': "Eve", 'issue': "x"}))
        (source / "binary.json").write_bytes(b"\xff\xfe")

        count = await migrate_file_store_to_sqlite(str(source), str(tmp_path / "t.db"))

        assert count == 1
        store = SQLiteTicketStore(str(tmp_path / "t.db"), str(source))
        await store.connect()
        assert [t.id for t in await store.list_tickets()] == ["NTC-MIG003"]
