"""
SQLite ticket store for the helpdesk.
"""
import aiosqlite
import json
import logging
from pathlib import Path
from typing import List, Optional

from database.adapter import TicketStore, is_safe_ticket_id
from errors.exceptions import StorageConnectionError
from errors.handlers import handle_storage_errors
from models.ticket import Ticket
from models.timestamps import format_timestamp, utc_now


logger = logging.getLogger(__name__)


class SQLiteTicketStore(TicketStore):
    """
    SQLite implementation of the TicketStore interface.

    The whole ticket record is stored as JSON in the ``data`` column. The
    status, category, dueAt, created and updatedAt columns mirror it so they
    can be indexed and sorted on. Connections are opened per operation.
    """

    backend = "db"

    def __init__(self, db_file: str, ticket_dir: str, sla_minutes: Optional[int] = None, **kwargs):
        """
        Initialize SQLite store.

        Args:
            db_file: Path to SQLite database file
            ticket_dir: Directory holding per-ticket attachment directories
            sla_minutes: Default SLA window applied by the hydrator
            **kwargs: Additional configuration (timeout)
        """
        super().__init__(ticket_dir, sla_minutes, **kwargs)
        self.db_path = str(db_file)
        self.timeout = kwargs.get('timeout', 30.0)
        self._schema_initialized = False

    def _connect(self):
        return aiosqlite.connect(self.db_path, timeout=self.timeout)

    async def connect(self) -> None:
        """
        Create the database file, schema and ticket directory.

        Raises:
            StorageConnectionError: If the database cannot be opened
        """
        try:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            self.ticket_dir.mkdir(parents=True, exist_ok=True)

            if not self._schema_initialized:
                await self._initialize_schema()
                self._schema_initialized = True

            logger.info(f"Connected to SQLite ticket database: {self.db_path}")

        except Exception as e:
            logger.error(f"Failed to connect to SQLite ticket database: {e}")
            raise StorageConnectionError(
                f"Failed to connect to SQLite ticket database: {e}",
                operation="connect"
            ) from e

    async def _initialize_schema(self) -> None:
        """Initialize database schema with tables and indexes."""
        async with self._connect() as conn:
            await conn.execute("PRAGMA journal_mode=WAL")

            await conn.execute("""
                CREATE TABLE IF NOT EXISTS tickets (
                    id TEXT PRIMARY KEY,
                    data TEXT NOT NULL,
                    status TEXT,
                    category TEXT,
                    dueAt TEXT,
                    created TEXT,
                    updatedAt TEXT
                )
            """)

            await conn.execute("CREATE INDEX IF NOT EXISTS idx_tickets_status ON tickets(status)")
            await conn.execute("CREATE INDEX IF NOT EXISTS idx_tickets_category ON tickets(category)")
            await conn.execute("CREATE INDEX IF NOT EXISTS idx_tickets_dueAt ON tickets(dueAt)")
            await conn.execute("CREATE INDEX IF NOT EXISTS idx_tickets_created ON tickets(created)")

            await conn.commit()
            logger.info("SQLite schema initialized successfully")

    def _ticket_from_row(self, row) -> Optional[Ticket]:
        """Convert a database row to a hydrated Ticket."""
        try:
            record = json.loads(row['data'])
        except (TypeError, ValueError) as e:
            logger.warning(f"Skipping ticket row {row['id']} with unreadable data: {e}")
            return None
        return self._hydrate_record(record)

    @handle_storage_errors("list_tickets")
    async def list_tickets(self) -> List[Ticket]:
        async with self._connect() as conn:
            conn.row_factory = aiosqlite.Row
            cursor = await conn.execute("""
                SELECT id, data FROM tickets
                ORDER BY julianday(created) DESC, id DESC
            """)
            rows = await cursor.fetchall()

        tickets = []
        for row in rows:
            ticket = self._ticket_from_row(row)
            if ticket:
                tickets.append(ticket)
        return tickets

    @handle_storage_errors("get_ticket")
    async def get_ticket(self, ticket_id: str) -> Optional[Ticket]:
        if not is_safe_ticket_id(ticket_id):
            return None
        async with self._connect() as conn:
            conn.row_factory = aiosqlite.Row
            cursor = await conn.execute("SELECT id, data FROM tickets WHERE id = ?", (ticket_id,))
            row = await cursor.fetchone()

        if row:
            return self._ticket_from_row(row)
        return None

    @handle_storage_errors("save_ticket")
    async def save_ticket(self, ticket: Ticket) -> Ticket:
        record = self._prepare_record(ticket)

        async with self._connect() as conn:
            await conn.execute("""
                INSERT INTO tickets (id, data, status, category, dueAt, created, updatedAt)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    data = excluded.data,
                    status = excluded.status,
                    category = excluded.category,
                    dueAt = excluded.dueAt,
                    created = excluded.created,
                    updatedAt = excluded.updatedAt
            """, (
                ticket.id,
                json.dumps(record),
                record.get('status'),
                record.get('category'),
                record.get('dueAt'),
                record.get('created'),
                format_timestamp(utc_now())
            ))
            await conn.commit()

        logger.debug(f"Saved ticket {ticket.id} to SQLite database")
        return ticket

    @handle_storage_errors("remove_ticket")
    async def remove_ticket(self, ticket_id: str) -> bool:
        if not ticket_id:
            return False
        if not is_safe_ticket_id(ticket_id):
            logger.warning(f"Refusing to remove files for ticket id {ticket_id!r}")
            return True

        async with self._connect() as conn:
            await conn.execute("DELETE FROM tickets WHERE id = ?", (ticket_id,))
            await conn.commit()

        # Tickets migrated from the file store may still have their JSON document
        legacy_file = self.ticket_dir / f"{ticket_id}.json"
        try:
            legacy_file.unlink()
        except FileNotFoundError:
            pass

        self._remove_attachment_dir(ticket_id)
        logger.info(f"Removed ticket {ticket_id} from SQLite database")
        return True

    async def count_tickets(self) -> int:
        """Number of rows in the tickets table."""
        async with self._connect() as conn:
            cursor = await conn.execute("SELECT COUNT(*) FROM tickets")
            row = await cursor.fetchone()
        return row[0] if row else 0
