"""
Ticket store selection at start-up, and the JSON to SQLite import.
"""
import logging
from pathlib import Path
from typing import Optional

from config.config_manager import ConfigManager
from database.adapter import TicketStore, is_safe_ticket_id
from database.file_store import FileTicketStore
from database.sqlite_adapter import SQLiteTicketStore
from errors.exceptions import StorageConnectionError, StorageError


logger = logging.getLogger(__name__)


async def create_ticket_store(config: ConfigManager, sla_minutes: Optional[int] = None) -> TicketStore:
    """
    Build and connect the ticket store the configuration asks for.

    The SQLite store is used when TICKET_BACKEND is ``db``/``sqlite`` or a
    DB_FILE is configured. If it cannot be initialized the file store is
    used instead; the choice holds for the life of the process.

    Args:
        config: Helpdesk configuration
        sla_minutes: Default SLA window handed to the store's hydrator

    Returns:
        TicketStore: A connected store

    Raises:
        StorageConnectionError: If neither store can be initialized
    """
    ticket_dir = config.get_global_config('ticket_dir')

    if config.prefers_database:
        store = SQLiteTicketStore(config.get_global_config('db_file'), ticket_dir, sla_minutes)
        try:
            await store.connect()
            return store
        except StorageConnectionError as e:
            logger.warning(f"Falling back to JSON ticket store; failed to open the database: {e}")

    store = FileTicketStore(ticket_dir, sla_minutes)
    try:
        await store.connect()
    except StorageConnectionError as e:
        logger.critical(f"No ticket store could be initialized: {e}")
        raise
    return store


async def migrate_file_store_to_sqlite(source_dir: str, db_file: str,
                                       sla_minutes: Optional[int] = None) -> int:
    """
    Import every ``*.json`` ticket in a file store directory into SQLite.

    Records are hydrated on the way in. Files that cannot be parsed or have
    no id are skipped with a log line. Existing rows with the same id are
    overwritten. Attachment directories stay where they are.

    Args:
        source_dir: File store directory to read from
        db_file: SQLite database to write to (created if missing)
        sla_minutes: Default SLA window for records without one

    Returns:
        int: Number of tickets imported

    Raises:
        StorageError: If the source directory does not exist
    """
    source = Path(source_dir)
    if not source.is_dir():
        raise StorageError(f"Source directory does not exist: {source}", operation="migrate")

    file_store = FileTicketStore(str(source), sla_minutes)
    db_store = SQLiteTicketStore(db_file, str(source), sla_minutes)
    await db_store.connect()

    count = 0
    for path in sorted(source.glob('*.json')):
        try:
            record = file_store._read_record(path)
        except (OSError, ValueError) as e:
            logger.error(f"Skipping {path.name}: {e}")
            continue

        ticket = file_store._hydrate_record(record)
        if ticket is None:
            logger.warning(f"Skipping {path.name}: missing id")
            continue
        if not is_safe_ticket_id(ticket.id):
            logger.warning(f"Skipping {path.name}: invalid id {ticket.id!r}")
            continue

        await db_store.save_ticket(ticket)
        count += 1

    logger.info(f"Imported {count} tickets from {source} into {db_file}")
    return count
