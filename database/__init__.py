# Database package for ticket stores and store selection

from .adapter import TicketStore, is_safe_ticket_id
from .file_store import FileTicketStore
from .sqlite_adapter import SQLiteTicketStore
from .hydrator import hydrate, hydrate_ticket
from .selector import create_ticket_store, migrate_file_store_to_sqlite

__all__ = [
    'TicketStore',
    'is_safe_ticket_id',
    'FileTicketStore',
    'SQLiteTicketStore',
    'hydrate',
    'hydrate_ticket',
    'create_ticket_store',
    'migrate_file_store_to_sqlite'
]
