"""
Flat-file ticket store: one pretty-printed JSON document per ticket.
"""
import asyncio
import json
import logging
from pathlib import Path
from typing import List, Optional

from database.adapter import TicketStore, is_safe_ticket_id
from errors.exceptions import StorageConnectionError
from errors.handlers import handle_storage_errors
from models.ticket import Ticket


logger = logging.getLogger(__name__)


def sort_newest_first(tickets: List[Ticket]) -> List[Ticket]:
    """Order tickets by created descending, ties broken by id descending."""
    return sorted(
        tickets,
        key=lambda t: (t.created.timestamp() if t.created else float('-inf'), t.id),
        reverse=True
    )


class FileTicketStore(TicketStore):
    """
    Ticket store keeping ``<ticket_dir>/<id>.json`` files.

    Attachment directories sit next to the JSON documents, so deleting a
    ticket removes both.
    """

    backend = "fs"

    def _record_path(self, ticket_id: str) -> Path:
        return self.ticket_dir / f"{ticket_id}.json"

    async def connect(self) -> None:
        """
        Create the ticket directory if needed.

        Raises:
            StorageConnectionError: If the directory cannot be created
        """
        try:
            self.ticket_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Failed to prepare ticket directory {self.ticket_dir}: {e}")
            raise StorageConnectionError(
                f"Failed to prepare ticket directory {self.ticket_dir}: {e}",
                operation="connect"
            ) from e
        logger.info(f"Using file ticket store at {self.ticket_dir}")

    def _read_record(self, path: Path) -> Optional[dict]:
        with open(path, 'r', encoding='utf-8') as f:
            return json.load(f)

    def _write_record(self, path: Path, record: dict) -> None:
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(record, f, indent=2)

    @handle_storage_errors("list_tickets")
    async def list_tickets(self) -> List[Ticket]:
        if not self.ticket_dir.is_dir():
            return []

        tickets = []
        for path in self.ticket_dir.glob('*.json'):
            try:
                record = await asyncio.to_thread(self._read_record, path)
            except ValueError as e:
                # Invalid JSON or invalid UTF-8
                logger.warning(f"Skipping unreadable ticket file {path.name}: {e}")
                continue
            ticket = self._hydrate_record(record)
            if ticket:
                tickets.append(ticket)
        return sort_newest_first(tickets)

    @handle_storage_errors("get_ticket")
    async def get_ticket(self, ticket_id: str) -> Optional[Ticket]:
        if not is_safe_ticket_id(ticket_id):
            return None
        path = self._record_path(ticket_id)
        if not path.is_file():
            return None
        record = await asyncio.to_thread(self._read_record, path)
        return self._hydrate_record(record)

    @handle_storage_errors("save_ticket")
    async def save_ticket(self, ticket: Ticket) -> Ticket:
        record = self._prepare_record(ticket)
        self.ticket_dir.mkdir(parents=True, exist_ok=True)
        await asyncio.to_thread(self._write_record, self._record_path(ticket.id), record)
        logger.debug(f"Saved ticket {ticket.id} to {self.ticket_dir}")
        return ticket

    @handle_storage_errors("remove_ticket")
    async def remove_ticket(self, ticket_id: str) -> bool:
        if not ticket_id:
            return False
        if not is_safe_ticket_id(ticket_id):
            logger.warning(f"Refusing to remove files for ticket id {ticket_id!r}")
            return True
        path = self._record_path(ticket_id)
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        self._remove_attachment_dir(ticket_id)
        logger.info(f"Removed ticket {ticket_id} from file store")
        return True
