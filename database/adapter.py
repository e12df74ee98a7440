"""
Abstract ticket store interface for the helpdesk.
"""
import logging
import os
import shutil
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional

from database.hydrator import hydrate, hydrate_ticket
from errors.exceptions import StorageError, ValidationError
from models.ticket import Ticket
from models.timestamps import format_timestamp, parse_timestamp, utc_now

logger = logging.getLogger(__name__)


def is_safe_ticket_id(ticket_id) -> bool:
    """True if the id can name a file or directory inside the ticket directory."""
    if not isinstance(ticket_id, str) or ticket_id in ('', '.', '..'):
        return False
    separators = {'/', '\\', '\0', os.sep, os.altsep} - {None}
    return not any(sep in ticket_id for sep in separators)


class TicketStore(ABC):
    """
    Abstract base class for ticket stores.

    This interface defines the contract both the file store and the SQLite
    store implement. Whatever holds the ticket records, attachments always
    live on the filesystem under ``ticket_dir/<ticket id>/``.
    """

    backend = "abstract"

    def __init__(self, ticket_dir: str, sla_minutes: Optional[int] = None, **kwargs):
        """
        Initialize the store.

        Args:
            ticket_dir: Directory holding per-ticket attachment directories
            sla_minutes: Default SLA window applied by the hydrator
            **kwargs: Additional backend configuration
        """
        self.ticket_dir = Path(ticket_dir)
        self.sla_minutes = sla_minutes
        self.config = kwargs

    @abstractmethod
    async def connect(self) -> None:
        """
        Prepare the store for use (create directories, schema, ...).

        Raises:
            StorageConnectionError: If the store cannot be initialized
        """
        pass

    async def disconnect(self) -> None:
        """Release any resources held by the store."""
        logger.info(f"Closed {self.backend} ticket store")

    @abstractmethod
    async def list_tickets(self) -> List[Ticket]:
        """
        Retrieve every ticket, newest created first (ties: id descending).

        Returns:
            List[Ticket]: Hydrated tickets

        Raises:
            StorageError: If the records cannot be read
        """
        pass

    @abstractmethod
    async def get_ticket(self, ticket_id: str) -> Optional[Ticket]:
        """
        Retrieve a ticket by its ID.

        Args:
            ticket_id: Unique ticket identifier

        Returns:
            Optional[Ticket]: Hydrated ticket if found, None otherwise

        Raises:
            StorageError: If the record cannot be read
        """
        pass

    @abstractmethod
    async def save_ticket(self, ticket: Ticket) -> Ticket:
        """
        Insert or fully overwrite a ticket record.

        The ticket is hydrated first and ``created`` is assigned if absent;
        both changes are applied to the passed ticket as well.

        Args:
            ticket: Ticket to persist

        Returns:
            Ticket: The saved ticket

        Raises:
            StorageError: If the record cannot be written
        """
        pass

    @abstractmethod
    async def remove_ticket(self, ticket_id: str) -> bool:
        """
        Delete a ticket record and its attachment directory.

        Removing a ticket that does not exist is not an error. Ids that could
        point outside the ticket directory never touch the filesystem.

        Args:
            ticket_id: Unique ticket identifier

        Returns:
            bool: True for any non-empty id, False for an empty id
        """
        pass

    def attachment_dir(self, ticket_id: str) -> Path:
        """
        Directory holding the attachment files of a ticket.

        Raises:
            ValidationError: If the id could point outside the ticket directory
        """
        if not is_safe_ticket_id(ticket_id):
            raise ValidationError(
                f"Invalid ticket id {ticket_id!r}",
                field='ticket_id',
                value=ticket_id,
                user_message="Invalid ticket id."
            )
        return self.ticket_dir / ticket_id

    def _hydrate_record(self, record) -> Optional[Ticket]:
        return hydrate_ticket(record, self.sla_minutes)

    def _prepare_record(self, ticket: Ticket) -> dict:
        """
        Hydrate a ticket ahead of a write and return the record to store.

        Defaults resolved here (created, dueAt, slaMinutes, category) are
        copied back onto the ticket so the caller sees what was persisted.
        """
        if not ticket.id:
            raise StorageError("Cannot save a ticket without an id", operation="save_ticket")
        if not is_safe_ticket_id(ticket.id):
            raise StorageError(f"Cannot save a ticket with id {ticket.id!r}", operation="save_ticket")

        record = ticket.to_dict()
        if not record.get('created'):
            record['created'] = format_timestamp(utc_now())
        hydrate(record, self.sla_minutes)

        ticket.created = parse_timestamp(record['created'])
        ticket.due_at = parse_timestamp(record.get('dueAt'))
        ticket.sla_minutes = int(round(record['slaMinutes']))
        ticket.category = record['category']
        return record

    def _remove_attachment_dir(self, ticket_id: str) -> None:
        directory = self.attachment_dir(ticket_id)
        try:
            if directory.is_dir():
                shutil.rmtree(directory, ignore_errors=True)
        except OSError as e:
            logger.warning(f"Could not remove attachment directory for ticket {ticket_id}: {e}")

    async def __aenter__(self):
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.disconnect()
