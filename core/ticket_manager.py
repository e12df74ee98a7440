"""
Ticket Manager for the helpdesk.

This module provides the ticket lifecycle operations: creation with
duplicate linking, admin updates with SLA recomputation and requester
notifications, merging, deletion, feedback and attachments.
"""

import asyncio
import logging
import math
import re
import secrets
import shutil
import string
import weakref
from contextlib import AsyncExitStack
from dataclasses import dataclass, replace
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Union

from config.settings_store import SettingsStore
from core.notifications import (
    Notifier,
    anchor_group,
    group_recipients,
    new_ticket_email,
    resolved_email,
    update_email,
)
from core.user_directory import UserDirectory
from database.adapter import TicketStore
from errors.exceptions import (
    AttachmentError,
    StorageError,
    TicketNotFoundError,
    ValidationError,
)
from logging_config.logger import AuditLogger, get_audit_logger
from models.category import CATEGORIES, UNCATEGORIZED, normalize_category
from models.ticket import (
    DEFAULT_SLA_HOURS,
    Attachment,
    Feedback,
    FeedbackRating,
    Ticket,
    TicketStatus,
)
from models.timestamps import add_minutes, format_timestamp, parse_timestamp, utc_now

logger = logging.getLogger(__name__)


DEFAULT_MAX_ATTACHMENT_BYTES = 35 * 1024 * 1024
MAX_FEEDBACK_COMMENT = 1000
ID_ALPHABET = string.ascii_uppercase + string.digits
ID_LENGTH = 6
STATUS_FILTERS = ('all', 'active', 'complete')


def normalize_issue(text) -> str:
    """Issue text reduced for duplicate matching: lower-cased, whitespace collapsed, punctuation removed."""
    collapsed = re.sub(r'\s+', ' ', str(text or '').lower())
    return re.sub(r'[^a-z0-9 _-]', '', collapsed).strip()


def hours_to_minutes(hours: float) -> Optional[int]:
    """Whole minutes in ``hours``, or None unless the amount is finite and positive."""
    minutes = hours * 60
    if not math.isfinite(minutes) or minutes <= 0:
        return None
    return int(round(minutes))


def sanitize_prefix(prefix) -> str:
    return re.sub(r'[^a-zA-Z0-9]', '', str(prefix or '').strip()).upper() or 'NTC'


def sanitize_file_name(name) -> str:
    return re.sub(r'[^a-zA-Z0-9._-]', '_', str(name or '') or 'upload.bin')


@dataclass
class TicketChanges:
    """
    Fields an admin update may touch. ``None`` means "not supplied".

    Attributes:
        status: New status value
        category: New category (normalized)
        related: Related ticket id; an empty string clears the link
        email: Requester addresses; blank values are ignored
        sla_hours: SLA window override in hours
        due_at: Absolute due time override (naive values are taken as UTC)
        update: Free-text update to append
    """
    status: Optional[Union[TicketStatus, str]] = None
    category: Optional[str] = None
    related: Optional[str] = None
    email: Optional[str] = None
    sla_hours: Optional[Union[float, int, str]] = None
    due_at: Optional[Union[datetime, str]] = None
    update: Optional[str] = None

    def supplied_fields(self) -> List[str]:
        return [name for name, value in self.__dict__.items() if value is not None]


@dataclass
class AttachmentUpload:
    """A file submitted together with a new ticket."""
    file_name: str
    data: bytes
    mime: Optional[str] = None


@dataclass
class CreateResult:
    """
    Outcome of ticket creation.

    The ticket is always created; ``attachment_error`` is set when the
    uploaded file could not be stored.
    """
    ticket: Ticket
    attachment_error: Optional[AttachmentError] = None

    @property
    def attachment_saved(self) -> bool:
        return self.attachment_error is None


@dataclass
class MergeResult:
    target: Ticket
    source: Ticket
    moved_attachments: int = 0
    dropped_attachments: int = 0


class TicketManager:
    """
    Core ticket lifecycle engine.

    The ticket store is injected, so the same engine runs on the file store
    and the SQLite store.
    """

    def __init__(self, store: TicketStore, settings: SettingsStore,
                 notifier: Optional[Notifier] = None,
                 user_directory: Optional[UserDirectory] = None,
                 base_url: str = "",
                 helpdesk_email: Optional[str] = None,
                 max_attachment_bytes: int = DEFAULT_MAX_ATTACHMENT_BYTES,
                 audit_logger: Optional[AuditLogger] = None):
        """
        Initialize TicketManager.

        Args:
            store: Ticket store holding records and attachment directories
            settings: Settings provider read for prefix and SLA on each creation
            notifier: Email dispatcher; no emails are sent without one
            user_directory: Directory used to look up requester emails
            base_url: Public base URL used in email links
            helpdesk_email: Address(es) alerted about new tickets
            max_attachment_bytes: Upload size limit
            audit_logger: Audit logger for lifecycle events
        """
        self.store = store
        self.settings = settings
        self.notifier = notifier
        self.user_directory = user_directory or UserDirectory([])
        self.base_url = base_url
        self.helpdesk_email = helpdesk_email
        self.max_attachment_bytes = max_attachment_bytes
        self.audit = audit_logger or get_audit_logger()
        # Entries disappear once no coroutine holds or waits on the lock
        self._ticket_locks = weakref.WeakValueDictionary()

    def _generate_ticket_id(self, prefix: str) -> str:
        """``<PREFIX>-`` followed by six random base-36 characters."""
        return f"{prefix}-" + ''.join(secrets.choice(ID_ALPHABET) for _ in range(ID_LENGTH))

    def _get_ticket_lock(self, ticket_id: str) -> asyncio.Lock:
        """
        Get or create a lock for a specific ticket so concurrent admin
        actions on it do not overwrite each other.
        """
        lock = self._ticket_locks.get(ticket_id)
        if lock is None:
            lock = asyncio.Lock()
            self._ticket_locks[ticket_id] = lock
        return lock

    async def _require_ticket(self, ticket_id: str) -> Ticket:
        ticket = await self.store.get_ticket(ticket_id) if ticket_id else None
        if ticket is None:
            raise TicketNotFoundError(f"Ticket {ticket_id} not found", ticket_id=ticket_id)
        return ticket

    async def _unique_ticket_id(self, prefix: str) -> str:
        max_retries = 5
        for _ in range(max_retries):
            ticket_id = self._generate_ticket_id(prefix)
            if await self.store.get_ticket(ticket_id) is None:
                return ticket_id
        raise StorageError("Failed to generate unique ticket ID", operation="create_ticket")

    def _check_attachment_size(self, ticket_id: Optional[str], file_name: str, data: bytes) -> None:
        if len(data) > self.max_attachment_bytes:
            raise AttachmentError(
                f"Attachment {file_name} is {len(data)} bytes; limit is {self.max_attachment_bytes}",
                ticket_id=ticket_id,
                file_name=file_name,
                user_message="The attachment is too large."
            )

    def _write_attachment(self, ticket_id: str, original_name: str, data: bytes,
                          mime: Optional[str]) -> Attachment:
        """
        Store an uploaded file under the ticket's attachment directory.

        Raises:
            AttachmentError: If the file cannot be written
        """
        original_name = str(original_name or 'upload.bin')
        safe_name = sanitize_file_name(original_name)
        now = utc_now()
        stamp = format_timestamp(now).replace(':', '-').replace('.', '-')

        directory = self.store.attachment_dir(ticket_id)
        try:
            directory.mkdir(parents=True, exist_ok=True)
            stored_name = f"{stamp}-{safe_name}"
            counter = 1
            while (directory / stored_name).exists():
                stored_name = f"{stamp}-{counter}-{safe_name}"
                counter += 1
            (directory / stored_name).write_bytes(data)
        except OSError as e:
            logger.error(f"Failed to store attachment {original_name} for ticket {ticket_id}: {e}")
            raise AttachmentError(
                f"Failed to store attachment {original_name}: {e}",
                ticket_id=ticket_id,
                file_name=original_name
            ) from e

        return Attachment(
            original_name=original_name,
            stored_name=stored_name,
            size=len(data),
            mime=mime or 'application/octet-stream',
            uploaded_at=now
        )

    async def _notify(self, recipients, subject: str, html_body: str, ticket_id: str) -> None:
        if self.notifier is None:
            return
        await self.notifier.notify(recipients, subject, html_body, ticket_id=ticket_id)

    async def create_ticket(self, name: str, issue: str,
                            attachment: Optional[AttachmentUpload] = None,
                            prefix: Optional[str] = None,
                            email: Optional[str] = None) -> CreateResult:
        """
        Create a new support ticket.

        Args:
            name: Requester display name
            issue: Issue description
            attachment: Optional uploaded file
            prefix: Id prefix overriding the configured one (mail-origin tickets use MBE)
            email: Requester address overriding the directory lookup

        Returns:
            CreateResult: The created ticket and any attachment failure

        Raises:
            ValidationError: If name or issue is missing
            AttachmentError: If the upload exceeds the size limit
            StorageError: If the ticket cannot be saved
        """
        name = str(name or '').strip()
        issue = str(issue or '').strip()
        if not name or not issue:
            raise ValidationError(
                "Both 'name' and 'issue' are required",
                field='name' if not name else 'issue',
                user_message="Both 'name' and 'issue' are required."
            )
        if attachment is not None:
            self._check_attachment_size(None, attachment.file_name, attachment.data)

        prefix = sanitize_prefix(prefix) if prefix else self.settings.ticket_prefix()
        ticket_id = await self._unique_ticket_id(prefix)

        created = utc_now()
        sla_minutes = hours_to_minutes(self.settings.sla_hours())
        due_at = add_minutes(created, sla_minutes) if sla_minutes else None
        if due_at is None:
            logger.warning(f"Configured SLA is out of range; using {DEFAULT_SLA_HOURS}h for ticket {ticket_id}")
            sla_minutes = DEFAULT_SLA_HOURS * 60
            due_at = add_minutes(created, sla_minutes)

        ticket = Ticket(
            id=ticket_id,
            name=name,
            issue=issue,
            category=UNCATEGORIZED,
            status=TicketStatus.ACKNOWLEDGED,
            created=created,
            due_at=due_at,
            sla_minutes=sla_minutes
        )

        if email and email.strip():
            ticket.email = email.strip()
        else:
            lookup = self.user_directory.find_email_by_name(name)
            if lookup.email:
                ticket.email = lookup.email
            elif lookup.conflict:
                logger.info(f"Ambiguous requester name for {ticket_id}: {len(lookup.candidates)} candidates")

        await self._link_duplicate(ticket)

        attachment_error = None
        if attachment is not None:
            try:
                ticket.attachments.append(
                    self._write_attachment(ticket_id, attachment.file_name, attachment.data, attachment.mime)
                )
            except AttachmentError as e:
                attachment_error = e

        await self.store.save_ticket(ticket)
        logger.info(f"Created ticket {ticket_id} for {name}")
        self.audit.log_ticket_created(ticket_id, name, ticket.category, related=ticket.related)

        if self.helpdesk_email:
            subject, html_body = new_ticket_email(ticket, self.base_url)
            await self._notify(self.helpdesk_email, subject, html_body, ticket_id)

        return CreateResult(ticket=ticket, attachment_error=attachment_error)

    async def _link_duplicate(self, ticket: Ticket) -> Optional[Ticket]:
        """
        Relate a new ticket to an open ticket with the same normalized issue
        and leave a note on that ticket. Best effort: store failures are logged.
        """
        canonical = normalize_issue(ticket.issue)
        try:
            existing = next(
                (t for t in await self.store.list_tickets()
                 if not t.is_complete and normalize_issue(t.issue) == canonical),
                None
            )
            if existing is None:
                return None

            ticket.related = existing.id
            async with self._get_ticket_lock(existing.id):
                existing = await self.store.get_ticket(existing.id) or existing
                existing.add_update(f"Linked similar ticket {ticket.id} opened by {ticket.name}.", utc_now())
                await self.store.save_ticket(existing)
            logger.info(f"Linked ticket {ticket.id} to open ticket {existing.id}")
            return existing
        except StorageError as e:
            logger.warning(f"Duplicate check for ticket {ticket.id} failed: {e}")
            return None

    async def update_ticket(self, ticket_id: str, changes: TicketChanges) -> Ticket:
        """
        Apply an admin update.

        A non-empty text update is appended (setting ``firstResponseAt`` once)
        and emailed to the ticket's anchor group. Entering Complete sets
        ``resolvedAt`` once and sends exactly one resolution email instead.

        Args:
            ticket_id: Ticket to update
            changes: Supplied fields

        Returns:
            Ticket: The saved ticket

        Raises:
            TicketNotFoundError: If the ticket does not exist
            ValidationError: If the status is not a known value
            StorageError: If the ticket cannot be saved
        """
        async with self._get_ticket_lock(ticket_id):
            ticket = await self._require_ticket(ticket_id)

            previous_status = ticket.status
            new_status = ticket.status
            if changes.status is not None:
                new_status = TicketStatus.parse(changes.status)
                if new_status is None:
                    raise ValidationError(
                        f"Unknown status {changes.status!r}",
                        field='status',
                        value=changes.status,
                        user_message="Please choose a valid status."
                    )

            if changes.email and changes.email.strip():
                ticket.email = changes.email.strip()
            if changes.related is not None:
                ticket.related = changes.related.strip() or None
            if changes.category is not None:
                ticket.category = normalize_category(changes.category)

            self._apply_sla_changes(ticket, changes)

            text = (changes.update or '').strip()
            now = utc_now()
            if text:
                ticket.add_update(text, now)
                if ticket.first_response_at is None:
                    ticket.first_response_at = now

            closing = previous_status != TicketStatus.COMPLETE and new_status == TicketStatus.COMPLETE
            ticket.status = new_status
            if closing and ticket.resolved_at is None:
                ticket.resolved_at = now

            await self.store.save_ticket(ticket)

        logger.info(f"Updated ticket {ticket_id}")
        self.audit.log_ticket_updated(ticket_id, changes.supplied_fields())
        if new_status != previous_status:
            self.audit.log_status_changed(ticket_id, previous_status.value, new_status.value)

        if closing:
            subject, html_body = resolved_email(ticket, text or None, self.base_url)
            await self._notify_group(ticket, subject, html_body)
        elif text:
            subject, html_body = update_email(ticket, text, self.base_url)
            await self._notify_group(ticket, subject, html_body)

        return ticket

    def _apply_sla_changes(self, ticket: Ticket, changes: TicketChanges) -> None:
        """slaHours first, then dueAt; dueAt wins and back-computes slaMinutes only when positive."""
        updated_sla = None
        updated_due = None

        if changes.sla_hours not in (None, ''):
            try:
                minutes = hours_to_minutes(float(changes.sla_hours))
            except (TypeError, ValueError):
                minutes = None
            due = add_minutes(ticket.created or utc_now(), minutes) if minutes else None
            if minutes and due is None:
                logger.warning(f"Ignoring out-of-range SLA of {changes.sla_hours}h for ticket {ticket.id}")
            elif due is not None:
                updated_sla = minutes
                if ticket.created:
                    updated_due = due

        if changes.due_at not in (None, ''):
            due = parse_timestamp(changes.due_at)
            if due is not None:
                updated_due = due
                if ticket.created:
                    diff_minutes = round((due - ticket.created).total_seconds() / 60)
                    if diff_minutes > 0:
                        updated_sla = diff_minutes

        if updated_sla is not None and updated_sla > 0:
            ticket.sla_minutes = updated_sla
        if updated_due is not None:
            ticket.due_at = updated_due

    async def _notify_group(self, ticket: Ticket, subject: str, html_body: str) -> None:
        """Email every requester in the ticket's anchor group."""
        if self.notifier is None:
            return
        try:
            tickets = await self.store.list_tickets()
        except StorageError as e:
            logger.warning(f"Skipping notification for {ticket.id}; could not load ticket group: {e}")
            return

        tickets = [ticket if t.id == ticket.id else t for t in tickets]
        recipients = group_recipients(anchor_group(tickets, ticket))
        if recipients:
            await self._notify(recipients, subject, html_body, ticket.id)

    async def delete_ticket(self, ticket_id: str) -> bool:
        """
        Delete a ticket and its attachments.

        Raises:
            TicketNotFoundError: If the ticket does not exist
        """
        async with self._get_ticket_lock(ticket_id):
            await self._require_ticket(ticket_id)
            removed = await self.store.remove_ticket(ticket_id)

        logger.info(f"Deleted ticket {ticket_id}")
        self.audit.log_ticket_deleted(ticket_id)
        return removed

    async def merge_tickets(self, source_id: str, target_id: str) -> MergeResult:
        """
        Merge ``source`` into ``target``.

        Attachment files move to the target's directory (renamed with
        ``-merged-N`` on collision); history is appended to the target; the
        source is closed and linked to the target. Attachments whose files
        are missing or cannot be moved are dropped.

        Raises:
            TicketNotFoundError: If the source does not exist
            ValidationError: If the target does not exist or equals the source
        """
        source_id = str(source_id or '').strip()
        target_id = str(target_id or '').strip()
        async with AsyncExitStack() as locks:
            # Fixed order so two opposite merges cannot deadlock
            for lock_id in sorted({source_id, target_id} - {''}):
                await locks.enter_async_context(self._get_ticket_lock(lock_id))

            source = await self._require_ticket(source_id)
            target = await self.store.get_ticket(target_id) if target_id else None
            if target is None or target.id == source.id:
                raise ValidationError(
                    f"Invalid merge target {target_id!r} for {source_id}",
                    field='target',
                    value=target_id,
                    user_message="Invalid merge target."
                )

            moved, dropped = self._move_attachments(source, target)
            source.attachments = []

            now = utc_now()
            target.add_update(f"Merged ticket {source.id} into this ticket.", now)
            if source.issue and source.issue.strip() and source.issue != target.issue:
                target.add_update(f"Merged {source.id} issue: {source.issue}", now)
            target.updates.extend(replace(update) for update in source.updates)

            source.status = TicketStatus.COMPLETE
            source.related = target.id
            source.add_update(f"Merged into {target.id}", now)
            if source.resolved_at is None:
                source.resolved_at = now

            await self.store.save_ticket(target)
            await self.store.save_ticket(source)

        logger.info(f"Merged ticket {source.id} into {target.id} ({moved} attachments moved, {dropped} dropped)")
        self.audit.log_ticket_merged(source.id, target.id, moved, dropped)
        return MergeResult(target=target, source=source, moved_attachments=moved, dropped_attachments=dropped)

    def _move_attachments(self, source: Ticket, target: Ticket):
        src_dir = self.store.attachment_dir(source.id)
        dst_dir = self.store.attachment_dir(target.id)
        moved = dropped = 0

        for meta in source.attachments:
            name = meta.stored_name or meta.original_name or 'file.bin'
            src_path = src_dir / name
            if Path(name).name != name or not src_path.is_file():
                dropped += 1
                continue

            try:
                dst_dir.mkdir(parents=True, exist_ok=True)
                dest_name = self._free_merge_name(dst_dir, name)
                self._move_file(src_path, dst_dir / dest_name)
            except OSError as e:
                logger.warning(f"Dropping attachment {name} of {source.id} during merge: {e}")
                dropped += 1
                continue

            target.attachments.append(replace(meta, stored_name=dest_name))
            moved += 1

        try:
            if src_dir.is_dir() and not any(src_dir.iterdir()):
                src_dir.rmdir()
        except OSError as e:
            logger.debug(f"Could not remove attachment directory of {source.id}: {e}")

        return moved, dropped

    @staticmethod
    def _free_merge_name(directory: Path, name: str) -> str:
        candidate = Path(name)
        dest_name = name
        i = 1
        while (directory / dest_name).exists():
            dest_name = f"{candidate.stem}-merged-{i}{candidate.suffix}"
            i += 1
        return dest_name

    @staticmethod
    def _move_file(src: Path, dest: Path) -> None:
        try:
            src.rename(dest)
        except OSError:
            # Different filesystem: copy then remove
            shutil.copyfile(src, dest)
            src.unlink()

    async def submit_feedback(self, ticket_id: str, rating: Union[FeedbackRating, str],
                              comment: str = "") -> Ticket:
        """
        Record requester feedback on a completed ticket.

        Raises:
            TicketNotFoundError: If the ticket does not exist
            ValidationError: If the ticket is not Complete or the rating is not up/down
        """
        async with self._get_ticket_lock(ticket_id):
            ticket = await self._require_ticket(ticket_id)
            if not ticket.is_complete:
                raise ValidationError(
                    f"Ticket {ticket_id} is not complete",
                    field='status',
                    value=ticket.status.value,
                    user_message="Feedback is only available once the ticket is complete."
                )

            rating_value = rating.value if isinstance(rating, FeedbackRating) else str(rating or '')
            if rating_value not in ('up', 'down'):
                raise ValidationError(
                    f"Invalid feedback rating {rating!r}",
                    field='rating',
                    value=rating,
                    user_message="Please choose thumbs up or thumbs down."
                )

            comment = str(comment or '')[:MAX_FEEDBACK_COMMENT]
            ticket.feedback = Feedback(rating=FeedbackRating(rating_value), comment=comment, at=utc_now())
            await self.store.save_ticket(ticket)

        self.audit.log_feedback_submitted(ticket_id, rating_value, bool(comment.strip()))
        return ticket

    async def add_attachment(self, ticket_id: str, original_name: str, data: bytes,
                             mime: Optional[str] = None) -> Attachment:
        """
        Store a file on an existing ticket.

        Raises:
            TicketNotFoundError: If the ticket does not exist
            AttachmentError: If the file is too large or cannot be written
        """
        async with self._get_ticket_lock(ticket_id):
            ticket = await self._require_ticket(ticket_id)
            self._check_attachment_size(ticket_id, original_name, data)
            attachment = self._write_attachment(ticket_id, original_name, data, mime)
            ticket.attachments.append(attachment)
            await self.store.save_ticket(ticket)

        self.audit.log_attachment_added(ticket_id, attachment.stored_name, attachment.size)
        return attachment

    def attachment_path(self, ticket_id: str, stored_name: str) -> Optional[Path]:
        """
        Resolve a stored attachment for download.

        Returns:
            Optional[Path]: The file path, or None if the file does not exist

        Raises:
            ValidationError: If the name escapes the ticket's directory
        """
        directory = self.store.attachment_dir(ticket_id).resolve()
        path = (directory / str(stored_name or '')).resolve()
        if path == directory or directory not in path.parents:
            raise ValidationError(
                f"Invalid attachment path {stored_name!r} for {ticket_id}",
                field='file',
                value=stored_name,
                user_message="Invalid file path."
            )
        return path if path.is_file() else None

    async def get_ticket(self, ticket_id: str) -> Optional[Ticket]:
        return await self.store.get_ticket(ticket_id)

    async def get_related_ticket(self, ticket: Ticket) -> Optional[Ticket]:
        """Resolve ``ticket.related``; dangling ids give None."""
        if not ticket.related:
            return None
        return await self.store.get_ticket(ticket.related)

    async def list_tickets(self, category: Optional[str] = None, status_filter: str = "all") -> List[Ticket]:
        """
        Tickets for the admin list, newest first.

        Unknown categories (including "All") and unknown status filters do
        not filter.
        """
        tickets = await self.store.list_tickets()

        if category in CATEGORIES or category == UNCATEGORIZED:
            tickets = [t for t in tickets if (t.category or UNCATEGORIZED) == category]

        status_filter = status_filter if status_filter in STATUS_FILTERS else 'all'
        if status_filter == 'active':
            tickets = [t for t in tickets if not t.is_complete]
        elif status_filter == 'complete':
            tickets = [t for t in tickets if t.is_complete]
        return tickets
