"""
Ticket email notifications.

Sending is fire-and-forget: each email runs as its own task, the caller
waits for it at most ``timeout`` seconds, and whatever happens afterwards
(late success or failure) is only logged.
"""

import asyncio
import html
import logging
from typing import Awaitable, Callable, Iterable, List, Optional, Set

from config.config_manager import ConfigManager, GraphConfig, SmtpConfig
from errors.exceptions import ConfigurationError
from logging_config.logger import AuditLogger, get_audit_logger
from mail.sender import normalize_recipients, send_ticket_email
from models.ticket import Ticket

logger = logging.getLogger(__name__)


DEFAULT_NOTIFY_TIMEOUT = 2.0

SendFunction = Callable[..., Awaitable[None]]


def anchor_id(ticket: Ticket) -> str:
    """Id shared by a ticket and everything linked to it."""
    return ticket.related or ticket.id


def anchor_group(tickets: Iterable[Ticket], ticket: Ticket) -> List[Ticket]:
    """
    Tickets notified together with ``ticket``: the anchor itself and every
    ticket whose ``related`` points at the anchor.
    """
    anchor = anchor_id(ticket)
    return [t for t in tickets if t.id == anchor or t.related == anchor]


def group_recipients(group: Iterable[Ticket]) -> List[str]:
    """Deduplicated addresses of every requester in a group."""
    return normalize_recipients([t.email for t in group if t.email])


def _layout(heading: str, body: str, link: str, link_text: str, footer: str) -> str:
    return f"""
<div style="font-family:Arial, sans-serif; background:#f7f7f7; padding:20px;">
  <div style="max-width:600px;margin:auto;background:#ffffff;border-radius:8px;padding:20px;border:1px solid #e2e2e2;">
    <h2 style="color:#0F6CBD;margin-bottom:15px;">{heading}</h2>
    {body}
    <a href="{link}" style="display:inline-block;background:#0F6CBD;color:#ffffff !important;padding:10px 16px;border-radius:6px;text-decoration:none;font-weight:600;">{link_text}</a>
    <br><br>
    <p style="font-size:12px;color:#666;">{footer}</p>
  </div>
</div>
"""


def _quote(text: str) -> str:
    return (
        '<blockquote style="border-left:4px solid #0F6CBD;padding-left:10px;color:#333;'
        f'margin:15px 0;font-style:italic;">{html.escape(text)}</blockquote>'
    )


def ticket_url(base_url: str, ticket_id: str) -> str:
    return f"{(base_url or '').rstrip('/')}/tickets/{ticket_id}"


def new_ticket_email(ticket: Ticket, base_url: str):
    """Subject and body of the helpdesk alert for a new ticket."""
    body = (
        f"<p><strong>ID:</strong> {html.escape(ticket.id)}</p>"
        f"<p><strong>Name:</strong> {html.escape(ticket.name)}</p>"
        f"<p><strong>Issue:</strong><br>{html.escape(ticket.issue)}</p>"
        "<p>You can view it here:</p>"
    )
    return (
        f"New Ticket [{ticket.id}]",
        _layout("New Ticket Created", body, ticket_url(base_url, ticket.id), "View Ticket",
                "Support Console Notification")
    )


def update_email(ticket: Ticket, text: str, base_url: str):
    body = f"<p>Your ticket has been updated:</p>{_quote(text)}<p>You can view your ticket here:</p>"
    return (
        f"Update on {ticket.id}",
        _layout(f"Ticket Update: {html.escape(ticket.id)}", body, ticket_url(base_url, ticket.id),
                "View Ticket", "IT Helpdesk")
    )


def resolved_email(ticket: Ticket, text: Optional[str], base_url: str):
    """Subject and body of the closing email; the update text is quoted when given."""
    if text:
        intro = f"<p>Your ticket has been resolved with the following update:</p>{_quote(text)}"
    else:
        intro = "<p>Your ticket has been resolved.</p>"
    body = intro + "<p>You can review the final details and leave quick thumbs up/down feedback here:</p>"
    return (
        f"Ticket {ticket.id} resolved - quick feedback?",
        _layout(f"Ticket Resolved: {html.escape(ticket.id)}", body, ticket_url(base_url, ticket.id),
                "View ticket &amp; give feedback", "IT Helpdesk")
    )


class Notifier:
    """
    Dispatches ticket emails without letting delivery block or fail the
    operation that triggered them.
    """

    def __init__(self, use_graph: bool = False, smtp: Optional[SmtpConfig] = None,
                 graph: Optional[GraphConfig] = None, timeout: float = DEFAULT_NOTIFY_TIMEOUT,
                 send: SendFunction = send_ticket_email, audit_logger: Optional[AuditLogger] = None):
        """
        Args:
            use_graph: Send through Microsoft Graph instead of SMTP
            smtp: SMTP settings
            graph: Graph settings
            timeout: Seconds to wait for a send before returning
            send: Coroutine function doing the actual delivery
            audit_logger: Audit logger receiving delivery failures
        """
        self.use_graph = use_graph
        self.smtp = smtp
        self.graph = graph
        self.timeout = timeout
        self._send = send
        self.audit_logger = audit_logger or get_audit_logger()
        self._pending: Set[asyncio.Task] = set()

    @classmethod
    def from_config(cls, config: ConfigManager, **kwargs) -> 'Notifier':
        """Build a notifier from the email settings in the configuration."""
        try:
            timeout = config.get_float('notify_timeout') or DEFAULT_NOTIFY_TIMEOUT
        except ConfigurationError as e:
            logger.warning(f"{e}; using {DEFAULT_NOTIFY_TIMEOUT}s notification timeout")
            timeout = DEFAULT_NOTIFY_TIMEOUT

        try:
            smtp = config.smtp_config()
        except ConfigurationError as e:
            logger.warning(f"SMTP settings unusable: {e}")
            smtp = None

        return cls(
            use_graph=config.get_bool('use_graph'),
            smtp=smtp,
            graph=config.graph_config(),
            timeout=timeout,
            **kwargs
        )

    @property
    def pending(self) -> int:
        """Number of sends still running in the background."""
        return len(self._pending)

    async def notify(self, recipients, subject: str, html_body: str,
                     ticket_id: Optional[str] = None) -> bool:
        """
        Send an email, waiting at most ``timeout`` seconds.

        Never raises for delivery problems.

        Returns:
            bool: True if the send finished successfully within the timeout
        """
        addresses = normalize_recipients(recipients)
        if not addresses:
            return False

        task = asyncio.create_task(self._deliver(addresses, subject, html_body, ticket_id))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

        done, _ = await asyncio.wait({task}, timeout=self.timeout)
        if not done:
            logger.info(f"Email '{subject}' still sending after {self.timeout}s; continuing in background")
            return False
        return task.result()

    async def _deliver(self, addresses: List[str], subject: str, html_body: str,
                       ticket_id: Optional[str]) -> bool:
        try:
            await self._send(self.use_graph, addresses, subject, html_body,
                             smtp=self.smtp, graph=self.graph)
        except Exception as e:
            # Delivery failures never reach the ticket operation
            logger.warning(f"Failed to send email '{subject}' to {len(addresses)} recipient(s): {e}")
            self.audit_logger.log_notification_failed(subject, len(addresses), str(e), ticket_id=ticket_id)
            return False

        logger.info(f"Sent email '{subject}' to {len(addresses)} recipient(s)")
        return True

    async def drain(self) -> None:
        """Wait for background sends to finish (used at shutdown)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
