"""
Outbound ticket email over SMTP or Microsoft Graph.
"""
import asyncio
import logging
import re
import smtplib
import ssl
from email.message import EmailMessage
from typing import Iterable, List, Optional, Union

from config.config_manager import GraphConfig, SmtpConfig
from errors.exceptions import NotificationError
from mail.graph import send_via_graph

logger = logging.getLogger(__name__)


SMTP_TIMEOUT_SECONDS = 30

_TAG_RE = re.compile(r'<[^>]*>')


def normalize_recipients(to: Union[str, Iterable[str], None]) -> List[str]:
    """
    Turn a recipient string or list into a deduplicated list of addresses.

    Entries may themselves hold several addresses separated by commas or
    semicolons. First-seen order is kept.
    """
    if not to:
        return []
    items = [to] if isinstance(to, str) else list(to)

    recipients: List[str] = []
    for item in items:
        for part in re.split(r'[;,]', str(item or '')):
            address = part.strip()
            if address and address not in recipients:
                recipients.append(address)
    return recipients


def strip_tags(html: str) -> str:
    return _TAG_RE.sub('', html or '')


def build_smtp_message(smtp: SmtpConfig, recipients: List[str], subject: str, html: str) -> EmailMessage:
    msg = EmailMessage()
    msg['Subject'] = subject
    msg['From'] = smtp.from_email or smtp.user or ''
    msg['To'] = ', '.join(recipients)
    msg.set_content(strip_tags(html))
    msg.add_alternative(html, subtype='html')
    return msg


def send_via_smtp(smtp: SmtpConfig, recipients: List[str], subject: str, html: str) -> None:
    """
    Send over SMTP. TLS is required: implicit TLS when ``secure`` is set,
    STARTTLS otherwise. Login happens only when both user and password are set.

    Raises:
        NotificationError: On connection, TLS, authentication or send failure
    """
    if not smtp.host or not smtp.port:
        raise NotificationError("SMTP host and port must be configured", transport="smtp")

    msg = build_smtp_message(smtp, recipients, subject, html)
    context = ssl.create_default_context()

    try:
        if smtp.secure:
            with smtplib.SMTP_SSL(smtp.host, smtp.port, context=context, timeout=SMTP_TIMEOUT_SECONDS) as s:
                if smtp.has_credentials:
                    s.login(smtp.user, smtp.password)
                s.send_message(msg)
        else:
            with smtplib.SMTP(smtp.host, smtp.port, timeout=SMTP_TIMEOUT_SECONDS) as s:
                s.ehlo()
                s.starttls(context=context)
                s.ehlo()
                if smtp.has_credentials:
                    s.login(smtp.user, smtp.password)
                s.send_message(msg)
    except (smtplib.SMTPException, OSError) as e:
        raise NotificationError(f"SMTP send failed: {e}", transport="smtp") from e

    logger.debug(f"SMTP delivered message '{subject}' to {len(recipients)} recipient(s)")


async def send_ticket_email(use_graph: bool, recipients, subject: str, html: str,
                            smtp: Optional[SmtpConfig] = None,
                            graph: Optional[GraphConfig] = None) -> None:
    """
    Send a ticket email through the configured transport.

    Args:
        use_graph: Send through Microsoft Graph instead of SMTP
        recipients: Address string (comma/semicolon separated) or list of them
        subject: Subject line
        html: HTML body
        smtp: SMTP settings
        graph: Graph settings

    Raises:
        NotificationError: If the transport is not configured or sending fails
    """
    addresses = normalize_recipients(recipients)
    if not addresses:
        return

    loop = asyncio.get_running_loop()
    if use_graph:
        if graph is None:
            raise NotificationError("Graph transport selected but not configured", transport="graph")
        await loop.run_in_executor(None, send_via_graph, graph, addresses, subject, html)
    else:
        if smtp is None:
            raise NotificationError("SMTP transport selected but not configured", transport="smtp")
        await loop.run_in_executor(None, send_via_smtp, smtp, addresses, subject, html)
