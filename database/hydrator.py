"""
Ticket hydration.

Every record read from storage passes through ``hydrate`` before business
logic sees it. Each field that may be missing on older or hand-edited records
has its own default-resolution function; ``hydrate`` applies them in order and
only touches fields that are absent or invalid, so it is idempotent.
"""

import logging
import math
import os
from typing import Any, Optional

from models.category import UNCATEGORIZED
from models.ticket import DEFAULT_SLA_HOURS, Ticket
from models.timestamps import add_minutes, format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)


def default_sla_minutes() -> int:
    """Default SLA window from the SLA_HOURS environment setting, falling back to 24h."""
    raw = os.getenv('SLA_HOURS')
    try:
        hours = float(raw) if raw else DEFAULT_SLA_HOURS
    except ValueError:
        logger.warning(f"Ignoring invalid SLA_HOURS value: {raw!r}")
        hours = DEFAULT_SLA_HOURS
    if not math.isfinite(hours) or hours <= 0:
        hours = DEFAULT_SLA_HOURS
    return int(round(hours * 60))


def _is_positive_number(value: Any) -> bool:
    return (isinstance(value, (int, float)) and not isinstance(value, bool)
            and math.isfinite(value) and value > 0)


def resolve_category(record: dict) -> str:
    return record.get('category') or UNCATEGORIZED


def resolve_list(record: dict, key: str) -> list:
    value = record.get(key)
    return value if isinstance(value, list) else []


def resolve_sla_minutes(record: dict, fallback_minutes: int) -> Any:
    value = record.get('slaMinutes')
    return value if _is_positive_number(value) else fallback_minutes


def resolve_due_at(record: dict) -> Optional[str]:
    """
    Existing dueAt, or created + slaMinutes when created is a valid timestamp.

    Left unset when the SLA pushes the due date past the supported range.
    """
    if record.get('dueAt'):
        return record['dueAt']
    created = parse_timestamp(record.get('created'))
    if created is None:
        return None
    due = add_minutes(created, record['slaMinutes'])
    if due is None:
        logger.warning(f"SLA of {record['slaMinutes']} minutes is out of range for ticket {record.get('id')}")
        return None
    return format_timestamp(due)


def hydrate(record: Any, sla_minutes: Optional[int] = None) -> Optional[dict]:
    """
    Fill in default fields on a raw ticket record, in place.

    Args:
        record: Raw record, typically freshly parsed JSON
        sla_minutes: Default SLA window; read from configuration when omitted

    Returns:
        Optional[dict]: The same record, or None if it is not a mapping
    """
    if not isinstance(record, dict):
        return None

    fallback = sla_minutes if _is_positive_number(sla_minutes) else default_sla_minutes()

    record['category'] = resolve_category(record)
    record['updates'] = resolve_list(record, 'updates')
    record['attachments'] = resolve_list(record, 'attachments')
    record['slaMinutes'] = resolve_sla_minutes(record, fallback)

    due_at = resolve_due_at(record)
    if due_at:
        record['dueAt'] = due_at

    return record


def hydrate_ticket(record: Any, sla_minutes: Optional[int] = None) -> Optional[Ticket]:
    """Hydrate a raw record and build the typed ticket from it."""
    hydrated = hydrate(record, sla_minutes)
    if hydrated is None or not hydrated.get('id'):
        return None
    return Ticket.from_dict(hydrated)
