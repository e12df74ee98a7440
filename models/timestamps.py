"""
Timestamp helpers shared by the ticket model, the hydrator and the stores.

Tickets are persisted with ISO-8601 UTC timestamps at millisecond precision
(``2024-05-01T12:00:00.000Z``). In memory they are timezone-aware datetimes
truncated to the same precision, so a save/load cycle is lossless.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Optional


def _truncate_to_millis(value: datetime) -> datetime:
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


def utc_now() -> datetime:
    """Current UTC time at millisecond precision."""
    return _truncate_to_millis(datetime.now(timezone.utc))


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a stored timestamp.

    Accepts datetimes and ISO-8601 strings (with or without a trailing ``Z``).
    Naive values are taken as UTC. Returns None for anything unparsable.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text[-1] in ('Z', 'z'):
            text = text[:-1] + '+00:00'
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return _truncate_to_millis(parsed.astimezone(timezone.utc))


def format_timestamp(value: datetime) -> str:
    """Serialize a datetime the way tickets are stored on disk."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    text = value.astimezone(timezone.utc).isoformat(timespec='milliseconds')
    return text.replace('+00:00', 'Z')


def add_minutes(start: datetime, minutes: Any) -> Optional[datetime]:
    """``start`` shifted by ``minutes``, or None when the result is out of range."""
    try:
        return start + timedelta(minutes=minutes)
    except (OverflowError, ValueError):
        return None
