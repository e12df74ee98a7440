# Models package for ticket data structures

from .category import Category, CATEGORIES, UNCATEGORIZED, normalize_category
from .ticket import (
    Ticket,
    TicketStatus,
    TicketUpdate,
    Attachment,
    Feedback,
    FeedbackRating,
    DEFAULT_SLA_HOURS
)
from .timestamps import utc_now, parse_timestamp, format_timestamp, add_minutes

__all__ = [
    'Category',
    'CATEGORIES',
    'UNCATEGORIZED',
    'normalize_category',
    'Ticket',
    'TicketStatus',
    'TicketUpdate',
    'Attachment',
    'Feedback',
    'FeedbackRating',
    'DEFAULT_SLA_HOURS',
    'utc_now',
    'parse_timestamp',
    'format_timestamp',
    'add_minutes'
]
