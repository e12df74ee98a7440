"""
Ticket categories for the helpdesk.
"""
from enum import Enum
from typing import Any


class Category(Enum):
    """Enumeration of the categories an admin can assign to a ticket."""
    HARDWARE = "Hardware"
    SOFTWARE = "Software"
    NETWORKING = "Networking"
    ACCESS = "Access"
    OTHER = "Other"


CATEGORIES = [category.value for category in Category]
UNCATEGORIZED = "Uncategorized"


def normalize_category(value: Any) -> str:
    """
    Map an arbitrary value onto a known category name.

    Matching is exact and case-sensitive. Anything that is not one of the
    enumeration values, including None and non-string input, becomes
    ``UNCATEGORIZED``.
    """
    if isinstance(value, str) and value in CATEGORIES:
        return value
    return UNCATEGORIZED
