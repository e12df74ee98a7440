"""
Dashboard metrics over a list of tickets.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional, Tuple

from models.ticket import Ticket, TicketStatus
from models.timestamps import utc_now


NO_DURATION = "—"


@dataclass
class DashboardStats:
    """Counts and average response/resolution times for the admin dashboard."""
    total: int
    open: int
    closed: int
    overdue: int
    avg_first_response_seconds: Optional[float]
    avg_resolution_seconds: Optional[float]

    @property
    def avg_first_response(self) -> str:
        return format_duration(self.avg_first_response_seconds)

    @property
    def avg_resolution(self) -> str:
        return format_duration(self.avg_resolution_seconds)


def is_overdue(ticket: Ticket, now: Optional[datetime] = None) -> bool:
    """True when the ticket is still being worked and its due time has passed."""
    if ticket.status in (TicketStatus.COMPLETE, TicketStatus.ON_HOLD):
        return False
    if ticket.due_at is None:
        return False
    return ticket.due_at < (now or utc_now())


def format_duration(seconds: Optional[float]) -> str:
    """
    Human-readable duration rounded to the minute.

    Examples: ``45m``, ``3h``, ``3h 5m``. Missing or non-positive
    durations render as an em dash.
    """
    if seconds is None or seconds != seconds or seconds <= 0:
        return NO_DURATION
    total_minutes = round(seconds / 60)
    hours, minutes = divmod(total_minutes, 60)
    if hours <= 0:
        return f"{minutes}m"
    if minutes == 0:
        return f"{hours}h"
    return f"{hours}h {minutes}m"


def status_counts(tickets: Iterable[Ticket]) -> Tuple[int, int]:
    """(open, closed) counts; anything not Complete is open."""
    open_count = closed_count = 0
    for ticket in tickets:
        if ticket.is_complete:
            closed_count += 1
        else:
            open_count += 1
    return open_count, closed_count


def _average(values) -> Optional[float]:
    return sum(values) / len(values) if values else None


def compute_dashboard_stats(tickets: Iterable[Ticket], now: Optional[datetime] = None) -> DashboardStats:
    """
    Aggregate dashboard numbers.

    Response and resolution averages only use tickets whose timestamps are
    not earlier than ``created``.
    """
    tickets = list(tickets)
    now = now or utc_now()
    open_count, closed_count = status_counts(tickets)

    first_response = []
    resolution = []
    for ticket in tickets:
        if ticket.created is None:
            continue
        if ticket.first_response_at and ticket.first_response_at >= ticket.created:
            first_response.append((ticket.first_response_at - ticket.created).total_seconds())
        if ticket.resolved_at and ticket.resolved_at >= ticket.created:
            resolution.append((ticket.resolved_at - ticket.created).total_seconds())

    return DashboardStats(
        total=len(tickets),
        open=open_count,
        closed=closed_count,
        overdue=sum(1 for t in tickets if is_overdue(t, now)),
        avg_first_response_seconds=_average(first_response),
        avg_resolution_seconds=_average(resolution)
    )
