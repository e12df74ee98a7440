# Core package for the ticket lifecycle engine and its collaborators

from .ticket_manager import (
    TicketManager,
    TicketChanges,
    AttachmentUpload,
    CreateResult,
    MergeResult,
    normalize_issue
)
from .notifications import Notifier
from .user_directory import UserDirectory, LookupResult, normalize_name
from .metrics import DashboardStats, compute_dashboard_stats, format_duration, is_overdue, status_counts

__all__ = [
    'TicketManager',
    'TicketChanges',
    'AttachmentUpload',
    'CreateResult',
    'MergeResult',
    'normalize_issue',
    'Notifier',
    'UserDirectory',
    'LookupResult',
    'normalize_name',
    'DashboardStats',
    'compute_dashboard_stats',
    'format_duration',
    'is_overdue',
    'status_counts'
]
