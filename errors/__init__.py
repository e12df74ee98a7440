"""
Error handling module for the helpdesk.

This module provides custom exception classes and error handling utilities
for consistent error management across stores and the lifecycle engine.
"""

from .exceptions import (
    HelpdeskError,
    TicketNotFoundError,
    ValidationError,
    StorageError,
    StorageConnectionError,
    NotificationError,
    AttachmentError,
    ConfigurationError
)

from .handlers import (
    log_error,
    format_error_message,
    handle_storage_errors
)

__all__ = [
    # Exception classes
    'HelpdeskError',
    'TicketNotFoundError',
    'ValidationError',
    'StorageError',
    'StorageConnectionError',
    'NotificationError',
    'AttachmentError',
    'ConfigurationError',

    # Handler functions
    'log_error',
    'format_error_message',
    'handle_storage_errors'
]
