"""
Error handling utilities and decorators for the helpdesk.

This module provides the store error-wrapping decorator and helpers for
logging errors and turning them into user-facing messages.
"""

import functools
import logging
import sqlite3
from datetime import datetime, timezone
from typing import Callable, Optional

from .exceptions import HelpdeskError, StorageError

logger = logging.getLogger(__name__)


def log_error(error: Exception, context: Optional[str] = None,
              ticket_id: Optional[str] = None,
              additional_info: Optional[dict] = None) -> None:
    """
    Log an error with context information.

    Args:
        error: The exception that occurred
        context: Additional context about where the error occurred
        ticket_id: ID of the ticket involved (if applicable)
        additional_info: Additional information to log
    """
    error_info = {
        'error_type': type(error).__name__,
        'error_message': str(error),
        'context': context,
        'ticket_id': ticket_id,
        'timestamp': datetime.now(timezone.utc).isoformat()
    }

    if additional_info:
        error_info.update(additional_info)

    if isinstance(error, HelpdeskError):
        if error.error_code in ['VALIDATION_ERROR', 'TICKET_NOT_FOUND']:
            logger.warning(f"Helpdesk error: {error_info}")
        else:
            logger.error(f"Helpdesk error: {error_info}")
    else:
        logger.error(f"Unexpected error: {error_info}", exc_info=True)


def format_error_message(error: Exception, include_details: bool = False) -> str:
    """
    Format an error message for display to users.

    Args:
        error: The exception to format
        include_details: Whether to include technical details

    Returns:
        str: Formatted error message
    """
    if isinstance(error, HelpdeskError):
        message = error.user_message
        if include_details and error.details:
            details = ", ".join(f"{k}: {v}" for k, v in error.details.items())
            message += f" ({details})"
        return message
    return "An unexpected error occurred. Please try again later."


def handle_storage_errors(operation: str) -> Callable:
    """
    Decorator for store coroutines.

    File system, SQLite and decoding (bad JSON or text encoding) failures are
    logged and re-raised as StorageError tagged with the operation name.
    StorageError raised inside the wrapped call passes through unchanged.
    There is no retry: callers decide what to do with a failed write.

    Args:
        operation: Name of the store operation, recorded on the error
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except StorageError:
                raise
            except (OSError, sqlite3.Error, ValueError) as e:
                error = StorageError(f"{operation} failed: {e}", operation=operation)
                log_error(error, context=operation)
                raise error from e

        return wrapper
    return decorator
