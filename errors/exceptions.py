"""
Custom exception classes for the helpdesk.

This module defines the exceptions raised by the stores, the ticket lifecycle
engine and the notification layer, so callers can map them to user-facing
responses consistently.
"""

from typing import Optional, Dict, Any


class HelpdeskError(Exception):
    """
    Base exception for all helpdesk errors.

    All custom exceptions should inherit from this class to provide
    consistent error handling and logging.
    """

    def __init__(self, message: str, user_message: Optional[str] = None,
                 error_code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        """
        Initialize HelpdeskError.

        Args:
            message: Technical error message for logging
            user_message: User-friendly error message for display
            error_code: Optional error code for categorization
            details: Optional additional error details
        """
        super().__init__(message)
        self.user_message = user_message or message
        self.error_code = error_code
        self.details = details or {}


class TicketNotFoundError(HelpdeskError):
    """Exception raised when a ticket id does not resolve in the active store."""

    def __init__(self, message: str, ticket_id: Optional[str] = None,
                 user_message: Optional[str] = None, **kwargs):
        if not user_message:
            user_message = "Ticket not found. Please check the ticket ID and try again."

        super().__init__(message, user_message, error_code="TICKET_NOT_FOUND", **kwargs)
        self.ticket_id = ticket_id


class ValidationError(HelpdeskError):
    """
    Exception raised for input validation errors.

    This includes missing required fields, unknown status values,
    invalid merge targets and feedback on open tickets. It is always
    raised before any ticket state is changed.
    """

    def __init__(self, message: str, field: Optional[str] = None,
                 value: Optional[Any] = None, user_message: Optional[str] = None, **kwargs):
        """
        Initialize ValidationError.

        Args:
            message: Technical error message
            field: The field that failed validation
            value: The invalid value
            user_message: User-friendly error message
        """
        if not user_message:
            user_message = "Invalid input provided. Please check your input and try again."

        super().__init__(message, user_message, error_code="VALIDATION_ERROR", **kwargs)
        self.field = field
        self.value = value


class StorageError(HelpdeskError):
    """
    Exception raised for ticket store failures.

    This includes file permission and disk errors for the file store and
    connection or query errors for the SQLite store.
    """

    def __init__(self, message: str, operation: Optional[str] = None,
                 user_message: Optional[str] = None, **kwargs):
        """
        Initialize StorageError.

        Args:
            message: Technical error message
            operation: Store operation that failed (e.g., 'save_ticket')
            user_message: User-friendly error message
        """
        if not user_message:
            user_message = "A storage error occurred. Please try again later."

        super().__init__(message, user_message, error_code="STORAGE_ERROR", **kwargs)
        self.operation = operation


class StorageConnectionError(StorageError):
    """Exception raised when a store cannot be initialized."""
    pass


class NotificationError(HelpdeskError):
    """Exception raised when an outbound email cannot be sent."""

    def __init__(self, message: str, transport: Optional[str] = None,
                 user_message: Optional[str] = None, **kwargs):
        if not user_message:
            user_message = "The notification email could not be sent."

        super().__init__(message, user_message, error_code="NOTIFICATION_ERROR", **kwargs)
        self.transport = transport


class AttachmentError(HelpdeskError):
    """
    Exception raised when an attachment cannot be stored.

    Raised for oversized uploads (before anything is written) and for
    file write failures.
    """

    def __init__(self, message: str, ticket_id: Optional[str] = None,
                 file_name: Optional[str] = None, user_message: Optional[str] = None, **kwargs):
        if not user_message:
            user_message = "The attachment could not be saved."

        super().__init__(message, user_message, error_code="ATTACHMENT_ERROR", **kwargs)
        self.ticket_id = ticket_id
        self.file_name = file_name


class ConfigurationError(HelpdeskError):
    """
    Exception raised for configuration-related errors.

    This includes malformed configuration files and invalid values.
    """

    def __init__(self, message: str, config_key: Optional[str] = None,
                 user_message: Optional[str] = None, **kwargs):
        if not user_message:
            user_message = "Helpdesk configuration error. Please contact an administrator."

        super().__init__(message, user_message, error_code="CONFIG_ERROR", **kwargs)
        self.config_key = config_key
