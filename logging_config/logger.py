"""
Main logging configuration and setup for the helpdesk.

This module provides centralized logging configuration with support for
file rotation, audit logging, and structured log formatting.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Dict, Any, List

from models.timestamps import format_timestamp, utc_now

from .formatters import HelpdeskFormatter, AuditFormatter
from .handlers import RotatingFileHandler, AuditFileHandler


class HelpdeskLogger:
    """
    Main logger class for the helpdesk.

    Installs the console handler plus the rotating ``helpdesk.log`` and
    ``error.log`` files on the root logger.
    """

    def __init__(self, log_dir: str = "logs", log_level: str = "INFO"):
        """
        Initialize the logger.

        Args:
            log_dir: Directory to store log files
            log_level: Default log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        """
        self.log_dir = Path(log_dir)
        self.log_level = getattr(logging, str(log_level).upper(), logging.INFO)
        self.loggers: Dict[str, logging.Logger] = {}

        self.log_dir.mkdir(parents=True, exist_ok=True)
        self._setup_root_logger()

    def _setup_root_logger(self):
        """Setup the root logger with console and file handlers."""
        root_logger = logging.getLogger()
        root_logger.setLevel(self.log_level)

        for handler in list(root_logger.handlers):
            root_logger.removeHandler(handler)
            handler.close()

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(self.log_level)
        console_handler.setFormatter(HelpdeskFormatter(use_colors=sys.stdout.isatty()))
        root_logger.addHandler(console_handler)

        file_handler = RotatingFileHandler(
            filename=str(self.log_dir / "helpdesk.log"),
            max_bytes=10 * 1024 * 1024,  # 10MB
            backup_count=5,
            encoding='utf-8'
        )
        file_handler.setLevel(self.log_level)
        file_handler.setFormatter(HelpdeskFormatter(use_colors=False, include_extra=True))
        root_logger.addHandler(file_handler)

        error_handler = RotatingFileHandler(
            filename=str(self.log_dir / "error.log"),
            max_bytes=5 * 1024 * 1024,  # 5MB
            backup_count=3,
            encoding='utf-8'
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(HelpdeskFormatter(use_colors=False, include_extra=True))
        root_logger.addHandler(error_handler)

    def get_logger(self, name: str) -> logging.Logger:
        """
        Get a logger instance for a specific module.

        Args:
            name: Logger name (usually __name__)

        Returns:
            logging.Logger: Configured logger instance
        """
        if name not in self.loggers:
            self.loggers[name] = logging.getLogger(name)
        return self.loggers[name]

    def setup_audit_logging(self) -> 'AuditLogger':
        """Create the audit logger writing to ``audit.log`` in the log directory."""
        return AuditLogger(self.log_dir)


class AuditLogger:
    """
    Structured logger for ticket lifecycle events.

    With a log directory, events are written as JSON lines to ``audit.log``
    and do not reach the root logger. Without one, events go to the
    ``audit`` logger and whatever handlers it already has.
    """

    def __init__(self, log_dir: Optional[Path] = None):
        """
        Initialize the audit logger.

        Args:
            log_dir: Directory to store audit log files
        """
        self.log_dir = Path(log_dir) if log_dir else None
        self.logger = logging.getLogger("audit")
        self.logger.setLevel(logging.INFO)

        if self.log_dir is not None:
            for handler in list(self.logger.handlers):
                self.logger.removeHandler(handler)
                handler.close()

            audit_handler = AuditFileHandler(
                filename=str(self.log_dir / "audit.log"),
                max_bytes=20 * 1024 * 1024,  # 20MB
                backup_count=10,
                encoding='utf-8'
            )
            audit_handler.setLevel(logging.INFO)
            audit_handler.setFormatter(AuditFormatter())
            self.logger.addHandler(audit_handler)
            self.logger.propagate = False

    def log_ticket_created(self, ticket_id: str, name: str, category: str,
                           related: Optional[str] = None,
                           additional_info: Optional[Dict[str, Any]] = None):
        """
        Log ticket creation event.

        Args:
            ticket_id: Unique ticket identifier
            name: Requester name
            category: Category the ticket was filed under
            related: Id of the open ticket it was linked to as a duplicate
            additional_info: Additional information to log
        """
        info = dict(additional_info or {})
        info['name'] = name
        info['category'] = category
        info['related'] = related
        self._log_audit_event("TICKET_CREATED", ticket_id=ticket_id, additional_info=info)

    def log_ticket_updated(self, ticket_id: str, fields: List[str],
                           additional_info: Optional[Dict[str, Any]] = None):
        """
        Log an admin update.

        Args:
            ticket_id: Unique ticket identifier
            fields: Names of the fields that were supplied
            additional_info: Additional information to log
        """
        info = dict(additional_info or {})
        info['fields'] = sorted(fields)
        self._log_audit_event("TICKET_UPDATED", ticket_id=ticket_id, additional_info=info)

    def log_status_changed(self, ticket_id: str, old_status: str, new_status: str):
        self._log_audit_event(
            "STATUS_CHANGED",
            ticket_id=ticket_id,
            additional_info={'old_status': old_status, 'new_status': new_status}
        )

    def log_ticket_merged(self, source_id: str, target_id: str, moved_attachments: int,
                          dropped_attachments: int = 0):
        """
        Log a merge of one ticket into another.

        Args:
            source_id: Ticket that was merged away
            target_id: Ticket that absorbed it
            moved_attachments: Number of attachment files moved
            dropped_attachments: Number of attachments that could not be moved
        """
        self._log_audit_event(
            "TICKET_MERGED",
            ticket_id=target_id,
            additional_info={
                'source_id': source_id,
                'moved_attachments': moved_attachments,
                'dropped_attachments': dropped_attachments
            }
        )

    def log_ticket_deleted(self, ticket_id: str):
        self._log_audit_event("TICKET_DELETED", ticket_id=ticket_id)

    def log_feedback_submitted(self, ticket_id: str, rating: str, has_comment: bool):
        self._log_audit_event(
            "FEEDBACK_SUBMITTED",
            ticket_id=ticket_id,
            additional_info={'rating': rating, 'has_comment': has_comment}
        )

    def log_attachment_added(self, ticket_id: str, stored_name: str, size: int):
        self._log_audit_event(
            "ATTACHMENT_ADDED",
            ticket_id=ticket_id,
            additional_info={'stored_name': stored_name, 'size': size}
        )

    def log_notification_failed(self, subject: str, recipient_count: int, error_message: str,
                                ticket_id: Optional[str] = None):
        """
        Log an email that could not be delivered.

        Args:
            subject: Subject line of the email
            recipient_count: Number of recipients it was addressed to
            error_message: Error reported by the transport
            ticket_id: Ticket the email was about (if applicable)
        """
        self._log_audit_event(
            "NOTIFICATION_FAILED",
            ticket_id=ticket_id,
            additional_info={
                'subject': subject,
                'recipient_count': recipient_count,
                'error_message': error_message
            }
        )

    def _log_audit_event(self, event_type: str, ticket_id: Optional[str] = None,
                         additional_info: Optional[Dict[str, Any]] = None):
        """
        Log a structured audit event.

        Args:
            event_type: Type of event being logged
            ticket_id: ID of ticket involved
            additional_info: Additional information to include
        """
        event_data = {
            'event_type': event_type,
            'event_time': format_timestamp(utc_now()),
            'ticket_id': ticket_id
        }

        if additional_info:
            event_data.update(additional_info)

        event_data = {k: v for k, v in event_data.items() if v is not None}

        self.logger.info(f"Audit event {event_type}", extra={'audit_data': event_data})


# Global logger instances
_logger_instance: Optional[HelpdeskLogger] = None
_audit_logger_instance: Optional[AuditLogger] = None


def setup_logging(log_dir: str = "logs", log_level: str = "INFO") -> HelpdeskLogger:
    """
    Setup global logging configuration.

    Args:
        log_dir: Directory to store log files
        log_level: Default log level

    Returns:
        HelpdeskLogger: Configured logger instance
    """
    global _logger_instance, _audit_logger_instance

    _logger_instance = HelpdeskLogger(log_dir, log_level)
    _audit_logger_instance = _logger_instance.setup_audit_logging()

    return _logger_instance


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a specific module.

    Args:
        name: Logger name (usually __name__)

    Returns:
        logging.Logger: Configured logger instance
    """
    if _logger_instance is None:
        return logging.getLogger(name)
    return _logger_instance.get_logger(name)


def get_audit_logger() -> AuditLogger:
    """
    Get the global audit logger instance.

    Before ``setup_logging`` has run this is an audit logger without a file,
    so library code and tests never create log files implicitly.

    Returns:
        AuditLogger: Audit logger instance
    """
    global _audit_logger_instance
    if _audit_logger_instance is None:
        _audit_logger_instance = AuditLogger()
    return _audit_logger_instance
