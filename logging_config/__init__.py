"""
Logging configuration module for the helpdesk.

This module provides logging setup including file rotation, audit logging,
and structured logging for ticket lifecycle operations.
"""

from .logger import setup_logging, get_logger, get_audit_logger, AuditLogger, HelpdeskLogger
from .formatters import HelpdeskFormatter, AuditFormatter
from .handlers import RotatingFileHandler, AuditFileHandler

__all__ = [
    'setup_logging',
    'get_logger',
    'get_audit_logger',
    'AuditLogger',
    'HelpdeskLogger',
    'HelpdeskFormatter',
    'AuditFormatter',
    'RotatingFileHandler',
    'AuditFileHandler'
]
