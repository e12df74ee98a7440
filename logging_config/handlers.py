"""
Custom log handlers for the helpdesk.

This module provides a rotating file handler that gzip-compresses rotated
files, and an audit handler that keeps the audit log readable by its owner
only.
"""

import logging
import logging.handlers
import os
import gzip
import shutil
from pathlib import Path
from typing import Optional


class RotatingFileHandler(logging.handlers.RotatingFileHandler):
    """
    Size-based rotating file handler with optional compression.

    Rotated files are written as ``<name>.N.gz`` when compression is on.
    """

    def __init__(self, filename: str, max_bytes: int = 10485760, backup_count: int = 5,
                 encoding: Optional[str] = None, compress_rotated: bool = True):
        """
        Initialize the rotating file handler.

        Args:
            filename: Path to the log file
            max_bytes: Maximum size of log file before rotation (default: 10MB)
            backup_count: Number of backup files to keep
            encoding: File encoding (default: utf-8)
            compress_rotated: Whether to compress rotated files
        """
        self.compress_rotated = compress_rotated

        Path(filename).parent.mkdir(parents=True, exist_ok=True)

        super().__init__(
            filename=filename,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding=encoding or 'utf-8'
        )

        if compress_rotated:
            self.namer = self._gzip_namer
            self.rotator = self._gzip_rotator

    @staticmethod
    def _gzip_namer(name: str) -> str:
        return f"{name}.gz"

    @staticmethod
    def _gzip_rotator(source: str, dest: str) -> None:
        with open(source, 'rb') as f_in:
            with gzip.open(dest, 'wb') as f_out:
                shutil.copyfileobj(f_in, f_out)
        os.remove(source)


class AuditFileHandler(RotatingFileHandler):
    """
    File handler for the audit log.

    The file is created with owner-only permissions (0600) and the mode is
    restored after every rollover.
    """

    def __init__(self, filename: str, max_bytes: int = 20971520, backup_count: int = 10,
                 encoding: Optional[str] = None):
        """
        Initialize the audit file handler.

        Args:
            filename: Path to the audit log file
            max_bytes: Maximum size before rotation (default: 20MB)
            backup_count: Number of backup files to keep (default: 10)
            encoding: File encoding
        """
        super().__init__(
            filename=filename,
            max_bytes=max_bytes,
            backup_count=backup_count,
            encoding=encoding,
            compress_rotated=True
        )
        self._set_secure_permissions()

    def _set_secure_permissions(self):
        """Restrict the audit log to read/write for its owner."""
        try:
            if os.path.exists(self.baseFilename):
                os.chmod(self.baseFilename, 0o600)
        except OSError as e:
            logging.getLogger(__name__).warning(f"Could not set secure permissions on audit log: {e}")

    def _open(self):
        stream = super()._open()
        self._set_secure_permissions()
        return stream

    def doRollover(self):
        """Perform rollover and re-apply permissions to the new file."""
        super().doRollover()
        self._set_secure_permissions()
