"""
Configuration management for the helpdesk.

This module loads the global settings from an optional JSON file and lets
environment variables (typically loaded from ``.env``) override them. It also
exposes the email transport settings as typed objects and validates that the
selected integrations are fully configured.
"""

import json
import math
import os
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Any
from pathlib import Path
import logging

from errors.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


MIB = 1024 * 1024

DEFAULTS: Dict[str, Any] = {
    'ticket_backend': '',
    'db_file': 'data/tickets.db',
    'ticket_dir': 'Ticket',
    'data_dir': 'data',
    'sla_hours': 24,
    'base_url': 'http://localhost:3000',
    'helpdesk_email': None,
    'use_graph': False,
    'smtp_host': None,
    'smtp_port': None,
    'smtp_secure': False,
    'smtp_user': None,
    'smtp_pass': None,
    'from_email': None,
    'azure_tenant_id': None,
    'azure_client_id': None,
    'azure_client_secret': None,
    'graph_sender_upn': None,
    'notify_timeout': 2.0,
    'max_attachment_bytes': 35 * MIB,
    'users_file': 'users.json',
    'log_level': 'INFO',
    'log_dir': 'logs'
}

# Environment variable consulted for each key
ENV_VARS: Dict[str, str] = {
    'ticket_backend': 'TICKET_BACKEND',
    'db_file': 'DB_FILE',
    'ticket_dir': 'TICKET_DIR',
    'data_dir': 'DATA_DIR',
    'sla_hours': 'SLA_HOURS',
    'base_url': 'BASE_URL',
    'helpdesk_email': 'TO_EMAIL',
    'use_graph': 'USE_GRAPH',
    'smtp_host': 'SMTP_HOST',
    'smtp_port': 'SMTP_PORT',
    'smtp_secure': 'SMTP_SECURE',
    'smtp_user': 'SMTP_USER',
    'smtp_pass': 'SMTP_PASS',
    'from_email': 'FROM_EMAIL',
    'azure_tenant_id': 'AZURE_TENANT_ID',
    'azure_client_id': 'AZURE_CLIENT_ID',
    'azure_client_secret': 'AZURE_CLIENT_SECRET',
    'graph_sender_upn': 'GRAPH_SENDER_UPN',
    'notify_timeout': 'NOTIFY_TIMEOUT_SECONDS',
    'max_attachment_bytes': 'MAX_ATTACHMENT_BYTES',
    'users_file': 'USERS_FILE',
    'log_level': 'LOG_LEVEL',
    'log_dir': 'LOG_DIR'
}

VALID_BACKENDS = ['', 'fs', 'file', 'db', 'sqlite']

TRUE_VALUES = {'1', 'true', 'yes', 'on'}


@dataclass
class SmtpConfig:
    """Settings for the SMTP transport."""

    host: Optional[str]
    port: Optional[int]
    secure: bool = False
    user: Optional[str] = None
    password: Optional[str] = None
    from_email: Optional[str] = None

    @property
    def has_credentials(self) -> bool:
        return bool(self.user and self.password)


@dataclass
class GraphConfig:
    """Settings for the Microsoft Graph transport (client-credentials flow)."""

    tenant_id: Optional[str]
    client_id: Optional[str]
    client_secret: Optional[str]
    sender_upn: Optional[str]

    @property
    def authority(self) -> str:
        return f"https://login.microsoftonline.com/{self.tenant_id}"


class ConfigManager:
    """Manages helpdesk configuration from a JSON file and the environment."""

    def __init__(self, config_file: str = "config.json", environ: Optional[Mapping[str, str]] = None):
        """
        Initialize ConfigManager.

        Args:
            config_file: Path to the optional JSON configuration file
            environ: Environment mapping to read overrides from (defaults to os.environ)
        """
        self.config_file = Path(config_file)
        self.environ = os.environ if environ is None else environ
        self.global_config: Dict[str, Any] = {}
        self._load_configuration()

    def _load_configuration(self):
        """Load configuration from file with error handling."""
        if not self.config_file.exists():
            logger.info(f"Configuration file {self.config_file} not found, using environment and defaults")
            return

        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                config_data = json.load(f)
        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON in configuration file: {e}")
            raise ConfigurationError(f"Invalid JSON in configuration file: {e}") from e
        except OSError as e:
            logger.error(f"Error loading configuration: {e}")
            raise ConfigurationError(f"Error loading configuration: {e}") from e

        if not isinstance(config_data, dict) or not isinstance(config_data.get('global', {}), dict):
            raise ConfigurationError("Configuration file must contain a 'global' object")

        self.global_config = dict(config_data.get('global', {}))
        logger.info(f"Configuration loaded successfully from {self.config_file}")

    def get_global_config(self, key: str, default: Any = None) -> Any:
        """
        Get a global configuration value.

        The environment variable mapped to the key wins over the file, and the
        file wins over the built-in default.

        Args:
            key: Configuration key
            default: Value used when neither source nor built-in default has one

        Returns:
            Configuration value or default
        """
        env_name = ENV_VARS.get(key, key.upper())
        env_value = self.environ.get(env_name)
        if env_value not in (None, ''):
            return env_value
        if key in self.global_config:
            return self.global_config[key]
        if default is not None:
            return default
        return DEFAULTS.get(key)

    def set_global_config(self, key: str, value: Any):
        """
        Set a global configuration value.

        Args:
            key: Configuration key
            value: Configuration value
        """
        self.global_config[key] = value
        logger.info(f"Updated global configuration: {key}")

    def get_bool(self, key: str) -> bool:
        value = self.get_global_config(key)
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() in TRUE_VALUES if value is not None else False

    def get_int(self, key: str) -> Optional[int]:
        """Integer value for a key, or None if it is unset."""
        value = self.get_global_config(key)
        if value in (None, ''):
            return None
        try:
            return int(value)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid integer for {key}: {value!r}", config_key=key) from e

    def get_float(self, key: str) -> Optional[float]:
        """Float value for a key, or None if it is unset."""
        value = self.get_global_config(key)
        if value in (None, ''):
            return None
        try:
            number = float(value)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid number for {key}: {value!r}", config_key=key) from e
        if not math.isfinite(number):
            raise ConfigurationError(f"Invalid number for {key}: {value!r}", config_key=key)
        return number

    @property
    def backend(self) -> str:
        return str(self.get_global_config('ticket_backend') or '').strip().lower()

    @property
    def prefers_database(self) -> bool:
        """True when TICKET_BACKEND asks for the database or DB_FILE is set explicitly."""
        if self.backend in ('db', 'sqlite'):
            return True
        return bool(self.environ.get('DB_FILE') or self.global_config.get('db_file'))

    def smtp_config(self) -> SmtpConfig:
        return SmtpConfig(
            host=self.get_global_config('smtp_host'),
            port=self.get_int('smtp_port'),
            secure=self.get_bool('smtp_secure'),
            user=self.get_global_config('smtp_user'),
            password=self.get_global_config('smtp_pass'),
            from_email=self.get_global_config('from_email')
        )

    def graph_config(self) -> GraphConfig:
        return GraphConfig(
            tenant_id=self.get_global_config('azure_tenant_id'),
            client_id=self.get_global_config('azure_client_id'),
            client_secret=self.get_global_config('azure_client_secret'),
            sender_upn=self.get_global_config('graph_sender_upn')
        )

    def validate_configuration(self) -> List[str]:
        """
        Validate the current configuration.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        if self.backend not in VALID_BACKENDS:
            errors.append(f"Invalid ticket_backend: {self.backend}. Must be one of {VALID_BACKENDS[1:]}")

        try:
            sla_hours = self.get_float('sla_hours')
            if sla_hours is None or sla_hours <= 0:
                errors.append("sla_hours must be a positive number")
        except ConfigurationError as e:
            errors.append(str(e))

        for key in ('notify_timeout', 'max_attachment_bytes'):
            try:
                value = self.get_float(key)
                if value is None or value <= 0:
                    errors.append(f"{key} must be a positive number")
            except ConfigurationError as e:
                errors.append(str(e))

        if self.get_bool('use_graph'):
            required = ['azure_tenant_id', 'azure_client_id', 'azure_client_secret', 'graph_sender_upn']
        else:
            required = ['smtp_host', 'smtp_port', 'from_email']

        for key in required:
            if not self.get_global_config(key):
                errors.append(f"Missing required email configuration: {ENV_VARS[key]}")

        if 'smtp_port' in required and self.get_global_config('smtp_port'):
            try:
                self.get_int('smtp_port')
            except ConfigurationError as e:
                errors.append(str(e))

        return errors

    def reload_configuration(self):
        """Reload configuration from file."""
        self.global_config.clear()
        self._load_configuration()
        logger.info("Configuration reloaded")
