# Configuration package for helpdesk settings and integrations

from .config_manager import ConfigManager, SmtpConfig, GraphConfig
from .settings_store import SettingsStore, DEFAULT_SETTINGS

__all__ = ['ConfigManager', 'SmtpConfig', 'GraphConfig', 'SettingsStore', 'DEFAULT_SETTINGS']
