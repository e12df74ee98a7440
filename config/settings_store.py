"""
Admin-editable helpdesk settings persisted in ``data/settings.json``.
"""

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, Optional

from errors.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


DEFAULT_SETTINGS: Dict[str, Any] = {
    'theme': 'dark',
    'ticketPrefix': 'NTC',
    'loginLogo': '',
    'slaHours': 24
}

DEFAULT_PREFIX = 'NTC'


class SettingsStore:
    """
    Reads and writes the settings file.

    Nothing is cached: every ``load`` reads the file again, so changes made
    through the admin settings apply to the next ticket created.
    """

    def __init__(self, data_dir: str = "data", fallback_sla_hours: Optional[float] = None):
        """
        Args:
            data_dir: Directory holding settings.json
            fallback_sla_hours: SLA used when the stored value is missing or invalid
        """
        self.data_dir = Path(data_dir)
        self.settings_file = self.data_dir / "settings.json"
        self.fallback_sla_hours = fallback_sla_hours or DEFAULT_SETTINGS['slaHours']

    def defaults(self) -> Dict[str, Any]:
        """Built-in defaults, with slaHours taken from the configured fallback."""
        defaults = dict(DEFAULT_SETTINGS)
        defaults['slaHours'] = self.fallback_sla_hours
        return defaults

    def load(self) -> Dict[str, Any]:
        """Current settings merged over the defaults. Unreadable files yield the defaults."""
        if not self.settings_file.exists():
            return self.defaults()
        try:
            with open(self.settings_file, 'r', encoding='utf-8') as f:
                parsed = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to read settings, using defaults: {e}")
            return self.defaults()

        if not isinstance(parsed, dict):
            logger.warning("Settings file does not hold an object, using defaults")
            return self.defaults()

        settings = self.defaults()
        settings.update(parsed)
        return settings

    def save(self, patch: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Merge a patch into the stored settings and write them back.

        Raises:
            ConfigurationError: If the settings file cannot be written
        """
        merged = self.load()
        merged.update(patch or {})
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            with open(self.settings_file, 'w', encoding='utf-8') as f:
                json.dump(merged, f, indent=2)
        except OSError as e:
            logger.error(f"Error saving settings: {e}")
            raise ConfigurationError(f"Error saving settings: {e}", config_key='settings') from e

        logger.info(f"Settings saved to {self.settings_file}")
        return merged

    def get(self, key: str, default: Any = None) -> Any:
        return self.load().get(key, default)

    def ticket_prefix(self) -> str:
        """Configured ticket prefix reduced to upper-case alphanumerics (NTC if nothing is left)."""
        raw = str(self.get('ticketPrefix') or DEFAULT_PREFIX).strip()
        return re.sub(r'[^a-zA-Z0-9]', '', raw).upper() or DEFAULT_PREFIX

    def sla_hours(self) -> float:
        """Configured SLA window in hours, falling back when not a positive number."""
        value = self.get('slaHours')
        try:
            hours = float(value)
        except (TypeError, ValueError):
            return float(self.fallback_sla_hours)
        if hours <= 0 or hours != hours or hours == float('inf'):
            return float(self.fallback_sla_hours)
        return hours
