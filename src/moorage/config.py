"""
Settings Manager for moorage
Manages client settings stored in a JSON file
"""

import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS: Dict[str, Any] = {
    'socket_path': '',
    'api_version': '',
    'timeout': 60,
    'stream_timeout': 12 * 60 * 60,
    'stream_buffer': 8,
    'log_level': 'INFO',
}

ENV_OVERRIDES = {
    'MOORAGE_SOCKET': ('socket_path', str),
    'MOORAGE_API_VERSION': ('api_version', str),
    'MOORAGE_TIMEOUT': ('timeout', float),
    'MOORAGE_LOG_LEVEL': ('log_level', str),
}


@dataclass(frozen=True)
class ClientSettings:
    """Resolved settings consumed by the client and dispatcher"""
    socket_path: str = ''
    api_version: str = ''
    timeout: float = 60
    stream_timeout: float = 12 * 60 * 60
    stream_buffer: int = 8
    log_level: str = 'INFO'

    @property
    def api_version_prefix(self) -> str:
        """Path prefix such as ``v1.41``, or '' for the unversioned API"""
        if not self.api_version:
            return ''
        version = self.api_version.lstrip('v')
        return f"v{version}"


class SettingsManager:
    """Manager for client settings"""

    @staticmethod
    def get_user_settings_path() -> str:
        """Get path to user settings file"""
        if os.name == 'nt':  # Windows
            base_dir = os.environ.get('APPDATA', os.path.expanduser('~'))
        else:  # macOS, Linux
            base_dir = os.environ.get('XDG_CONFIG_HOME', os.path.expanduser('~/.config'))
        return os.path.join(base_dir, 'moorage', 'settings.json')

    def __init__(self, settings_file: Optional[str] = None):
        """
        Initialize settings manager

        Args:
            settings_file: Path to settings JSON (default: per-user config dir)
        """
        self.settings_file = settings_file or self.get_user_settings_path()
        self.settings: Dict[str, Any] = {}

        self.load()

    def load(self):
        """Load settings from user file, then apply environment overrides"""
        self.settings = DEFAULT_SETTINGS.copy()
        if os.path.exists(self.settings_file):
            try:
                with open(self.settings_file, 'r', encoding='utf-8') as f:
                    loaded_settings = json.load(f)
            except (OSError, ValueError) as e:
                logger.warning(f"Could not load settings from {self.settings_file}: {e}")
            else:
                if isinstance(loaded_settings, dict):
                    # User settings override defaults
                    self.settings.update(loaded_settings)
                    logger.debug(f"Settings loaded from {self.settings_file}")
                else:
                    logger.warning(f"Ignoring settings file {self.settings_file}: not a JSON object")

        for variable, (key, convert) in ENV_OVERRIDES.items():
            value = os.environ.get(variable)
            if not value:
                continue
            try:
                self.settings[key] = convert(value)
            except ValueError:
                logger.warning(f"Ignoring invalid {variable}={value!r}")

    def save(self) -> bool:
        """Save settings to file"""
        try:
            os.makedirs(os.path.dirname(self.settings_file), exist_ok=True)
            with open(self.settings_file, 'w', encoding='utf-8') as f:
                json.dump(self.settings, f, indent=4, ensure_ascii=False)
        except OSError as e:
            logger.error(f"Error saving settings: {e}")
            return False
        logger.info(f"Settings saved to {self.settings_file}")
        return True

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get setting value

        Args:
            key: Setting key
            default: Default value if key not found

        Returns:
            Setting value
        """
        return self.settings.get(key, default)

    def set(self, key: str, value: Any):
        """Set setting value (call save() to persist)"""
        self.settings[key] = value

    def reset(self):
        """Reset settings to defaults"""
        self.settings = DEFAULT_SETTINGS.copy()

    def client_settings(self) -> ClientSettings:
        """Build the immutable settings used by EngineClient"""
        return ClientSettings(
            socket_path=str(self.get('socket_path') or ''),
            api_version=str(self.get('api_version') or ''),
            timeout=float(self.get('timeout', DEFAULT_SETTINGS['timeout'])),
            stream_timeout=float(self.get('stream_timeout', DEFAULT_SETTINGS['stream_timeout'])),
            stream_buffer=int(self.get('stream_buffer', DEFAULT_SETTINGS['stream_buffer'])),
            log_level=str(self.get('log_level') or 'INFO'),
        )
