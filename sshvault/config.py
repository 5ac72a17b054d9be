"""
Configuration Manager for sshvault
Handles application preferences: file locations, terminal choice and logging
"""

import copy
import json
import logging
import os
from typing import Any, Callable, Dict, List, Optional

from .platform_utils import get_config_dir, get_ssh_dir

logger = logging.getLogger(__name__)

# Increment this whenever the configuration format changes
CONFIG_VERSION = 1

TERMINAL_APPS = ('ghostty', 'terminal', 'iterm2', 'custom')
DEFAULT_TERMINAL = 'ghostty'

SettingListener = Callable[[str, Any], None]


class Config:
    """Preferences for sshvault, persisted as JSON.

    One instance is created at startup and handed to whatever needs it.
    Listeners registered through :meth:`connect` are called with
    ``(key, value)`` after every :meth:`set_setting`.
    """

    def __init__(self, config_dir: Optional[str] = None):
        self.config_dir = config_dir or get_config_dir()
        self.config_file = os.path.join(self.config_dir, 'config.json')
        self._listeners: List[SettingListener] = []
        self.config_data = self.load_json_config()

    def load_json_config(self) -> Dict[str, Any]:
        """Load configuration from JSON file"""
        try:
            if os.path.exists(self.config_file):
                with open(self.config_file, 'r', encoding='utf-8') as f:
                    config = json.load(f)
                if not isinstance(config, dict):
                    raise ValueError("configuration root must be an object")

                # Purge outdated configurations
                stored_version = config.get('config_version', 0)
                if stored_version < CONFIG_VERSION:
                    backup_file = f"{self.config_file}.bak"
                    try:
                        os.replace(self.config_file, backup_file)
                        logger.warning(
                            "Outdated config version %s detected; backing up to %s and regenerating defaults",
                            stored_version,
                            backup_file,
                        )
                    except OSError:
                        os.remove(self.config_file)
                        logger.warning(
                            "Outdated config version %s detected; old config removed and new defaults generated",
                            stored_version,
                        )

                    config = self.get_default_config()
                    self.save_json_config(config)
                else:
                    config, updated = self._ensure_config_defaults(config)
                    if updated:
                        self.save_json_config(config)

                return config
            else:
                # Create default config
                default_config = self.get_default_config()
                self.save_json_config(default_config)
                return default_config
        except Exception as e:
            logger.error(f"Failed to load JSON config: {e}")
            return self.get_default_config()

    def save_json_config(self, config_data: Dict[str, Any] = None):
        """Save configuration to JSON file"""
        try:
            if config_data is None:
                config_data = self.config_data

            os.makedirs(os.path.dirname(self.config_file), mode=0o700, exist_ok=True)
            with open(self.config_file, 'w', encoding='utf-8') as f:
                json.dump(config_data, f, indent=2)

            logger.debug("Configuration saved to JSON file")
        except Exception as e:
            logger.error(f"Failed to save JSON config: {e}")

    def get_default_config(self) -> Dict[str, Any]:
        """Get default configuration values"""
        return {
            'config_version': CONFIG_VERSION,
            'ssh': {
                'config_path': os.path.join(get_ssh_dir(), 'config'),
                'debug_enabled': False,
            },
            'groups': {
                'file': os.path.join(self.config_dir, 'groups.json'),
            },
            'remotes': {
                'file': os.path.join(self.config_dir, 'remote_targets.json'),
            },
            'terminal': {
                'default': DEFAULT_TERMINAL,
                'custom_path': '',
                'host_overrides': {},  # alias -> {'terminal': ..., 'custom_path': ...}
            },
        }

    def _ensure_config_defaults(self, config: Dict[str, Any]):
        """Fill in keys added since the file was written."""
        updated = False
        defaults = self.get_default_config()
        for section, values in defaults.items():
            if not isinstance(values, dict):
                continue
            current = config.get(section)
            if not isinstance(current, dict):
                config[section] = copy.deepcopy(values)
                updated = True
                continue
            for key, value in values.items():
                if key not in current:
                    current[key] = copy.deepcopy(value)
                    updated = True

        terminal_cfg = config['terminal']
        if terminal_cfg.get('default') not in TERMINAL_APPS:
            terminal_cfg['default'] = DEFAULT_TERMINAL
            updated = True
        if not isinstance(terminal_cfg.get('host_overrides'), dict):
            terminal_cfg['host_overrides'] = {}
            updated = True

        return config, updated

    # --- Listener helpers -------------------------------------------------

    def connect(self, callback: SettingListener) -> SettingListener:
        """Register *callback* for setting changes and return it."""
        self._listeners.append(callback)
        return callback

    def disconnect(self, callback: SettingListener):
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _emit(self, key: str, value: Any):
        for callback in list(self._listeners):
            try:
                callback(key, value)
            except Exception as e:
                logger.error(f"Setting listener failed for {key}: {e}")

    # --- Generic access ---------------------------------------------------

    def get_setting(self, key: str, default=None):
        """Get a setting value using a dotted key such as ``ssh.config_path``"""
        value = self.config_data
        for k in key.split('.'):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def set_setting(self, key: str, value: Any):
        """Set a setting value and persist the file"""
        keys = key.split('.')
        current = self.config_data
        for k in keys[:-1]:
            if k not in current or not isinstance(current[k], dict):
                current[k] = {}
            current = current[k]
        current[keys[-1]] = value
        self.save_json_config()

        self._emit(key, value)
        logger.debug(f"Setting {key} = {value}")

    def reset_to_defaults(self):
        """Reset all settings to defaults"""
        self.config_data = self.get_default_config()
        self.save_json_config()
        logger.info("Configuration reset to defaults")

    # --- Paths ------------------------------------------------------------

    def get_ssh_config_path(self) -> str:
        path = self.get_setting('ssh.config_path') or os.path.join(get_ssh_dir(), 'config')
        return os.path.abspath(os.path.expanduser(path))

    def get_groups_path(self) -> str:
        path = self.get_setting('groups.file') or os.path.join(self.config_dir, 'groups.json')
        return os.path.abspath(os.path.expanduser(path))

    def get_remote_targets_path(self) -> str:
        path = self.get_setting('remotes.file') or os.path.join(self.config_dir, 'remote_targets.json')
        return os.path.abspath(os.path.expanduser(path))

    def get_remote_groups_path(self, target_id: str) -> str:
        """Per-remote group file, stored next to the remote target list."""
        base = os.path.dirname(self.get_remote_targets_path())
        return os.path.join(base, f"remote_groups_{target_id}.json")

    # --- Terminal preferences ---------------------------------------------

    def get_terminal_override(self, alias: str) -> Optional[Dict[str, Any]]:
        overrides = self.get_setting('terminal.host_overrides', {})
        if not isinstance(overrides, dict):
            return None
        value = overrides.get(alias)
        return value if isinstance(value, dict) else None

    def set_terminal_override(self, alias: str, terminal: str, custom_path: Optional[str] = None):
        if terminal not in TERMINAL_APPS:
            raise ValueError(f"Unknown terminal '{terminal}'")
        overrides = dict(self.get_setting('terminal.host_overrides', {}) or {})
        overrides[alias] = {'terminal': terminal, 'custom_path': custom_path or ''}
        self.set_setting('terminal.host_overrides', overrides)

    def remove_terminal_override(self, alias: str):
        overrides = dict(self.get_setting('terminal.host_overrides', {}) or {})
        if overrides.pop(alias, None) is not None:
            self.set_setting('terminal.host_overrides', overrides)

    def resolved_terminal(self, alias: str) -> str:
        """Terminal to use for *alias*: its override, else the default."""
        override = self.get_terminal_override(alias)
        if override and override.get('terminal') in TERMINAL_APPS:
            return override['terminal']
        return self.get_setting('terminal.default', DEFAULT_TERMINAL)

    def resolved_custom_path(self, alias: str) -> str:
        override = self.get_terminal_override(alias)
        if override and override.get('terminal') == 'custom' and override.get('custom_path'):
            return override['custom_path']
        return self.get_setting('terminal.custom_path', '') or ''
