# src/qloud/core/config.py
"""
Qloud - Personal Media Server - Configuration Management
Copyright (C) 2025 AZHAR ZOUHIR / BYTEDz

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU Affero General Public License as published
by the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.

This program is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
GNU Affero General Public License for more details.

You should have received a copy of the GNU Affero General Public License
along with this program. If not, see <https://www.gnu.org/licenses/>.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from . import constants
from .exceptions import ConfigurationError

log = logging.getLogger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# Every setting Qloud reads, with the value used when the file has none.
DEFAULT_SETTINGS: Dict[str, Any] = {
    # Storage
    "root_path": None,
    "use_app_path": True,
    "search_limit": constants.DEFAULT_SEARCH_LIMIT,
    "upload_session_ttl": constants.UPLOAD_SESSION_TTL,

    # Server
    "host": constants.DEFAULT_HOST,
    "server_port": constants.DEFAULT_PORT,
    "log_level": "INFO",
}


def _positive_int(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValueError("must be a positive integer")
    return value


def _port(value: Any) -> int:
    value = _positive_int(value)
    if value > 65535:
        raise ValueError("must be a valid TCP port")
    return value


def _optional_path(value: Any) -> Optional[str]:
    if value in (None, ""):
        return None
    if not isinstance(value, str):
        raise ValueError("must be a path string")
    return value


def _flag(value: Any) -> bool:
    if not isinstance(value, bool):
        raise ValueError("must be true or false")
    return value


def _host(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError("must be a host name or address")
    return value.strip()


def _log_level(value: Any) -> str:
    level = str(value).upper()
    if level not in LOG_LEVELS:
        raise ValueError(f"must be one of {', '.join(LOG_LEVELS)}")
    return level


VALIDATORS: Dict[str, Callable[[Any], Any]] = {
    "root_path": _optional_path,
    "use_app_path": _flag,
    "search_limit": _positive_int,
    "upload_session_ttl": _positive_int,
    "host": _host,
    "server_port": _port,
    "log_level": _log_level,
}


class ConfigManager:
    """
    JSON backed settings for the server.

    Missing keys take their defaults, values that fail validation are
    replaced by the default with a warning, so a hand-edited file can never
    keep the server from starting.
    """

    def __init__(self, config_file: Optional[Path] = None):
        self.config_file = Path(config_file or constants.CONFIG_FILE)
        self._settings: Dict[str, Any] = dict(DEFAULT_SETTINGS)
        self.load()

    @staticmethod
    def validate(key: str, value: Any) -> Any:
        validator = VALIDATORS.get(key)
        if validator is None:
            return value
        try:
            return validator(value)
        except ValueError as e:
            raise ConfigurationError(f"Invalid value for '{key}': {e}")

    def load(self):
        self._settings = dict(DEFAULT_SETTINGS)
        if not self.config_file.exists():
            log.info(f"Creating default configuration at {self.config_file}")
            self.save()
            return

        try:
            stored = json.loads(self.config_file.read_text(encoding="utf-8"))
            if not isinstance(stored, dict):
                raise ValueError("top level is not an object")
        except (OSError, ValueError) as e:
            log.error(f"Unreadable config file {self.config_file}, using defaults: {e}")
            return

        for key, value in stored.items():
            if key not in DEFAULT_SETTINGS:
                log.warning(f"Ignoring unknown setting '{key}' in {self.config_file.name}")
                continue
            try:
                self._settings[key] = self.validate(key, value)
            except ConfigurationError as e:
                log.warning(f"{e}; falling back to {DEFAULT_SETTINGS[key]!r}")
        log.info(f"Configuration loaded from {self.config_file}")

    def save(self):
        """Writes the settings next to the target and swaps the file in place."""
        tmp_file = self.config_file.with_suffix(self.config_file.suffix + ".tmp")
        try:
            self.config_file.parent.mkdir(parents=True, exist_ok=True)
            tmp_file.write_text(json.dumps(self._settings, indent=4), encoding="utf-8")
            os.replace(tmp_file, self.config_file)
        except OSError as e:
            log.error(f"Failed to write {self.config_file}: {e}")
            raise ConfigurationError(f"Cannot save configuration: {e}")

    def get(self, key: str, default: Any = None) -> Any:
        return self._settings.get(key, default)

    def as_dict(self) -> Dict[str, Any]:
        return dict(self._settings)

    def set(self, key: str, value: Any):
        self.update(**{key: value})

    def update(self, **values: Any):
        """Validates every value first, then stores them with a single write."""
        unknown = [k for k in values if k not in DEFAULT_SETTINGS]
        if unknown:
            raise ConfigurationError(f"Unknown setting(s): {', '.join(sorted(unknown))}")
        validated = {key: self.validate(key, value) for key, value in values.items()}
        self._settings.update(validated)
        self.save()
        log.debug(f"Updated settings: {', '.join(sorted(validated))}")

    def reset_to_defaults(self):
        self._settings = dict(DEFAULT_SETTINGS)
        self.save()
        log.info("Configuration reset to defaults.")

    def get_root_path(self) -> Path:
        """
        The storage root: a custom path when one is configured and the
        app-path default is switched off, else the folder next to the app.
        """
        custom = self.get("root_path")
        if custom and not self.get("use_app_path", True):
            return Path(custom).expanduser().resolve()
        return constants.APP_ROOT_PATH.resolve()


_config_manager: Optional[ConfigManager] = None


def get_config_manager() -> ConfigManager:
    """Process-wide instance, created on first use."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager
