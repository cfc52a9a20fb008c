"""
appkeeper - Settings file loading.

Copyright (C) 2025 Andreas Vogler

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.
"""

import logging
from datetime import timedelta
from pathlib import Path

import yaml

from .errors import ConfigError

log = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "appkeeper.yaml"


class Settings:
    def __init__(self, config_path: str = DEFAULT_CONFIG_PATH):
        self.config_path = Path(config_path).resolve()
        self.base_dir = self.config_path.parent
        self.config = {}
        self.load_config()

    def load_config(self):
        if self.config_path.exists():
            try:
                with open(self.config_path, encoding="utf-8") as f:
                    self.config = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                raise ConfigError(f"read settings {self.config_path}: {e}") from e
            if not isinstance(self.config, dict):
                raise ConfigError(f"settings {self.config_path} must be a mapping")
        else:
            log.warning("Settings file %s not found, using defaults", self.config_path)
            self.config = {}

        try:
            self.web_host = str(self._section("web_ui").get("host", "0.0.0.0"))
            self.web_port = int(self._section("web_ui").get("port", 8600))
            self.catalog_path = self._resolve(self._section("catalog").get("path", "apps.yaml"))
            self.shadow_path = self._resolve(self._section("auth").get("shadow_path", "shadow"))
            self.token_ttl = timedelta(minutes=float(self._section("auth").get("token_ttl_minutes", 10)))
            self.history_length = int(self._section("launcher").get("history_length", 1000))
            self.log_level = str(self._section("logging").get("level", "INFO")).upper()
        except (TypeError, ValueError) as e:
            raise ConfigError(f"bad value in settings {self.config_path}: {e}") from e

        if self.history_length < 1:
            raise ConfigError("launcher.history_length must be positive")
        if not isinstance(logging.getLevelName(self.log_level), int):
            raise ConfigError(f"unknown logging.level {self.log_level}")

    def _section(self, name: str) -> dict:
        section = self.config.get(name) or {}
        if not isinstance(section, dict):
            raise ConfigError(f"settings section '{name}' must be a mapping")
        return section

    def _resolve(self, path) -> Path:
        # Relative paths are relative to the settings file, not the current directory
        path = Path(path)
        if not path.is_absolute():
            path = self.base_dir / path
        return path
