"""
appkeeper - Hot-reloadable catalog of managed application definitions.

Copyright (C) 2025 Andreas Vogler

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.
"""

import logging
import os
import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

import yaml

from .errors import ConfigError
from .models import ApplicationDefinition, ExecSpec

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConfigFileStat:
    modified_time: datetime
    size: int
    item_count: int

    def to_dict(self) -> dict:
        return {
            "modified_time": self.modified_time.isoformat(),
            "size": self.size,
            "item_count": self.item_count,
        }


@dataclass(frozen=True)
class ReloadResult:
    before: ConfigFileStat | None  # None on the very first load
    after: ConfigFileStat

    def to_dict(self) -> dict:
        return {
            "before": self.before.to_dict() if self.before else None,
            "after": self.after.to_dict(),
        }


def _parse_definition(index: int, item) -> ApplicationDefinition:
    where = f"application #{index}"
    if not isinstance(item, dict):
        raise ConfigError(f"{where}: expected a mapping, got {type(item).__name__}")

    app_id = item.get("id")
    if not isinstance(app_id, int) or isinstance(app_id, bool):
        raise ConfigError(f"{where}: 'id' must be an integer")
    name = item.get("name")
    if not isinstance(name, str) or not name:
        raise ConfigError(f"{where} (id {app_id}): 'name' must be a non-empty string")

    exec_cfg = item.get("exec")
    if not isinstance(exec_cfg, dict):
        raise ConfigError(f"{where} (id {app_id}): 'exec' must be a mapping")
    path = exec_cfg.get("path")
    if not isinstance(path, str) or not path:
        raise ConfigError(f"{where} (id {app_id}): 'exec.path' must be a non-empty string")

    args = exec_cfg.get("args") or []
    if not isinstance(args, list):
        raise ConfigError(f"{where} (id {app_id}): 'exec.args' must be a list")

    return ApplicationDefinition(
        id=app_id,
        name=name,
        exec=ExecSpec(
            path=path,
            working_directory=str(exec_cfg.get("workingDirectory") or ""),
            # YAML turns bare numbers into ints, the process argv only ever holds strings
            args=tuple(str(arg) for arg in args),
            redirect_path=str(exec_cfg.get("redirectPath") or ""),
        ),
    )


def parse_catalog(text: str) -> tuple[ApplicationDefinition, ...]:
    """Parse the YAML catalog document into definitions, in file order."""
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML: {e}") from e

    if data is None:
        return ()
    if not isinstance(data, list):
        raise ConfigError("catalog must be a list of applications")

    definitions = tuple(_parse_definition(i, item) for i, item in enumerate(data))
    seen = set()
    for definition in definitions:
        if definition.id in seen:
            raise ConfigError(f"duplicate application id {definition.id}")
        seen.add(definition.id)
    return definitions


class ApplicationCatalog:
    """Holds the current definition snapshot.

    Readers take no lock: reload() builds a new tuple and installs it with a
    single assignment, so a reader sees either the old or the new snapshot.
    """

    def __init__(self, config_path):
        self.config_path = Path(config_path)
        self._definitions: tuple[ApplicationDefinition, ...] = ()
        self._stat: ConfigFileStat | None = None
        self._reload_lock = threading.Lock()
        self.reload()

    def find_all(self) -> tuple[ApplicationDefinition, ...]:
        return self._definitions

    def find(self, app_id: int) -> ApplicationDefinition | None:
        for definition in self._definitions:
            if definition.id == app_id:
                return definition
        return None

    def reload(self) -> ReloadResult:
        """Re-read the catalog file. On failure the current snapshot is kept."""
        with self._reload_lock:
            try:
                text = self.config_path.read_text(encoding="utf-8")
                stat = os.stat(self.config_path)
            except OSError as e:
                raise ConfigError(f"read catalog {self.config_path}: {e}") from e

            definitions = parse_catalog(text)
            self._definitions = definitions

            after = ConfigFileStat(
                modified_time=datetime.fromtimestamp(stat.st_mtime),
                size=stat.st_size,
                item_count=len(definitions),
            )
            result = ReloadResult(before=self._stat, after=after)
            self._stat = after

        log.info("Catalog %s loaded: %d application(s)", self.config_path, len(definitions))
        return result
