"""
Data models for appkeeper.

Copyright (C) 2025 Andreas Vogler

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.
"""

import os
import shutil
from dataclasses import dataclass, field


@dataclass(frozen=True)
class ExecSpec:
    path: str
    working_directory: str = ""
    args: tuple[str, ...] = ()
    redirect_path: str = ""  # Where captured stdout/stderr lines are written


@dataclass(frozen=True)
class ApplicationDefinition:
    id: int
    name: str
    exec: ExecSpec

    def absolute_path(self) -> str:
        """Resolve the executable: absolute as-is, else relative to the working
        directory, else looked up on $PATH. Falls back to the joined path."""
        exe = os.path.normpath(self.exec.path)
        if os.path.isabs(exe):
            return exe

        joined = os.path.join(self.exec.working_directory, exe)
        if not os.path.exists(joined):
            found = shutil.which(self.exec.path)
            if found:
                return os.path.abspath(found)
        return os.path.abspath(joined)

    def absolute_redirect_path(self) -> str:
        redirect = self.exec.redirect_path
        if os.path.isabs(redirect):
            return os.path.normpath(redirect)
        return os.path.abspath(os.path.join(self.exec.working_directory, redirect))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "exec": {
                "working_directory": self.exec.working_directory,
                "path": self.exec.path,
                "args": list(self.exec.args),
                "redirect_path": self.exec.redirect_path,
            },
        }


@dataclass(frozen=True)
class LiveProcess:
    pid: int
    ppid: int
    path: str
    args: tuple[str, ...] = ()
    rss: int = 0  # Resident Set Size in bytes
    pss: int = 0  # Proportional Set Size in bytes, 0 where the OS has none

    def to_dict(self) -> dict:
        return {
            "pid": self.pid,
            "ppid": self.ppid,
            "path": self.path,
            "args": list(self.args),
            "rss": self.rss,
            "pss": self.pss,
        }


@dataclass
class ProcessTreeNode:
    process: LiveProcess
    children: list["ProcessTreeNode"] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "process": self.process.to_dict(),
            "children": [child.to_dict() for child in self.children],
        }


@dataclass
class ApplicationView:
    definition: ApplicationDefinition
    instances: list[ProcessTreeNode] = field(default_factory=list)

    def to_dict(self) -> dict:
        data = self.definition.to_dict()
        data["instances"] = [node.to_dict() for node in self.instances]
        return data
