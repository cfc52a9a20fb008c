"""
appkeeper - Process table access backed by psutil.

Copyright (C) 2025 Andreas Vogler

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.
"""

import logging

import psutil

from .errors import ScanError
from .models import LiveProcess

log = logging.getLogger(__name__)


def _memory(proc: psutil.Process) -> tuple[int, int]:
    """Return (rss, pss). PSS needs smaps access; fall back to plain RSS info."""
    try:
        info = proc.memory_full_info()
        return info.rss, getattr(info, "pss", 0)
    except psutil.AccessDenied:
        return proc.memory_info().rss, 0


class ProcessScanner:
    """Reads the OS process table and kills processes by PID."""

    def scan(self) -> list[LiveProcess]:
        processes = []
        try:
            for proc in psutil.process_iter():
                snapshot = self._snapshot(proc)
                if snapshot is not None:
                    processes.append(snapshot)
        except OSError as e:
            raise ScanError(f"scan process table: {e}") from e
        return processes

    def kill(self, pid: int) -> bool:
        """Send SIGTERM to `pid`. Returns False when no such process exists."""
        if pid <= 0:
            return False
        try:
            psutil.Process(pid).terminate()
        except psutil.NoSuchProcess:
            return False
        except psutil.AccessDenied as e:
            raise ScanError(f"kill {pid}: permission denied") from e
        log.info("Sent SIGTERM to PID %d", pid)
        return True

    def _snapshot(self, proc: psutil.Process) -> LiveProcess | None:
        # Processes of other users (without root) and kernel threads have no
        # readable executable; they are never our targets, so skip them silently.
        try:
            with proc.oneshot():
                path = proc.exe()
                if not path:
                    return None
                args = proc.cmdline()
                ppid = proc.ppid()
                rss, pss = _memory(proc)
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            return None
        return LiveProcess(pid=proc.pid, ppid=ppid, path=path, args=tuple(args), rss=rss, pss=pss)
