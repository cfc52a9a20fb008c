"""Shared pytest fixtures for the test suite."""

import os
import signal
import stat
import sys
import time

import pytest

from appkeeper.auth import AuthStore, parse_shadow, register
from appkeeper.models import ApplicationDefinition, ExecSpec

# Lowest cost bcrypt accepts, keeps the suite fast
FAST_ROUNDS = 4


def wait_for(predicate, timeout=10.0, interval=0.05):
    """Poll `predicate` until it returns a truthy value or the timeout passes."""
    deadline = time.monotonic() + timeout
    while True:
        result = predicate()
        if result or time.monotonic() > deadline:
            return result
        time.sleep(interval)


def write_catalog(path, text):
    path.write_text(text, encoding="utf-8")
    return path


@pytest.fixture
def executable(tmp_path):
    """An executable file on disk, usable as a catalog exec.path."""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    exe = bin_dir / "server"
    exe.write_text("#!/bin/sh\nexit 0\n")
    exe.chmod(exe.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return exe


@pytest.fixture
def auth_store():
    lines = [
        register("alice", "wonderland", rounds=FAST_ROUNDS),
        register("bob", "builder", rounds=FAST_ROUNDS),
    ]
    return AuthStore(parse_shadow(lines), dummy_rounds=FAST_ROUNDS)


@pytest.fixture
def python_app(tmp_path):
    """Factory for definitions running `python -c <script>` in tmp_path."""

    def _make(script, app_id=1, redirect="out.log"):
        return ApplicationDefinition(
            id=app_id,
            name=f"python-{app_id}",
            exec=ExecSpec(
                path=sys.executable,
                working_directory=str(tmp_path),
                args=("-c", script),
                redirect_path=redirect,
            ),
        )

    return _make


@pytest.fixture
def cleanup_pids():
    """Collect PIDs of spawned children; they are killed after the test."""
    pids = []
    yield pids
    for pid in pids:
        try:
            os.kill(pid, signal.SIGKILL)
        except ProcessLookupError:
            pass


class FakeScanner:
    """Stand-in for ProcessScanner over a mutable process list."""

    def __init__(self, processes=()):
        self.processes = list(processes)
        self.killed = []
        self.scan_calls = 0

    def scan(self):
        self.scan_calls += 1
        return list(self.processes)

    def kill(self, pid):
        if not any(p.pid == pid for p in self.processes):
            return False
        self.killed.append(pid)
        self.processes = [p for p in self.processes if p.pid != pid]
        return True


class FakeLauncher:
    """Stand-in for Launcher that records termination."""

    def __init__(self, definition, pid):
        self.definition = definition
        self.pid = pid
        self.terminated = False

    def query(self):
        return [] if self.terminated else [f"line from {self.definition.name}"]

    def terminate(self):
        self.terminated = True
