"""Tests for the psutil-backed ProcessScanner."""

import os
import subprocess
import sys

import pytest

from appkeeper.scanner import ProcessScanner


class TestProcessScanner:
    def test_scan_includes_current_process(self):
        processes = ProcessScanner().scan()
        me = [p for p in processes if p.pid == os.getpid()]
        assert len(me) == 1
        assert me[0].ppid == os.getppid()
        assert os.path.samefile(me[0].path, sys.executable)
        assert me[0].rss > 0

    def test_kill(self):
        child = subprocess.Popen([sys.executable, "-c", "import time; time.sleep(60)"])
        try:
            assert ProcessScanner().kill(child.pid) is True
            assert child.wait(timeout=10) != 0
        finally:
            if child.poll() is None:
                child.kill()

    def test_kill_missing_process(self):
        child = subprocess.Popen([sys.executable, "-c", "pass"])
        child.wait()
        assert ProcessScanner().kill(child.pid) is False

    @pytest.mark.parametrize("pid", [0, -1])
    def test_kill_non_positive_pid(self, pid):
        assert ProcessScanner().kill(pid) is False
