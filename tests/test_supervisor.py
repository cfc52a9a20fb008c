"""Tests for the Supervisor operations and their error mapping."""

import threading
import time
from unittest.mock import MagicMock

import pytest

from appkeeper.catalog import ApplicationCatalog
from appkeeper.errors import (
    AuthError,
    Conflict,
    Forbidden,
    InternalError,
    NotFound,
    ScanError,
    ServiceUnavailable,
    SpawnError,
)
from appkeeper.models import LiveProcess
from appkeeper.scanner import ProcessScanner
from appkeeper.supervisor import Supervisor

from conftest import FakeLauncher, FakeScanner, write_catalog


@pytest.fixture
def catalog(tmp_path, executable):
    text = (
        f"- id: 1\n  name: server\n  exec:\n    path: {executable}\n    args: [--serve]\n    redirectPath: out.log\n"
        f"- id: 2\n  name: worker\n  exec:\n    path: {executable}\n    args: [--work]\n    redirectPath: out.log\n"
    )
    return ApplicationCatalog(write_catalog(tmp_path / "apps.yaml", text))


@pytest.fixture
def scanner():
    return FakeScanner([LiveProcess(pid=1, ppid=0, path="/sbin/init", args=("/sbin/init",))])


@pytest.fixture
def spawned(scanner, executable):
    """Launcher factory that makes the started application visible to the scanner."""
    calls = []

    def factory(definition, history_length):
        calls.append(definition.id)
        pid = 1000 + len(calls)
        scanner.processes.append(
            LiveProcess(pid=pid, ppid=1, path=str(executable), args=(str(executable), *definition.exec.args))
        )
        return FakeLauncher(definition, pid)

    factory.calls = calls
    return factory


@pytest.fixture
def supervisor(auth_store, catalog, scanner, spawned):
    return Supervisor(auth_store, catalog, scanner, history_length=10, launcher_factory=spawned)


@pytest.fixture
def token(supervisor):
    return supervisor.login("alice", "wonderland").id


class TestLogin:
    def test_success(self, supervisor):
        token = supervisor.login("alice", "wonderland")
        assert token.username == "alice"
        assert supervisor.auth.find_valid_token(token.id) == token

    def test_wrong_password_and_unknown_user_look_alike(self, supervisor):
        with pytest.raises(Forbidden) as wrong_password:
            supervisor.login("alice", "nope")
        with pytest.raises(Forbidden) as unknown_user:
            supervisor.login("mallory", "nope")
        assert wrong_password.value.message == unknown_user.value.message
        assert "nope" not in wrong_password.value.message

    def test_verification_failure_is_internal(self, supervisor):
        supervisor.auth = MagicMock()
        supervisor.auth.auth.side_effect = AuthError("bad hash")
        with pytest.raises(InternalError):
            supervisor.login("alice", "wonderland")


class TestAuthentication:
    @pytest.mark.parametrize(
        "operation",
        [
            lambda s, t: s.list_processes(t),
            lambda s, t: s.delete_process(t, 1),
            lambda s, t: s.list_applications(t),
            lambda s, t: s.start_application(t, 1),
            lambda s, t: s.reload_catalog(t),
            lambda s, t: s.get_output(t, 1),
        ],
    )
    @pytest.mark.parametrize("bad_token", ["", "not-a-token"])
    def test_forbidden_before_touching_state(self, supervisor, scanner, spawned, operation, bad_token):
        with pytest.raises(Forbidden):
            operation(supervisor, bad_token)
        assert scanner.scan_calls == 0
        assert scanner.killed == []
        assert spawned.calls == []


class TestProcesses:
    def test_list_processes(self, supervisor, token, scanner):
        assert supervisor.list_processes(token) == scanner.processes

    def test_scan_failure(self, supervisor, token, scanner):
        scanner.scan = MagicMock(side_effect=ScanError("boom"))
        with pytest.raises(InternalError):
            supervisor.list_processes(token)

    def test_delete_process(self, supervisor, token, scanner):
        supervisor.delete_process(token, 1)
        assert scanner.killed == [1]

    def test_delete_unknown_process(self, supervisor, token):
        with pytest.raises(NotFound):
            supervisor.delete_process(token, 4242)

    def test_delete_negative_pid(self, auth_store, catalog, token):
        supervisor = Supervisor(auth_store, catalog, ProcessScanner())
        with pytest.raises(NotFound):
            supervisor.delete_process(token, -1)

    def test_delete_kill_failure(self, supervisor, token, scanner):
        scanner.kill = MagicMock(side_effect=ScanError("permission denied"))
        with pytest.raises(InternalError):
            supervisor.delete_process(token, 1)


class TestApplications:
    def test_list_applications(self, supervisor, token):
        views = supervisor.list_applications(token)
        assert [v.definition.name for v in views] == ["server", "worker"]
        assert all(v.instances == [] for v in views)

    def test_start_application(self, supervisor, token, spawned):
        view = supervisor.start_application(token, 1)
        assert spawned.calls == [1]
        assert [node.process.pid for node in view.instances] == [1001]
        assert supervisor.launchers[1].pid == 1001

    def test_start_running_application_conflicts(self, supervisor, token, spawned):
        supervisor.start_application(token, 1)
        with pytest.raises(Conflict):
            supervisor.start_application(token, 1)
        assert spawned.calls == [1]

    def test_start_other_application_is_independent(self, supervisor, token):
        supervisor.start_application(token, 1)
        view = supervisor.start_application(token, 2)
        assert len(view.instances) == 1
        assert set(supervisor.launchers) == {1, 2}

    def test_start_unknown_application(self, supervisor, token):
        with pytest.raises(NotFound):
            supervisor.start_application(token, 99)

    def test_spawn_failure(self, supervisor, token):
        supervisor._launcher_factory = MagicMock(side_effect=SpawnError("no such file"))
        with pytest.raises(ServiceUnavailable):
            supervisor.start_application(token, 1)
        assert supervisor.launchers == {}

    def test_restart_replaces_stale_launcher(self, supervisor, token, scanner):
        supervisor.start_application(token, 1)
        stale = supervisor.launchers[1]
        scanner.kill(stale.pid)

        supervisor.start_application(token, 1)

        assert stale.terminated
        assert supervisor.launchers[1] is not stale

    def test_concurrent_starts_yield_one_launcher(self, supervisor, token, spawned):
        def slow_factory(definition, history_length):
            time.sleep(0.2)
            return spawned(definition, history_length)

        supervisor._launcher_factory = slow_factory
        barrier = threading.Barrier(2)
        outcomes = []

        def start():
            barrier.wait()
            try:
                supervisor.start_application(token, 1)
                outcomes.append("started")
            except Conflict:
                outcomes.append("conflict")

        threads = [threading.Thread(target=start) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(outcomes) == ["conflict", "started"]
        assert spawned.calls == [1]

    def test_get_output(self, supervisor, token):
        supervisor.start_application(token, 1)
        assert supervisor.get_output(token, 1) == ["line from server"]

    def test_get_output_without_launcher(self, supervisor, token):
        with pytest.raises(NotFound):
            supervisor.get_output(token, 1)

    def test_shutdown_terminates_launchers(self, supervisor, token):
        supervisor.start_application(token, 1)
        supervisor.start_application(token, 2)
        launchers = list(supervisor.launchers.values())

        supervisor.shutdown()

        assert all(launcher.terminated for launcher in launchers)
        assert supervisor.launchers == {}


class TestReload:
    def test_reload(self, supervisor, token, catalog):
        result = supervisor.reload_catalog(token)
        assert result.after.item_count == 2

    def test_reload_failure_keeps_catalog(self, supervisor, token, catalog):
        before = catalog.find_all()
        write_catalog(catalog.config_path, "- id: [broken")
        with pytest.raises(ServiceUnavailable):
            supervisor.reload_catalog(token)
        assert catalog.find_all() is before
