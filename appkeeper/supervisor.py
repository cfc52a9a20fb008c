"""
appkeeper - Authenticated operations over catalog, processes and launchers.

Copyright (C) 2025 Andreas Vogler

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.
"""

import logging
import threading

from .auth import AuthStore, Token
from .catalog import ApplicationCatalog, ReloadResult
from .correlator import combine_theory_and_reality
from .errors import (
    AuthError,
    ConfigError,
    Conflict,
    Forbidden,
    InternalError,
    NotFound,
    ScanError,
    ServiceUnavailable,
    SpawnError,
)
from .launcher import DEFAULT_HISTORY_LENGTH, Launcher
from .models import ApplicationView, LiveProcess
from .scanner import ProcessScanner

log = logging.getLogger(__name__)


class Supervisor:
    """The only place component errors become caller-visible statuses."""

    def __init__(
        self,
        auth: AuthStore,
        catalog: ApplicationCatalog,
        scanner: ProcessScanner = None,
        history_length: int = DEFAULT_HISTORY_LENGTH,
        launcher_factory=Launcher.start,
    ):
        self.auth = auth
        self.catalog = catalog
        self.scanner = scanner or ProcessScanner()
        self.history_length = history_length
        self._launcher_factory = launcher_factory
        self.launchers: dict[int, Launcher] = {}
        # Serializes starts across all applications so check-then-spawn is atomic
        self.start_lock = threading.Lock()

    def _authenticate(self, token_id: str, action: str = None) -> Token:
        token = self.auth.find_valid_token(token_id) if token_id else None
        if token is None:
            raise Forbidden("invalid or expired token")
        if action:
            log.info("%s by %s", action, token.username)
        return token

    def _scan(self) -> list[LiveProcess]:
        try:
            return self.scanner.scan()
        except ScanError as e:
            log.error("Process scan failed: %s", e)
            raise InternalError(str(e)) from e

    def _view(self, app_id: int) -> ApplicationView:
        definition = self.catalog.find(app_id)
        if definition is None:
            raise NotFound(f"no application with id {app_id}")
        return combine_theory_and_reality([definition], self._scan())[0]

    def login(self, username: str, password: str) -> Token:
        try:
            ok = self.auth.auth(username, password)
        except AuthError as e:
            log.error("Login of %s failed: %s", username, e)
            raise InternalError("credential verification failed") from e
        if not ok:
            log.warning("Rejected login for %s", username)
            raise Forbidden("wrong username or password")
        return self.auth.create_token(username)

    def list_processes(self, token_id: str) -> list[LiveProcess]:
        self._authenticate(token_id)
        return self._scan()

    def delete_process(self, token_id: str, pid: int):
        self._authenticate(token_id, f"DeleteProcess {pid}")
        try:
            found = self.scanner.kill(pid)
        except ScanError as e:
            raise InternalError(str(e)) from e
        if not found:
            raise NotFound(f"no process with pid {pid}")

    def list_applications(self, token_id: str) -> list[ApplicationView]:
        self._authenticate(token_id)
        return combine_theory_and_reality(self.catalog.find_all(), self._scan())

    def start_application(self, token_id: str, app_id: int) -> ApplicationView:
        self._authenticate(token_id, f"StartApplication {app_id}")

        with self.start_lock:
            view = self._view(app_id)
            if view.instances:
                raise Conflict(f"application {app_id} already has {len(view.instances)} running instance(s)")

            # A launcher left from an instance that has since exited
            stale = self.launchers.pop(app_id, None)
            if stale is not None:
                stale.terminate()

            try:
                launcher = self._launcher_factory(view.definition, self.history_length)
            except SpawnError as e:
                log.error("%s", e)
                raise ServiceUnavailable(str(e)) from e
            self.launchers[app_id] = launcher

            return self._view(app_id)

    def get_output(self, token_id: str, app_id: int) -> list[str]:
        self._authenticate(token_id)
        launcher = self.launchers.get(app_id)
        if launcher is None:
            raise NotFound(f"application {app_id} was not started here")
        return launcher.query()

    def reload_catalog(self, token_id: str) -> ReloadResult:
        self._authenticate(token_id, "ReloadCatalog")
        try:
            result = self.catalog.reload()
        except ConfigError as e:
            log.error("Catalog reload failed, keeping previous catalog: %s", e)
            raise ServiceUnavailable(str(e)) from e
        return result

    def shutdown(self):
        """Stop capturing output of all launchers. Managed processes keep running."""
        log.info("Shutting down supervisor...")
        with self.start_lock:
            launchers = list(self.launchers.values())
            self.launchers.clear()
        for launcher in launchers:
            launcher.terminate()
        log.info("Supervisor stopped. Managed processes continue running.")
