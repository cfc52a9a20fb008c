"""
appkeeper - Launch a managed application and capture its output.

Copyright (C) 2025 Andreas Vogler

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.
"""

import logging
import queue
import subprocess
import threading

from .errors import FatalStreamError, SpawnError
from .models import ApplicationDefinition
from .ring import RingBuffer

log = logging.getLogger(__name__)

DEFAULT_HISTORY_LENGTH = 1000
STDERR_MARKER = "!"
# Lines that may wait in the inbox before the readers stop pulling from the pipes
INBOX_LINES = 64
_SLOT_POLL_SECONDS = 0.1

# Inbox message kinds
_LINE = "line"
_QUERY = "query"
_STOP = "stop"


class Launcher:
    """Supervises the output of one started application.

    Two reader threads forward stdout and stderr lines into a single inbox.
    One owner thread drains the inbox in order: it is the only code touching
    the ring buffer and the redirect file, and it answers queries, so a query
    always sees every line accepted before it.

    Readers need a free line slot before they enqueue, so a slow owner stalls
    the child at its pipe instead of growing the inbox.
    """

    def __init__(self, definition: ApplicationDefinition, history_length: int = DEFAULT_HISTORY_LENGTH):
        self.definition = definition
        self._buffer: RingBuffer[str] = RingBuffer(history_length)
        self._inbox: queue.Queue = queue.Queue()
        self._line_slots = threading.Semaphore(INBOX_LINES)
        self._lock = threading.Lock()
        self._closed = threading.Event()
        self._process: subprocess.Popen = None
        self._redirect = None
        self._owner: threading.Thread = None

    @classmethod
    def start(cls, definition: ApplicationDefinition, history_length: int = DEFAULT_HISTORY_LENGTH) -> "Launcher":
        """Spawn the application and start capturing. Raises SpawnError."""
        launcher = cls(definition, history_length)
        launcher._spawn()
        return launcher

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process else None

    @property
    def is_alive(self) -> bool:
        """True while output is still being captured."""
        return self._owner is not None and self._owner.is_alive() and not self._closed.is_set()

    @property
    def returncode(self) -> int | None:
        return self._process.poll() if self._process else None

    def _spawn(self):
        name = self.definition.name
        if not self.definition.exec.redirect_path:
            raise SpawnError(f"[{name}] no redirectPath configured")

        redirect_path = self.definition.absolute_redirect_path()
        try:
            self._redirect = open(redirect_path, "w", encoding="utf-8")
        except OSError as e:
            raise SpawnError(f"[{name}] open redirect file {redirect_path}: {e}") from e

        cmd = [self.definition.absolute_path(), *self.definition.exec.args]
        try:
            self._process = subprocess.Popen(
                cmd,
                cwd=self.definition.exec.working_directory or None,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
                start_new_session=True,  # Keep running when the supervisor goes away
            )
        except (OSError, ValueError, subprocess.SubprocessError) as e:
            self._redirect.close()
            self._redirect = None
            raise SpawnError(f"[{name}] failed to start {cmd[0]}: {e}") from e

        app_id = self.definition.id
        self._owner = threading.Thread(target=self._own, daemon=True, name=f"launcher-{app_id}-owner")
        self._owner.start()
        threading.Thread(
            target=self._read, args=(self._process.stdout, "", True),
            daemon=True, name=f"launcher-{app_id}-stdout",
        ).start()
        threading.Thread(
            target=self._read, args=(self._process.stderr, STDERR_MARKER, False),
            daemon=True, name=f"launcher-{app_id}-stderr",
        ).start()
        log.info("[%s] Started with PID %d, output to %s", name, self._process.pid, redirect_path)

    def _read(self, stream, marker: str, reap: bool):
        name = self.definition.name
        try:
            for line in stream:
                if not self._take_slot():
                    break
                self._inbox.put((_LINE, marker + line.rstrip("\r\n")))
        except (OSError, ValueError) as e:
            log.debug("[%s] Output reader stopped: %s", name, e)
        finally:
            stream.close()

        if reap and not self._closed.is_set():
            returncode = self._process.wait()
            log.info("[%s] Process %d exited with code %d", name, self._process.pid, returncode)

    def _take_slot(self) -> bool:
        while not self._line_slots.acquire(timeout=_SLOT_POLL_SECONDS):
            if self._closed.is_set():
                return False
        return not self._closed.is_set()

    def _own(self):
        try:
            while True:
                kind, payload = self._inbox.get()
                if kind == _LINE:
                    self._line_slots.release()
                if self._closed.is_set():
                    if kind == _QUERY:
                        payload.put([])
                    break
                if kind == _LINE:
                    self._buffer.add(payload)
                    self._write(payload)
                elif kind == _QUERY:
                    payload.put(self._buffer.get())
                else:
                    break
        except FatalStreamError:
            log.exception("[%s] Output capture aborted", self.definition.name)
        finally:
            with self._lock:
                self._closed.set()
            self._drain()
            try:
                self._redirect.close()
            except OSError as e:
                log.warning("[%s] Failed to close redirect file: %s", self.definition.name, e)

    def _write(self, line: str):
        try:
            self._redirect.write(line + "\n")
            self._redirect.flush()
        except (OSError, ValueError) as e:
            raise FatalStreamError(f"write {self._redirect.name}: {e}") from e

    def _drain(self):
        # Pending queries get an empty answer; pending lines are dropped
        while True:
            try:
                kind, payload = self._inbox.get_nowait()
            except queue.Empty:
                return
            if kind == _QUERY:
                payload.put([])

    def query(self) -> list[str]:
        """Return the captured lines, oldest first. Empty once terminated."""
        with self._lock:
            if self._closed.is_set():
                return []
            reply: queue.Queue = queue.Queue(maxsize=1)
            self._inbox.put((_QUERY, reply))
        return reply.get()

    def terminate(self, timeout: float | None = 5.0):
        """Stop capturing output and close the redirect file.

        The application process itself is left running.
        """
        with self._lock:
            if self._closed.is_set():
                return
            self._closed.set()
            self._inbox.put((_STOP, None))
        if self._owner is not None and self._owner is not threading.current_thread():
            self._owner.join(timeout=timeout)
        log.info("[%s] Output capture terminated", self.definition.name)
