"""
HTTP handler for appkeeper.

Copyright (C) 2025 Andreas Vogler

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.
"""

import json
import logging
import re
from http.server import BaseHTTPRequestHandler
from urllib.parse import urlparse

from .errors import OperationError

log = logging.getLogger(__name__)

PROCESS_PATH = re.compile(r"^/v1/processes/(?P<pid>[^/]+)$")
INSTANCES_PATH = re.compile(r"^/v1/applications/(?P<id>[^/]+)/instances$")
OUTPUT_PATH = re.compile(r"^/v1/applications/(?P<id>[^/]+)/output$")


class BadRequest(Exception):
    pass


def _parse_id(raw: str, what: str) -> int:
    try:
        return int(raw)
    except ValueError:
        raise BadRequest(f"{what} must be an integer, got {raw!r}") from None


class WebHandler(BaseHTTPRequestHandler):
    supervisor = None  # Will be set by main()

    def log_message(self, format, *args):
        log.debug("%s - %s", self.address_string(), format % args)

    def _send_json(self, status: int, data):
        body = json.dumps(data).encode()
        self.send_response(status)
        self.send_header("Content-type", "application/json; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _send_empty(self, status: int):
        self.send_response(status)
        self.send_header("Content-Length", "0")
        self.end_headers()

    def _token(self) -> str:
        header = self.headers.get("Authorization", "")
        scheme, _, value = header.partition(" ")
        if scheme.lower() != "bearer":
            return ""
        return value.strip()

    def _read_json(self) -> dict:
        length = _parse_id(self.headers.get("Content-Length", "0") or "0", "Content-Length")
        if length < 0:
            raise BadRequest("Content-Length must not be negative")
        raw = self.rfile.read(length) if length else b""
        try:
            data = json.loads(raw or b"{}")
        except json.JSONDecodeError as e:
            raise BadRequest(f"cannot parse request body: {e}") from e
        if not isinstance(data, dict):
            raise BadRequest("request body must be a JSON object")
        return data

    def _dispatch(self, route):
        try:
            route()
        except OperationError as e:
            self._send_json(e.status, {"success": False, "message": e.message})
        except BadRequest as e:
            self._send_json(400, {"success": False, "message": str(e)})
        except Exception:
            log.exception("Unexpected failure on %s %s", self.command, self.path)
            self._send_json(500, {"success": False, "message": "internal error"})

    def _not_found(self):
        log.warning("Unmatched request %s %s", self.command, self.path)
        self._send_json(404, {"success": False, "message": f"unsupported request on {self.command} {self.path}"})

    def do_GET(self):
        path = urlparse(self.path).path
        output = OUTPUT_PATH.match(path)
        if path == "/v1/processes":
            self._dispatch(self._get_processes)
        elif path == "/v1/applications":
            self._dispatch(self._get_applications)
        elif output:
            self._dispatch(lambda: self._get_output(output.group("id")))
        else:
            self._not_found()

    def do_POST(self):
        path = urlparse(self.path).path
        if path == "/v1/session":
            self._dispatch(self._post_session)
        else:
            self._not_found()

    def do_PUT(self):
        path = urlparse(self.path).path
        instances = INSTANCES_PATH.match(path)
        if path == "/v1/dashboard/app-config/reload":
            self._dispatch(self._put_reload)
        elif instances:
            self._dispatch(lambda: self._put_instances(instances.group("id")))
        else:
            self._not_found()

    def do_DELETE(self):
        path = urlparse(self.path).path
        process = PROCESS_PATH.match(path)
        if process:
            self._dispatch(lambda: self._delete_process(process.group("pid")))
        else:
            self._not_found()

    def _post_session(self):
        body = self._read_json()
        username = body.get("username")
        password = body.get("password")
        if not isinstance(username, str) or not isinstance(password, str):
            raise BadRequest("username and password are required")
        token = self.supervisor.login(username, password)
        self._send_json(200, token.to_dict())

    def _get_processes(self):
        processes = self.supervisor.list_processes(self._token())
        self._send_json(200, [p.to_dict() for p in processes])

    def _delete_process(self, raw_pid: str):
        pid = _parse_id(raw_pid, "pid")
        self.supervisor.delete_process(self._token(), pid)
        self._send_empty(204)

    def _get_applications(self):
        views = self.supervisor.list_applications(self._token())
        self._send_json(200, [v.to_dict() for v in views])

    def _put_instances(self, raw_id: str):
        app_id = _parse_id(raw_id, "application id")
        view = self.supervisor.start_application(self._token(), app_id)
        self._send_json(200, view.to_dict())

    def _get_output(self, raw_id: str):
        app_id = _parse_id(raw_id, "application id")
        lines = self.supervisor.get_output(self._token(), app_id)
        self._send_json(200, {"id": app_id, "lines": lines})

    def _put_reload(self):
        result = self.supervisor.reload_catalog(self._token())
        self._send_json(200, result.to_dict())
