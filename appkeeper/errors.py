"""
appkeeper - Exception types.

Copyright (C) 2025 Andreas Vogler

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.
"""


class AppKeeperError(Exception):
    """Base class for errors raised by appkeeper components."""


class ConfigError(AppKeeperError):
    """A settings, catalog or shadow file is unreadable or malformed."""


class SpawnError(AppKeeperError):
    """An application could not be launched or its redirect file opened."""


class AuthError(AppKeeperError):
    """Credential verification failed for a reason other than a mismatch."""


class ScanError(AppKeeperError):
    """The process table could not be read, or a process could not be killed."""


class FatalStreamError(AppKeeperError):
    """Captured output could not be written to the redirect file."""


class OperationError(Exception):
    """An error carrying the status a caller of the Supervisor gets to see."""

    status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class Forbidden(OperationError):
    status = 403


class NotFound(OperationError):
    status = 404


class Conflict(OperationError):
    status = 409


class InternalError(OperationError):
    status = 500


class ServiceUnavailable(OperationError):
    status = 503
