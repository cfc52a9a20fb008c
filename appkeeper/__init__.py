"""
appkeeper - Correlate, launch and watch catalogued applications behind a token-protected API.

Copyright (C) 2025 Andreas Vogler

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.
"""

from .auth import AuthStore
from .catalog import ApplicationCatalog
from .launcher import Launcher
from .ring import RingBuffer
from .supervisor import Supervisor
from .web_handler import WebHandler

__version__ = "1.0.0"
__all__ = ["AuthStore", "ApplicationCatalog", "Launcher", "RingBuffer", "Supervisor", "WebHandler"]
