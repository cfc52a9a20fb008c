#!/usr/bin/env python3
"""
appkeeper - Entry point.

Copyright (C) 2025 Andreas Vogler

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.

This program is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
GNU General Public License for more details.

You should have received a copy of the GNU General Public License
along with this program.  If not, see <https://www.gnu.org/licenses/>.
"""

import argparse
import logging
import signal
import sys
import threading
from http.server import ThreadingHTTPServer

from .auth import AuthStore, register
from .catalog import ApplicationCatalog
from .config import DEFAULT_CONFIG_PATH, Settings
from .errors import AppKeeperError
from .scanner import ProcessScanner
from .supervisor import Supervisor
from .web_handler import WebHandler

log = logging.getLogger("appkeeper")


def format_bytes(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    elif size < 1024 * 1024:
        return f"{size / 1024:.1f} KiB"
    elif size < 1024 * 1024 * 1024:
        return f"{size / (1024 * 1024):.1f} MiB"
    return f"{size / (1024 * 1024 * 1024):.1f} GiB"


def print_scan(exe_suffix: str = None):
    processes = ProcessScanner().scan()
    if exe_suffix:
        processes = [p for p in processes if p.path.endswith(exe_suffix)]
        if len(processes) > 1:
            log.warning("%d processes match suffix %s", len(processes), exe_suffix)
    for p in processes:
        print(f"{p.pid}({p.ppid})\t{p.path}\t{format_bytes(p.rss)}\t{format_bytes(p.pss)}\t{list(p.args)}")


def serve(settings: Settings):
    auth = AuthStore.from_shadow_file(settings.shadow_path, token_ttl=settings.token_ttl)
    catalog = ApplicationCatalog(settings.catalog_path)
    supervisor = Supervisor(auth, catalog, ProcessScanner(), history_length=settings.history_length)
    WebHandler.supervisor = supervisor

    server = ThreadingHTTPServer((settings.web_host, settings.web_port), WebHandler)
    server.daemon_threads = True

    def signal_handler(sig, frame):
        # shutdown() blocks until serve_forever returns, so it cannot run on the serving thread
        threading.Thread(target=server.shutdown, daemon=True).start()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    log.info("appkeeper listening on http://%s:%d", settings.web_host, settings.web_port)
    try:
        server.serve_forever()
    finally:
        server.server_close()
        supervisor.shutdown()


def main(argv=None):
    parser = argparse.ArgumentParser(description="Keep an eye on catalogued applications")
    parser.add_argument(
        "--config", default=DEFAULT_CONFIG_PATH,
        help=f"Settings file (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument("--new-username", help="Username of a shadow line to generate")
    parser.add_argument("--new-password", help="Password of a shadow line to generate")
    parser.add_argument("--scan", action="store_true", help="Print the process table and exit")
    parser.add_argument("--exe-suffix", help="With --scan, only show executables ending with this")
    args = parser.parse_args(argv)

    if args.new_username or args.new_password:
        if not (args.new_username and args.new_password):
            parser.error("--new-username and --new-password go together")
        print(register(args.new_username, args.new_password))
        return 0

    try:
        settings = Settings(args.config)
    except AppKeeperError as e:
        logging.basicConfig(level=logging.INFO)
        log.error("%s", e)
        return 1

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s [appkeeper] %(levelname)s %(message)s",
    )

    try:
        if args.scan:
            print_scan(args.exe_suffix)
        else:
            serve(settings)
    except AppKeeperError as e:
        log.error("%s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
