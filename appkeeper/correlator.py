"""
appkeeper - Match catalog definitions against live processes.

Copyright (C) 2025 Andreas Vogler

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.
"""

import logging
import os
from collections import defaultdict
from typing import Iterable

from .models import ApplicationDefinition, ApplicationView, LiveProcess, ProcessTreeNode

log = logging.getLogger(__name__)


def _stat(path: str, what: str, subject):
    try:
        return os.stat(path)
    except FileNotFoundError:
        return None
    except OSError as e:
        log.warning("Ignoring %s %s with bad stat on %s: %s", what, subject, path, e)
        return None


def similar(definition: ApplicationDefinition, process: LiveProcess) -> bool:
    """True when `process` is an instance of `definition`.

    Same executable basename, same file on disk (device and inode) and the
    process argv after argv[0] equal to the configured args.
    """
    if os.path.basename(definition.exec.path) != os.path.basename(process.path):
        return False

    definition_stat = _stat(definition.absolute_path(), "application", definition.id)
    if definition_stat is None:
        return False
    process_stat = _stat(process.path, "process", process.pid)
    if process_stat is None:
        return False
    if not os.path.samestat(definition_stat, process_stat):
        return False

    return tuple(process.args[1:]) == tuple(definition.exec.args)


def _attach_children(roots: list[ProcessTreeNode], by_ppid: dict[int, list[LiveProcess]]):
    # Breadth-first, level by level; process ancestry has no cycles
    queue = roots
    while queue:
        next_level = []
        for parent in queue:
            parent.children = [ProcessTreeNode(child) for child in by_ppid.get(parent.process.pid, ())]
            next_level.extend(parent.children)
        queue = next_level


def combine_theory_and_reality(
    definitions: Iterable[ApplicationDefinition],
    processes: Iterable[LiveProcess],
) -> list[ApplicationView]:
    """Build one view per definition, with matched processes as tree roots."""
    definitions = list(definitions)
    processes = list(processes)

    by_ppid: dict[int, list[LiveProcess]] = defaultdict(list)
    for process in processes:
        by_ppid[process.ppid].append(process)

    roots: dict[int, list[ProcessTreeNode]] = defaultdict(list)
    for process in processes:
        for definition in definitions:
            if similar(definition, process):
                roots[definition.id].append(ProcessTreeNode(process))

    views = []
    for definition in definitions:
        instances = roots.get(definition.id, [])
        _attach_children(instances, by_ppid)
        views.append(ApplicationView(definition=definition, instances=instances))
    return views
