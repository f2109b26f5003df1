"""Filesystem enumeration for file-mode scans."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable

from openclaw_sec.paths import is_excluded

logger = logging.getLogger(__name__)

SKIP_NAMES = frozenset(
    {
        ".git",
        "node_modules",
        ".venv",
        "venv",
        "__pycache__",
        ".pytest_cache",
        ".mypy_cache",
        ".tox",
        "dist",
        "build",
        ".next",
        ".DS_Store",
    }
)


def walk_files(root: str | os.PathLike[str], excludes: Iterable[str] = ()) -> list[str]:
    """Return files under ``root`` in enumeration order.

    Directories are traversed with an explicit stack. Infrastructure names in
    ``SKIP_NAMES`` are always skipped and excluded directories are pruned
    before descending.
    """
    rules = list(excludes)
    root_path = os.fspath(root)

    if os.path.isfile(root_path):
        return [] if is_excluded(root_path, rules) else [root_path]
    if not os.path.isdir(root_path):
        return []

    files: list[str] = []
    stack = [root_path]
    while stack:
        directory = stack.pop()
        if is_excluded(directory, rules):
            continue
        try:
            with os.scandir(directory) as entries:
                children = list(entries)
        except OSError as exc:
            logger.debug("skipping unreadable directory %s: %s", directory, exc)
            continue

        for entry in children:
            if entry.name in SKIP_NAMES:
                continue
            child = os.path.join(directory, entry.name)
            if is_excluded(child, rules):
                continue
            try:
                if entry.is_dir(follow_symlinks=False):
                    stack.append(child)
                elif entry.is_file():
                    files.append(child)
            except OSError:
                continue
    return files
