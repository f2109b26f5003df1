"""Changed-path allowlist enforcement for ``check`` runs."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

from openclaw_sec.diff_parser import changed_paths
from openclaw_sec.findings import SEVERITY_BLOCK, SEVERITY_WARN, Finding
from openclaw_sec.git import get_diff_text, get_repo_root, is_inside_work_tree
from openclaw_sec.paths import compile_allowlist, is_excluded, is_path_allowed

logger = logging.getLogger(__name__)

ALLOWLIST_FILENAME = ".aoi-allowlist"
MAX_VIOLATIONS = 30


def read_allowlist(path: Path) -> list[str]:
    """Return the stripped, non-blank lines of an allowlist file."""
    text = path.read_text(encoding="utf-8")
    return [line.strip() for line in text.splitlines() if line.strip()]


def find_violations(
    changed: Iterable[str],
    allow_lines: Iterable[str],
    excludes: Iterable[str] = (),
) -> list[str]:
    """Return changed paths that are neither excluded nor allowlisted.

    An allowlist without usable rules allows nothing.
    """
    rules = list(excludes)
    matchers = compile_allowlist(allow_lines)
    return [
        path
        for path in changed
        if not is_excluded(path, rules) and not is_path_allowed(path, matchers)
    ]


def enforce_allowlist(
    repo: Path = Path("."),
    diff_mode: str | None = None,
    excludes: Iterable[str] = (),
    allowlist_name: str = ALLOWLIST_FILENAME,
) -> list[Finding]:
    """Check the repository's changed paths against its allowlist file."""
    if not is_inside_work_tree(repo):
        return [
            Finding(
                id="NOT_A_GIT_REPO",
                severity=SEVERITY_WARN,
                file=".",
                line=0,
                pattern="git",
                excerpt="Not inside a git repository; repo-only checks skipped.",
            )
        ]

    root = get_repo_root(repo) or repo
    allowlist_path = root / allowlist_name
    if not allowlist_path.is_file():
        return [
            Finding(
                id="ALLOWLIST_MISSING",
                severity=SEVERITY_BLOCK,
                file=str(allowlist_path),
                line=0,
                pattern=allowlist_name,
                excerpt=f"Missing {allowlist_name} at repo root: {root}",
            )
        ]

    mode = diff_mode or "staged"
    changed = changed_paths(get_diff_text(repo, mode))
    violations = find_violations(changed, read_allowlist(allowlist_path), excludes)
    logger.info(
        "allowlist: %d changed path(s), %d violation(s) (%s)", len(changed), len(violations), mode
    )
    return [
        Finding(
            id="ALLOWLIST_VIOLATION",
            severity=SEVERITY_BLOCK,
            file=path,
            line=0,
            pattern=allowlist_name,
            excerpt=f"Changed file not allowed by {allowlist_name} ({mode})",
        )
        for path in violations[:MAX_VIOLATIONS]
    ]
