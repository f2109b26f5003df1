"""Git subprocess helpers.

Every public helper degrades to "feature unavailable" instead of raising:
a missing ``git`` binary or a failing command yields ``""``, ``False`` or
``None``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from subprocess import CalledProcessError, run

logger = logging.getLogger(__name__)

DIFF_MODES: dict[str, list[str]] = {
    "staged": ["diff", "--cached", "--no-color", "-U0"],
    "head": ["diff", "HEAD", "--no-color", "-U0"],
    "worktree": ["diff", "--no-color", "-U0"],
}


class GitError(RuntimeError):
    """Raised when git command execution fails."""


def is_inside_work_tree(repo: Path = Path(".")) -> bool:
    """Return True when ``repo`` is inside a git work tree."""
    try:
        return _run_git(repo, ["rev-parse", "--is-inside-work-tree"]).strip() == "true"
    except GitError as exc:
        logger.debug("not inside a git work tree: %s", exc)
        return False


def get_repo_root(repo: Path = Path(".")) -> Path | None:
    """Return the top-level directory of the work tree, if any."""
    try:
        top = _run_git(repo, ["rev-parse", "--show-toplevel"]).strip()
    except GitError as exc:
        logger.debug("cannot resolve git top-level: %s", exc)
        return None
    return Path(top) if top else None


def get_diff_text(repo: Path = Path("."), mode: str = "staged") -> str:
    """Return the zero-context unified diff for ``mode`` (empty when unavailable)."""
    args = DIFF_MODES.get(mode)
    if args is None:
        return ""
    try:
        return _run_git(repo, args)
    except GitError as exc:
        logger.debug("git diff (%s) unavailable: %s", mode, exc)
        return ""


def _run_git(repo: Path, args: list[str]) -> str:
    try:
        completed = run(
            ["git", *args],
            cwd=repo,
            check=True,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
        )
    except CalledProcessError as exc:
        stderr = (exc.stderr or "").strip()
        raise GitError(stderr or f"git {' '.join(args)} failed") from exc
    except OSError as exc:
        raise GitError(f"git is not available: {exc}") from exc

    return completed.stdout
