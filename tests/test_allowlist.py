"""Allowlist enforcement against synthetic git repositories."""

from __future__ import annotations

from pathlib import Path

from openclaw_sec.allowlist import enforce_allowlist, find_violations
from tests.helpers_git import commit_all, init_repo, stage, write_file


def test_find_violations_with_directory_prefix() -> None:
    assert find_violations(["scripts/a.js", "docs/b.md"], ["scripts/"]) == ["docs/b.md"]


def test_find_violations_skips_excluded_paths() -> None:
    changed = ["scripts/a.js", "docs/b.md", "build/out.log"]

    assert find_violations(changed, ["scripts/", "# docs are reviewed separately"], ["*.log"]) == [
        "docs/b.md"
    ]


def test_find_violations_with_no_rules_flags_everything() -> None:
    assert find_violations(["a.txt", "b.txt"], []) == ["a.txt", "b.txt"]


def test_outside_git_repo_warns(tmp_path: Path) -> None:
    findings = enforce_allowlist(tmp_path)

    assert [(item.id, item.severity, item.file) for item in findings] == [
        ("NOT_A_GIT_REPO", "warn", ".")
    ]


def test_missing_allowlist_blocks(tmp_path: Path) -> None:
    repo = init_repo(tmp_path)
    write_file(repo, "README.md", "hello\n")
    commit_all(repo, "baseline")

    findings = enforce_allowlist(repo)

    assert [(item.id, item.severity) for item in findings] == [("ALLOWLIST_MISSING", "block")]
    assert findings[0].file.endswith(".aoi-allowlist")


def test_staged_paths_outside_allowlist_block(tmp_path: Path) -> None:
    repo = init_repo(tmp_path)
    write_file(repo, ".aoi-allowlist", "# allowed\nscripts/\n")
    commit_all(repo, "baseline")

    write_file(repo, "scripts/a.js", "console.log(1)\n")
    write_file(repo, "docs/b.md", "# notes\n")
    stage(repo, "scripts/a.js", "docs/b.md")

    findings = enforce_allowlist(repo, "staged")

    assert [(item.id, item.severity, item.file) for item in findings] == [
        ("ALLOWLIST_VIOLATION", "block", "docs/b.md")
    ]
    assert "(staged)" in findings[0].excerpt


def test_unstaged_changes_are_ignored_in_staged_mode(tmp_path: Path) -> None:
    repo = init_repo(tmp_path)
    write_file(repo, ".aoi-allowlist", "scripts/\n")
    commit_all(repo, "baseline")
    write_file(repo, "docs/b.md", "# notes\n")

    assert enforce_allowlist(repo) == []
