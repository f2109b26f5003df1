from __future__ import annotations

from pathlib import Path

from openclaw_sec.git import get_diff_text, get_repo_root, is_inside_work_tree
from tests.helpers_git import commit_all, init_repo, stage, write_file


def test_outside_a_repository_everything_degrades(tmp_path: Path) -> None:
    assert is_inside_work_tree(tmp_path) is False
    assert get_repo_root(tmp_path) is None
    assert get_diff_text(tmp_path, "staged") == ""


def test_diff_modes(tmp_path: Path) -> None:
    repo = init_repo(tmp_path)
    write_file(repo, "a.txt", "one\n")
    commit_all(repo, "baseline")
    write_file(repo, "a.txt", "two\n")
    write_file(repo, "b.txt", "new\n")
    stage(repo, "b.txt")

    assert is_inside_work_tree(repo) is True
    assert get_repo_root(repo).resolve() == repo.resolve()
    assert "+++ b/b.txt" in get_diff_text(repo, "staged")
    assert "+++ b/a.txt" not in get_diff_text(repo, "staged")
    assert "+++ b/a.txt" in get_diff_text(repo, "worktree")
    assert "+++ b/b.txt" in get_diff_text(repo, "head")
    assert get_diff_text(repo, "sideways") == ""
