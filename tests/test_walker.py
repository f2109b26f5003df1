from __future__ import annotations

from pathlib import Path

from openclaw_sec.walker import walk_files
from tests.helpers_git import write_file


def _relative(paths: list[str], root: Path) -> set[str]:
    return {Path(path).relative_to(root).as_posix() for path in paths}


def test_walk_skips_infrastructure_directories(tmp_path: Path) -> None:
    write_file(tmp_path, "src/app.py", "print('hi')\n")
    write_file(tmp_path, "src/pkg/util.py", "x = 1\n")
    write_file(tmp_path, "node_modules/dep/index.js", "module.exports = 1\n")
    write_file(tmp_path, ".git/config", "[core]\n")
    write_file(tmp_path, "pkg/__pycache__/mod.pyc", "bytes\n")

    found = _relative(walk_files(tmp_path), tmp_path)

    assert found == {"src/app.py", "src/pkg/util.py"}


def test_walk_prunes_excluded_directories_and_files(tmp_path: Path) -> None:
    write_file(tmp_path, "keep.txt", "ok\n")
    write_file(tmp_path, "logs/run.log", "line\n")
    write_file(tmp_path, "vendor/lib/code.js", "x\n")

    found = _relative(walk_files(tmp_path, ["*.log", "vendor"]), tmp_path)

    assert found == {"keep.txt"}


def test_file_root_is_returned_unless_excluded(tmp_path: Path) -> None:
    target = write_file(tmp_path, "notes.md", "hello\n")

    assert walk_files(target) == [str(target)]
    assert walk_files(target, ["*.md"]) == []


def test_missing_root_yields_nothing(tmp_path: Path) -> None:
    assert walk_files(tmp_path / "absent") == []
