"""Unified diff parsing for diff-mode scans."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from re import Match, compile
from typing import Literal

from openclaw_sec.findings import DIFF_PLACEHOLDER

DEV_NULL = "/dev/null"

HUNK_HEADER_RE = compile(
    r"^@@ -(?P<old_start>\d+)(?:,(?P<old_count>\d+))? "
    r"\+(?P<new_start>\d+)(?:,(?P<new_count>\d+))? @@(?P<section>.*)$"
)
LINE_BREAK_RE = compile(r"\r?\n")


@dataclass(slots=True)
class Line:
    """A single line within a diff hunk."""

    kind: Literal["context", "add", "delete", "meta"]
    content: str
    new_lineno: int | None


@dataclass(slots=True)
class Hunk:
    """A diff hunk."""

    new_start: int
    new_count: int
    lines: list[Line] = field(default_factory=list)


@dataclass(slots=True)
class FileDiff:
    """One file section of a unified diff."""

    old_path: str | None
    new_path: str | None
    hunks: list[Hunk] = field(default_factory=list)

    @property
    def target_path(self) -> str:
        """Post-image path, or the diff placeholder when there is none."""
        if self.new_path and self.new_path != DEV_NULL:
            return self.new_path
        return DIFF_PLACEHOLDER

    def added_lines(self) -> Iterator[Line]:
        for hunk in self.hunks:
            for line in hunk.lines:
                if line.kind == "add":
                    yield line


def parse_unified_diff(diff_text: str) -> list[FileDiff]:
    """Parse unified diff text into file/hunk/line models.

    Raises ``ValueError`` on a malformed hunk header.
    """
    files: list[FileDiff] = []
    current_file: FileDiff | None = None
    current_hunk: Hunk | None = None
    new_lineno = 0
    old_left = 0
    new_left = 0

    def flush_hunk() -> None:
        nonlocal current_hunk
        if current_file is not None and current_hunk is not None:
            current_file.hunks.append(current_hunk)
        current_hunk = None

    def flush_file() -> None:
        nonlocal current_file
        flush_hunk()
        if current_file is not None:
            files.append(current_file)
        current_file = None

    for raw_line in split_lines(diff_text):
        # Hunk bodies first: "+++ x" inside a hunk is an added line, not a header.
        if current_hunk is not None and (old_left > 0 or new_left > 0):
            if raw_line.startswith("+"):
                current_hunk.lines.append(
                    Line(kind="add", content=raw_line[1:], new_lineno=new_lineno)
                )
                new_lineno += 1
                new_left -= 1
                continue
            if raw_line.startswith("-"):
                current_hunk.lines.append(
                    Line(kind="delete", content=raw_line[1:], new_lineno=None)
                )
                old_left -= 1
                continue
            if raw_line.startswith(" ") or raw_line == "":
                current_hunk.lines.append(
                    Line(kind="context", content=raw_line[1:], new_lineno=new_lineno)
                )
                new_lineno += 1
                old_left -= 1
                new_left -= 1
                continue

        if raw_line.startswith("\\ ") and current_hunk is not None:
            current_hunk.lines.append(Line(kind="meta", content=raw_line[2:], new_lineno=None))
            continue

        if raw_line.startswith("diff --git "):
            flush_file()
            current_file = FileDiff(old_path=None, new_path=None)
            continue

        if raw_line.startswith("--- "):
            if current_file is None or current_file.new_path is not None or current_file.hunks:
                flush_file()
                current_file = FileDiff(old_path=None, new_path=None)
            flush_hunk()
            current_file.old_path = _parse_path(raw_line[4:])
            continue

        if raw_line.startswith("+++ "):
            if current_file is None or current_file.new_path is not None:
                flush_file()
                current_file = FileDiff(old_path=None, new_path=None)
            flush_hunk()
            current_file.new_path = _parse_path(raw_line[4:])
            continue

        if raw_line.startswith("@@ "):
            if current_file is None:
                current_file = FileDiff(old_path=None, new_path=None)
            flush_hunk()
            current_hunk, old_left = _parse_hunk_header(raw_line)
            new_lineno = current_hunk.new_start
            new_left = current_hunk.new_count
            continue

    flush_file()
    return files


def split_lines(text: str) -> list[str]:
    r"""Split on ``\n`` or ``\r\n`` only; other Unicode breaks stay inside a line."""
    lines = LINE_BREAK_RE.split(text)
    if lines and lines[-1] == "":
        lines.pop()
    return lines


def changed_paths(diff_text: str) -> list[str]:
    """Distinct post-image paths named by ``+++ b/<path>`` headers."""
    paths: list[str] = []
    for file_diff in parse_unified_diff(diff_text):
        path = file_diff.new_path
        if not path or path == DEV_NULL or path in paths:
            continue
        paths.append(path)
    return paths


def _parse_path(value: str) -> str:
    token = value.strip().split("\t", 1)[0]
    if token.startswith("a/") or token.startswith("b/"):
        return token[2:]
    return token


def _parse_hunk_header(header: str) -> tuple[Hunk, int]:
    match: Match[str] | None = HUNK_HEADER_RE.match(header)
    if match is None:
        raise ValueError(f"Invalid hunk header: {header}")

    old_count = int(match.group("old_count")) if match.group("old_count") else 1
    new_count = int(match.group("new_count")) if match.group("new_count") else 1
    hunk = Hunk(new_start=int(match.group("new_start")), new_count=new_count)
    return (hunk, old_count)
