"""Exclusion and allowlist matching."""

from __future__ import annotations

import pytest

from openclaw_sec.paths import compile_allowlist, glob_to_regex, is_excluded, is_path_allowed


@pytest.mark.parametrize(
    ("path", "expected"),
    [
        ("run.log", True),
        ("sub/run.log", True),
        ("./deep/sub/run.log", True),
        ("run.log.txt", False),
    ],
)
def test_basename_glob_exclusion(path: str, expected: bool) -> None:
    assert is_excluded(path, ["*.log"]) is expected


def test_literal_name_rule_matches_basename() -> None:
    assert is_excluded("pkg/secrets.env", ["secrets.env"])
    assert not is_excluded("pkg/other.env", ["secrets.env"])


def test_slash_rule_matches_full_path_with_and_without_dot_prefix() -> None:
    rules = ["docs/**"]
    assert is_excluded("docs/a/b.md", rules)
    assert is_excluded("./docs/x.md", rules)
    assert not is_excluded("src/docs.md", rules)


def test_backslashes_are_normalized() -> None:
    assert is_excluded("docs\\guide\\index.md", ["docs/**"])


def test_prefix_fallback_over_excludes() -> None:
    # The glob alone would not match a nested .py file; the prefix does.
    assert is_excluded("build/deep/x.py", ["build/*.tmp"])


def test_untranslatable_exclude_rule_is_not_fatal() -> None:
    assert not is_excluded("src/app.py", ["a/[b"])
    assert is_excluded("a/[b/c.txt", ["a/[b"])


def test_glob_to_regex_star_does_not_cross_separators() -> None:
    pattern = glob_to_regex("src/*.py")
    assert pattern.match("src/a.py")
    assert not pattern.match("src/pkg/a.py")
    assert glob_to_regex("src/**").match("src/pkg/a.py")


def test_allowlist_directory_prefix() -> None:
    matchers = compile_allowlist(["scripts/"])
    assert is_path_allowed("scripts/a.js", matchers)
    assert not is_path_allowed("docs/b.md", matchers)


def test_allowlist_ignores_comments_and_blank_lines() -> None:
    matchers = compile_allowlist(["# tooling", "", "   ", "src/*.py"])
    assert len(matchers) == 1
    assert is_path_allowed("./src/a.py", matchers)
    assert not is_path_allowed("src/pkg/a.py", matchers)


def test_empty_allowlist_allows_nothing() -> None:
    assert not is_path_allowed("README.md", compile_allowlist([]))
    assert not is_path_allowed("README.md", compile_allowlist(["# only comments"]))


def test_untranslatable_allowlist_rule_falls_back_to_literal_match() -> None:
    matchers = compile_allowlist(["foo[bar"])
    assert is_path_allowed("foo[bar", matchers)
    assert is_path_allowed("nested/foo[bar", matchers)
    assert not is_path_allowed("foob", matchers)
