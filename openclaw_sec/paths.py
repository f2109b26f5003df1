"""Path exclusion and allowlist matching."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable
from pathlib import PurePosixPath

logger = logging.getLogger(__name__)

PathMatcher = Callable[[str], bool]


def normalize_path(path: str) -> str:
    """Rewrite backslashes to forward slashes."""
    return str(path or "").replace("\\", "/")


def strip_dot_prefix(path: str) -> str:
    """Drop a leading ``./``."""
    if path.startswith("./"):
        return path[2:]
    return path


def glob_to_regex(rule: str) -> re.Pattern[str]:
    """Translate a path glob into an anchored regex.

    ``**`` crosses separators, ``*`` does not. Everything else keeps its
    regex meaning except ``.``, which is literal. Raises ``re.error`` for
    rules that do not translate into a valid pattern.
    """
    translated = (
        rule.replace(".", r"\.")
        .replace("**", "\x00")
        .replace("*", "[^/]*")
        .replace("\x00", ".*")
    )
    return re.compile(f"^{translated}$")


def is_excluded(path: str, exclude_rules: Iterable[str]) -> bool:
    """Return True when any exclude rule matches ``path``."""
    normalized = normalize_path(path)
    stripped = strip_dot_prefix(normalized)
    basename = PurePosixPath(normalized).name

    for raw_rule in exclude_rules:
        rule = normalize_path(raw_rule)
        if not rule:
            continue

        if "/" not in rule:
            if basename == rule or _glob_matches(rule, basename):
                return True
        elif _glob_matches(rule, normalized) or _glob_matches(rule, stripped):
            return True

        # Literal prefix fallback. Broader than the glob itself.
        prefix = rule.split("*", 1)[0]
        if prefix and (normalized.startswith(prefix) or stripped.startswith(prefix)):
            return True
    return False


def compile_allowlist(lines: Iterable[str]) -> list[PathMatcher]:
    """Compile allowlist lines into path predicates.

    Blank lines and ``#`` comments are ignored. A rule ending in ``/`` is a
    directory prefix; anything else is a glob, or a literal/basename-suffix
    match when the glob does not translate.
    """
    matchers: list[PathMatcher] = []
    for raw in lines:
        rule = normalize_path(raw.strip())
        if not rule or rule.startswith("#"):
            continue

        if rule.endswith("/"):
            matchers.append(_prefix_matcher(strip_dot_prefix(rule)))
            continue

        try:
            pattern = glob_to_regex(strip_dot_prefix(rule))
        except re.error:
            logger.debug("allowlist rule %r is not a valid glob; using literal match", rule)
            matchers.append(_literal_matcher(strip_dot_prefix(rule)))
            continue
        matchers.append(_regex_matcher(pattern))
    return matchers


def is_path_allowed(path: str, matchers: Iterable[PathMatcher]) -> bool:
    """Return True when any compiled allowlist predicate accepts ``path``."""
    candidate = strip_dot_prefix(normalize_path(path))
    return any(matcher(candidate) for matcher in matchers)


def _glob_matches(rule: str, value: str) -> bool:
    try:
        pattern = glob_to_regex(rule)
    except re.error:
        logger.debug("skipping exclude rule %r: not a valid glob", rule)
        return False
    return pattern.match(value) is not None


def _prefix_matcher(prefix: str) -> PathMatcher:
    return lambda path: path.startswith(prefix)


def _regex_matcher(pattern: re.Pattern[str]) -> PathMatcher:
    return lambda path: pattern.match(path) is not None


def _literal_matcher(literal: str) -> PathMatcher:
    return lambda path: path == literal or path.endswith("/" + literal)
