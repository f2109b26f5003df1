"""Rule and URL scanning over files, free text, and unified diffs.

File-mode and diff-mode produce the same ``Finding`` shape. File-mode reports
1-based line numbers; diff-mode always reports line 0 because hunk offsets
are not carried into findings.
"""

from __future__ import annotations

import dataclasses
import logging
import re
from collections.abc import Iterable, Sequence
from pathlib import Path

from openclaw_sec.diff_parser import parse_unified_diff, split_lines
from openclaw_sec.findings import (
    MAX_EXCERPT_CHARS,
    SEVERITY_BLOCK,
    SEVERITY_WARN,
    Finding,
)
from openclaw_sec.paths import is_excluded, normalize_path, strip_dot_prefix
from openclaw_sec.rules import Rule, RuleSet
from openclaw_sec.urls import classify_url, extract_urls
from openclaw_sec.walker import walk_files

logger = logging.getLogger(__name__)

MAX_FILE_BYTES = 1024 * 1024
MAX_HITS_PER_FILE = 20
MAX_CORPUS_HITS = 50
MAX_DIFF_HITS = 30

MAX_URLS_PER_TEXT = 80
URL_HITS_PER_FILE = 10
MAX_FILE_URL_HITS = 40
URL_HITS_PER_DIFF_LINE = 5
MAX_DIFF_URL_HITS = 30

URL_FINDING_ID = "URL_SUSPICIOUS"
EGRESS_FINDING_ID = "EGRESS_PATTERN"

DEFAULT_SENSITIVE_MARKERS = ("/Users/", "/home/", "~/", ".config/", "/opt/", "/vault/")


def redact_excerpt(line: str, patterns: Iterable[re.Pattern[str]]) -> str:
    """Mask every match of every pattern with up to 12 ``*`` and clip to 240 chars."""
    redacted = line
    for pattern in patterns:
        redacted = pattern.sub(lambda match: "*" * min(12, len(match.group(0))), redacted)
    return redacted[:MAX_EXCERPT_CHARS]


def first_match(line: str, rules: Sequence[Rule]) -> Rule | None:
    for rule in rules:
        if rule.matches(line):
            return rule
    return None


def scan_text(
    rule_set: RuleSet,
    *,
    file_path: str,
    content: str,
    max_hits: int = MAX_HITS_PER_FILE,
) -> list[Finding]:
    """Scan ``content`` line by line; one finding per line, first rule wins."""
    findings: list[Finding] = []
    for lineno, line in enumerate(split_lines(content), start=1):
        rule = first_match(line, rule_set.rules)
        if rule is None:
            continue
        findings.append(_rule_finding(rule_set, rule, file_path=file_path, line=lineno, text=line))
        if len(findings) >= max_hits:
            logger.debug("hit cap %d reached in %s", max_hits, file_path)
            break
    return findings


def read_text_file(path: str) -> str | None:
    """Return file text, or None for unreadable, oversized, or binary files."""
    try:
        data = Path(path).read_bytes()
    except OSError as exc:
        logger.debug("skipping unreadable file %s: %s", path, exc)
        return None
    if len(data) > MAX_FILE_BYTES:
        logger.debug("skipping %s: %d bytes exceeds scan cap", path, len(data))
        return None
    if b"\x00" in data:
        return None
    return data.decode("utf-8", errors="replace")


def walk_corpus(roots: Iterable[str], excludes: Iterable[str] = ()) -> list[str]:
    """Walk every root once, dropping files already reached through an earlier root."""
    rules = list(excludes)
    seen: set[str] = set()
    files: list[str] = []
    for root in roots:
        for file_path in walk_files(root, rules):
            key = strip_dot_prefix(normalize_path(file_path))
            if key in seen:
                continue
            seen.add(key)
            files.append(file_path)
    return files


def scan_files(
    roots: Iterable[str],
    rule_set: RuleSet,
    excludes: Iterable[str] = (),
) -> list[Finding]:
    """Scan every text file under ``roots`` with ``rule_set``."""
    findings: list[Finding] = []
    for file_path in walk_corpus(roots, excludes):
        content = read_text_file(file_path)
        if content is None:
            continue
        findings.extend(scan_text(rule_set, file_path=file_path, content=content))
        if len(findings) >= MAX_CORPUS_HITS:
            logger.info("%s scan stopped at %d findings", rule_set.name, MAX_CORPUS_HITS)
            return findings[:MAX_CORPUS_HITS]
    return findings


def scan_diff(
    diff_text: str,
    rule_set: RuleSet,
    excludes: Iterable[str] = (),
) -> list[Finding]:
    """Scan only the added lines of a unified diff."""
    rules = list(excludes)
    findings: list[Finding] = []
    for file_diff in parse_unified_diff(diff_text):
        path = file_diff.target_path
        if is_excluded(path, rules):
            continue
        for line in file_diff.added_lines():
            rule = first_match(line.content, rule_set.rules)
            if rule is None:
                continue
            findings.append(_rule_finding(rule_set, rule, file_path=path, line=0, text=line.content))
            if len(findings) >= MAX_DIFF_HITS:
                return findings
    return findings


def scan_urls(*, file_path: str, content: str, max_hits: int = 30) -> list[Finding]:
    """Report URLs in ``content`` that carry at least one heuristic tag."""
    findings: list[Finding] = []
    for url in extract_urls(content, MAX_URLS_PER_TEXT):
        tags = classify_url(url)
        if not tags:
            continue
        findings.append(
            Finding(
                id=URL_FINDING_ID,
                severity=SEVERITY_WARN,
                file=file_path,
                line=0,
                pattern=",".join(tags),
                excerpt=url[:MAX_EXCERPT_CHARS],
            )
        )
        if len(findings) >= max_hits:
            break
    return findings


def scan_files_for_urls(roots: Iterable[str], excludes: Iterable[str] = ()) -> list[Finding]:
    findings: list[Finding] = []
    for file_path in walk_corpus(roots, excludes):
        content = read_text_file(file_path)
        if content is None:
            continue
        findings.extend(
            scan_urls(file_path=file_path, content=content, max_hits=URL_HITS_PER_FILE)
        )
        if len(findings) >= MAX_FILE_URL_HITS:
            return findings[:MAX_FILE_URL_HITS]
    return findings


def scan_diff_urls(
    diff_text: str,
    excludes: Iterable[str] = (),
    max_hits: int = MAX_DIFF_URL_HITS,
) -> list[Finding]:
    rules = list(excludes)
    findings: list[Finding] = []
    for file_diff in parse_unified_diff(diff_text):
        path = file_diff.target_path
        if is_excluded(path, rules):
            continue
        for line in file_diff.added_lines():
            for finding in scan_urls(
                file_path=path, content=line.content, max_hits=URL_HITS_PER_DIFF_LINE
            ):
                findings.append(finding)
                if len(findings) >= max_hits:
                    return findings
    return findings


def is_sensitive_path(path: str, markers: Iterable[str] = DEFAULT_SENSITIVE_MARKERS) -> bool:
    normalized = path.replace("\\", "/")
    return any(marker in normalized for marker in markers)


def escalate_sensitive(
    findings: Iterable[Finding],
    markers: Iterable[str] = DEFAULT_SENSITIVE_MARKERS,
) -> list[Finding]:
    """Raise egress findings located in sensitive paths to ``block``."""
    marker_list = list(markers)
    escalated: list[Finding] = []
    for finding in findings:
        if finding.id == EGRESS_FINDING_ID and is_sensitive_path(finding.file, marker_list):
            finding = dataclasses.replace(finding, severity=SEVERITY_BLOCK)
        escalated.append(finding)
    return escalated


def _rule_finding(
    rule_set: RuleSet,
    rule: Rule,
    *,
    file_path: str,
    line: int,
    text: str,
) -> Finding:
    return Finding(
        id=rule_set.finding_id,
        severity=rule_set.severity,
        file=file_path,
        line=line,
        pattern=rule.pattern.pattern,
        excerpt=redact_excerpt(text, [item.pattern for item in rule_set.rules]),
    )
