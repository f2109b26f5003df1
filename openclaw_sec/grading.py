"""Aggregate findings into a single grade."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Literal

from openclaw_sec.findings import SEVERITY_BLOCK, SEVERITY_WARN, Finding

Grade = Literal["PASS", "WARN", "BLOCK"]

GRADE_PASS: Grade = "PASS"
GRADE_WARN: Grade = "WARN"
GRADE_BLOCK: Grade = "BLOCK"

_EXIT_CODES: dict[str, int] = {GRADE_PASS: 0, GRADE_WARN: 1, GRADE_BLOCK: 2}


def grade_severities(severities: Iterable[str]) -> Grade:
    """Grade a collection of severity labels."""
    seen = set(severities)
    if SEVERITY_BLOCK in seen:
        return GRADE_BLOCK
    if SEVERITY_WARN in seen:
        return GRADE_WARN
    return GRADE_PASS


def grade(findings: Iterable[Finding]) -> Grade:
    """BLOCK if any finding blocks, WARN if any warns, PASS otherwise."""
    return grade_severities(finding.severity for finding in findings)


def exit_code_for(value: Grade) -> int:
    """Map a grade to the process exit status."""
    return _EXIT_CODES[value]
