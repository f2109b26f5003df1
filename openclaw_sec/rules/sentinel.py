"""Single-verdict prompt-injection sentinel."""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass, field
from typing import Any

from openclaw_sec.findings import SEVERITY_BLOCK, SEVERITY_WARN
from openclaw_sec.grading import Grade, grade_severities
from openclaw_sec.rules import ACTION_RANK, Action, Rule

SENTINEL_RULES: tuple[Rule, ...] = (
    Rule(
        id="R1_SYSTEM_OVERRIDE",
        severity=SEVERITY_BLOCK,
        action="block",
        pattern=re.compile(
            r"\b(ignore|disregard|override)\b\s+(the\s+)?(system|developer)\s+(prompt|instructions)",
            re.IGNORECASE,
        ),
        reason="Attempt to override system/developer instructions",
    ),
    Rule(
        id="R2_SECRET_EXFIL",
        severity=SEVERITY_BLOCK,
        action="block",
        pattern=re.compile(
            r"\b(api\s*key|token|password|secret|private\s*key|seed\s*phrase|mnemonic)\b",
            re.IGNORECASE,
        ),
        reason="Attempt to access or exfiltrate secrets",
    ),
    Rule(
        id="R3_FILE_HARVEST",
        severity=SEVERITY_BLOCK,
        action="block",
        pattern=re.compile(
            r"(\.env\b|id_rsa\b|openclaw\.json\b|ssh/|~/\.ssh\b)",
            re.IGNORECASE,
        ),
        reason="Sensitive file/path harvesting",
    ),
    Rule(
        id="R4_SHELL_EXEC",
        severity=SEVERITY_WARN,
        action="warn",
        pattern=re.compile(
            r"\b(rm\s+-rf|curl\s+http|wget\s+http|chmod\s+\+x|bash\s+-c|powershell)\b",
            re.IGNORECASE,
        ),
        reason="Shell execution / download instruction pattern",
    ),
    Rule(
        id="R5_SOCIAL_ENGINEERING",
        severity=SEVERITY_WARN,
        action="warn",
        pattern=re.compile(
            r"\b(you already approved|keep going|do the rest|no need to ask|trust me)\b",
            re.IGNORECASE,
        ),
        reason="Social-engineering style escalation attempt",
    ),
)


@dataclass(slots=True)
class Verdict:
    """Classification of one piece of untrusted text."""

    grade: Grade
    action: Action
    fingerprint: str
    reasons: list[str] = field(default_factory=list)
    matched_rules: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": "prompt-injection-sentinel",
            "grade": self.grade,
            "action": self.action,
            "reasons": list(self.reasons),
            "matched_rules": list(self.matched_rules),
            "fingerprint": self.fingerprint,
        }


def analyze_text(text: str, rules: tuple[Rule, ...] = SENTINEL_RULES) -> Verdict:
    """Run every rule over ``text`` and fold the hits into one verdict.

    The strongest action wins (block > warn > log > allow); the grade is the
    usual PASS/WARN/BLOCK aggregation of the matched rules' severities.
    """
    matched = [rule for rule in rules if rule.matches(text)]
    action: Action = "allow"
    for rule in matched:
        if ACTION_RANK[rule.action] > ACTION_RANK[action]:
            action = rule.action

    return Verdict(
        grade=grade_severities(rule.severity for rule in matched),
        action=action,
        fingerprint=hashlib.sha256(text.encode("utf-8")).hexdigest(),
        reasons=[rule.reason for rule in matched],
        matched_rules=[rule.id for rule in matched],
    )
