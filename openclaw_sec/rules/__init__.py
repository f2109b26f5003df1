"""Rules package."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from openclaw_sec.findings import SEVERITY_BLOCK, SEVERITY_WARN, Severity

logger = logging.getLogger(__name__)

Action = Literal["allow", "log", "warn", "block"]

ACTION_RANK: dict[str, int] = {"allow": 0, "log": 1, "warn": 2, "block": 3}

DATA_DIR = Path(__file__).parent / "data"

SECRETS = "secrets"
EGRESS = "egress"
PROMPT = "prompt"


class RuleSetError(ValueError):
    """Raised when a shipped or configured rule file cannot be loaded."""


@dataclass(frozen=True, slots=True)
class Rule:
    """One compiled, case-insensitive pattern with its policy tag."""

    id: str
    severity: Severity
    action: Action
    pattern: re.Pattern[str]
    reason: str

    def matches(self, text: str) -> bool:
        return self.pattern.search(text) is not None


@dataclass(frozen=True, slots=True)
class RuleSet:
    """Ordered rules sharing one finding id and default severity."""

    name: str
    finding_id: str
    severity: Severity
    rules: tuple[Rule, ...]
    source: str

    def __len__(self) -> int:
        return len(self.rules)


@dataclass(frozen=True, slots=True)
class _RuleSetSpec:
    name: str
    filename: str
    finding_id: str
    severity: Severity
    reason: str


RULE_SET_SPECS: dict[str, _RuleSetSpec] = {
    SECRETS: _RuleSetSpec(
        name=SECRETS,
        filename="secret_patterns.txt",
        finding_id="SECRET_PATTERN",
        severity=SEVERITY_BLOCK,
        reason="Possible secret or credential committed.",
    ),
    EGRESS: _RuleSetSpec(
        name=EGRESS,
        filename="egress_patterns.txt",
        finding_id="EGRESS_PATTERN",
        severity=SEVERITY_WARN,
        reason="Possible data egress or exfiltration path.",
    ),
    PROMPT: _RuleSetSpec(
        name=PROMPT,
        filename="prompt_injection_patterns.txt",
        finding_id="PROMPT_INJECTION_PATTERN",
        severity=SEVERITY_WARN,
        reason="Prompt-injection phrasing.",
    ),
}


def read_rule_lines(text: str) -> list[str]:
    """Return stripped, non-blank, non-comment lines."""
    lines: list[str] = []
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        lines.append(line)
    return lines


def compile_patterns(lines: Iterable[str], *, source: str = "<rules>") -> list[re.Pattern[str]]:
    """Compile each rule line as a case-insensitive regex.

    A line that does not compile is a packaging bug, so it raises
    ``RuleSetError`` instead of being skipped.
    """
    compiled: list[re.Pattern[str]] = []
    for index, line in enumerate(read_rule_lines("\n".join(lines)), start=1):
        try:
            compiled.append(re.compile(line, re.IGNORECASE))
        except re.error as exc:
            raise RuleSetError(f"{source}: rule {index} does not compile ({exc}): {line}") from exc
    return compiled


def load_rule_set(name: str, path: Path | None = None) -> RuleSet:
    """Load one of the ``secrets``/``egress``/``prompt`` rule sets."""
    spec = RULE_SET_SPECS.get(name)
    if spec is None:
        choices = ", ".join(sorted(RULE_SET_SPECS))
        raise RuleSetError(f"Unknown rule set '{name}'. Expected one of: {choices}")

    rule_path = path if path is not None else DATA_DIR / spec.filename
    try:
        text = rule_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise RuleSetError(f"Cannot read rule file {rule_path}: {exc}") from exc

    patterns = compile_patterns(text.splitlines(), source=str(rule_path))
    rules = tuple(
        Rule(
            id=f"{spec.finding_id}:{index}",
            severity=spec.severity,
            action=spec.severity,
            pattern=pattern,
            reason=spec.reason,
        )
        for index, pattern in enumerate(patterns, start=1)
    )
    logger.debug("loaded %d %s rules from %s", len(rules), name, rule_path)
    return RuleSet(
        name=name,
        finding_id=spec.finding_id,
        severity=spec.severity,
        rules=rules,
        source=str(rule_path),
    )


def load_rule_sets(overrides: dict[str, str | None] | None = None) -> dict[str, RuleSet]:
    """Load all three rule sets, honoring optional per-set file overrides."""
    overrides = overrides or {}
    loaded: dict[str, RuleSet] = {}
    for name in RULE_SET_SPECS:
        override = overrides.get(name)
        loaded[name] = load_rule_set(name, Path(override) if override else None)
    return loaded
