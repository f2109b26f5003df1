"""Finding model shared by every scan."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

Severity = Literal["block", "warn"]

SEVERITY_BLOCK: Severity = "block"
SEVERITY_WARN: Severity = "warn"

DIFF_PLACEHOLDER = "<diff>"
INPUT_PLACEHOLDER = "<input>"

MAX_EXCERPT_CHARS = 240


@dataclass(frozen=True, slots=True)
class Finding:
    """A single pattern or policy hit."""

    id: str
    severity: Severity
    file: str
    line: int
    pattern: str
    excerpt: str

    def location(self) -> str:
        return f"{self.file}:{self.line}" if self.line else self.file

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "severity": self.severity,
            "file": self.file,
            "line": self.line,
            "pattern": self.pattern,
            "excerpt": self.excerpt,
        }
