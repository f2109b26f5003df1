"""Scan orchestration: one request in, one graded report out."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from openclaw_sec.allowlist import ALLOWLIST_FILENAME, enforce_allowlist
from openclaw_sec.config import AppConfig
from openclaw_sec.findings import INPUT_PLACEHOLDER, SEVERITY_BLOCK, SEVERITY_WARN, Finding
from openclaw_sec.git import get_diff_text, is_inside_work_tree
from openclaw_sec.grading import Grade, grade
from openclaw_sec.integrity import MANIFEST_FILENAME, MANIFEST_NOT_FOUND, check_manifest
from openclaw_sec.rules import EGRESS, PROMPT, SECRETS, RuleSet, load_rule_sets
from openclaw_sec.scanner import (
    DEFAULT_SENSITIVE_MARKERS,
    escalate_sensitive,
    scan_diff,
    scan_diff_urls,
    scan_files,
    scan_files_for_urls,
    scan_text,
    scan_urls,
)

logger = logging.getLogger(__name__)

MODE_CHECK = "check"
MODE_SECRETS = "scan-secrets"
MODE_EGRESS = "scan-egress"
MODE_PROMPT = "scan-prompt"
MODE_RELEASE = "release-check"

SCAN_MODES = (MODE_CHECK, MODE_SECRETS, MODE_EGRESS, MODE_PROMPT, MODE_RELEASE)
_CHECK_MODES = {MODE_CHECK, MODE_RELEASE}

PRESET_REPO = "repo"
PRESET_WORKSPACE = "workspace"
WORKSPACE_CANDIDATES = (".", "skills", "scripts", "context")

MAX_REPORT_FINDINGS = 50
MAX_PROMPT_HITS = 30

# Keeps the shipped rule files from matching themselves when the package
# source tree is scanned.
DEFAULT_EXCLUDES = ("openclaw_sec/rules/data/**",)


@dataclass(slots=True)
class ScanRequest:
    """Everything one scan needs, resolved from CLI options and config."""

    mode: str
    preset: str = PRESET_WORKSPACE
    diff_mode: str | None = None
    roots: list[str] = field(default_factory=list)
    excludes: list[str] = field(default_factory=list)
    integrity_required: bool = False
    prompt_text: str | None = None
    prompt_source: str = INPUT_PLACEHOLDER
    manifest_path: str = MANIFEST_FILENAME
    allowlist_name: str = ALLOWLIST_FILENAME
    sensitive_markers: list[str] = field(default_factory=lambda: list(DEFAULT_SENSITIVE_MARKERS))
    rule_files: dict[str, str | None] = field(default_factory=dict)


@dataclass(slots=True)
class ScanReport:
    grade: Grade
    mode: str
    preset: str
    diff_mode: str | None
    scanned_paths: list[str]
    findings: list[Finding]
    total_findings: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "grade": self.grade,
            "mode": self.mode,
            "preset": self.preset,
            "diff": self.diff_mode,
            "scanned_paths": list(self.scanned_paths),
            "findings": [finding.to_dict() for finding in self.findings],
            "total_findings": self.total_findings,
        }


def default_paths(preset: str) -> list[str]:
    """Scan roots used when neither the CLI nor config names any."""
    if preset == PRESET_REPO:
        return ["."]
    return [candidate for candidate in WORKSPACE_CANDIDATES if os.path.exists(candidate)]


def build_request(
    mode: str,
    config: AppConfig,
    *,
    preset: str | None = None,
    diff: str | None = None,
    paths: Iterable[str] | None = None,
    excludes: Iterable[str] | None = None,
    prompt_text: str | None = None,
    prompt_source: str | None = None,
    base: Path = Path("."),
) -> ScanRequest:
    """Merge CLI values over config values into a ``ScanRequest``."""
    if mode not in SCAN_MODES:
        raise ValueError(f"Unknown scan mode: {mode}")

    resolved_preset = preset or config.preset
    resolved_diff = diff or config.diff
    integrity_required = False
    if mode == MODE_RELEASE:
        resolved_preset = PRESET_REPO
        resolved_diff = resolved_diff or "staged"
        integrity_required = True

    requested_paths = list(paths or []) or list(config.paths) or default_paths(resolved_preset)
    roots = [root for root in requested_paths if os.path.exists(root)]
    skipped = sorted(set(requested_paths) - set(roots))
    if skipped:
        logger.debug("ignoring missing scan roots: %s", ", ".join(skipped))

    return ScanRequest(
        mode=mode,
        preset=resolved_preset,
        diff_mode=resolved_diff,
        roots=roots,
        excludes=[*DEFAULT_EXCLUDES, *config.exclude, *(excludes or [])],
        integrity_required=integrity_required,
        prompt_text=prompt_text,
        prompt_source=prompt_source or INPUT_PLACEHOLDER,
        manifest_path=config.manifest,
        allowlist_name=config.allowlist,
        sensitive_markers=[*DEFAULT_SENSITIVE_MARKERS, *config.sensitive_markers],
        rule_files=config.rule_overrides(base),
    )


def run_scan(
    request: ScanRequest,
    rule_sets: dict[str, RuleSet] | None = None,
    repo: Path = Path("."),
) -> ScanReport:
    """Run the sub-scans ``request.mode`` selects and grade the result.

    Raises ``RuleSetError`` or ``ManifestError`` for unusable inputs and
    ``ValueError`` when a prompt scan has no text.
    """
    if rule_sets is None:
        rule_sets = load_rule_sets(request.rule_files)

    checking = request.mode in _CHECK_MODES
    diff_cache: dict[str, str] = {}

    def diff_for(mode: str) -> str:
        if mode not in diff_cache:
            diff_cache[mode] = get_diff_text(repo, mode)
        return diff_cache[mode]

    inside_repo = is_inside_work_tree(repo)
    use_diff = bool(request.diff_mode) and inside_repo
    if request.diff_mode and not inside_repo:
        logger.info("diff mode %s requested outside a git work tree; scanning files", request.diff_mode)

    findings: list[Finding] = []

    if checking or request.mode == MODE_SECRETS:
        secrets = rule_sets[SECRETS]
        if use_diff:
            hits = scan_diff(diff_for(request.diff_mode or "staged"), secrets, request.excludes)
        else:
            hits = scan_files(request.roots, secrets, request.excludes)
        logger.info("secrets: %d finding(s)", len(hits))
        findings.extend(hits)

    if checking or request.mode == MODE_EGRESS:
        egress = rule_sets[EGRESS]
        if use_diff:
            hits = scan_diff(diff_for(request.diff_mode or "staged"), egress, request.excludes)
        else:
            hits = scan_files(request.roots, egress, request.excludes)
        logger.info("egress: %d finding(s)", len(hits))
        findings.extend(escalate_sensitive(hits, request.sensitive_markers))

    if request.mode == MODE_PROMPT:
        if request.prompt_text is None:
            raise ValueError("scan-prompt requires --file, --text, or --stdin")
        findings.extend(
            scan_text(
                rule_sets[PROMPT],
                file_path=request.prompt_source,
                content=request.prompt_text,
                max_hits=MAX_PROMPT_HITS,
            )
        )
        findings.extend(
            scan_urls(
                file_path=request.prompt_source,
                content=request.prompt_text,
                max_hits=MAX_PROMPT_HITS,
            )
        )
    elif checking:
        if request.preset == PRESET_REPO and inside_repo:
            url_hits = scan_diff_urls(diff_for(request.diff_mode or "staged"), request.excludes)
        else:
            url_hits = scan_files_for_urls(request.roots, request.excludes)
        logger.info("urls: %d finding(s)", len(url_hits))
        findings.extend(url_hits)

    if checking:
        findings.extend(
            enforce_allowlist(
                repo,
                request.diff_mode,
                request.excludes,
                allowlist_name=request.allowlist_name,
            )
        )

    if request.mode != MODE_PROMPT:
        findings.extend(_integrity_findings(request, repo))

    return ScanReport(
        grade=grade(findings),
        mode=request.mode,
        preset=request.preset,
        diff_mode=request.diff_mode,
        scanned_paths=list(request.roots),
        findings=findings[:MAX_REPORT_FINDINGS],
        total_findings=len(findings),
    )


def _integrity_findings(request: ScanRequest, repo: Path) -> list[Finding]:
    manifest_path = repo / request.manifest_path
    if not request.integrity_required and not manifest_path.is_file():
        return []

    result = check_manifest(manifest_path, request.excludes, root_dir=repo)
    if result.error == MANIFEST_NOT_FOUND:
        return [
            Finding(
                id="INTEGRITY_MANIFEST_MISSING",
                severity=SEVERITY_BLOCK if request.integrity_required else SEVERITY_WARN,
                file=request.manifest_path,
                line=0,
                pattern="sha256",
                excerpt="Integrity manifest not found.",
            )
        ]
    if not result.ok:
        return [
            Finding(
                id="INTEGRITY_MISMATCH",
                severity=SEVERITY_BLOCK,
                file=request.manifest_path,
                line=0,
                pattern="sha256",
                excerpt=f"Integrity mismatch ({len(result.mismatches)})",
            )
        ]
    return []
