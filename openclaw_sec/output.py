"""Output rendering."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import click

from openclaw_sec import __version__
from openclaw_sec.integrity import IntegrityResult, Manifest
from openclaw_sec.runner import ScanReport

HUMAN_FINDINGS_LIMIT = 10
INTEGRITY_MISMATCH_LIMIT = 10

_GRADE_COLORS = {"PASS": "green", "WARN": "yellow", "BLOCK": "red"}


def render_human(report: ScanReport, *, report_path: str | None = None) -> str:
    """Render a compact colorized summary."""
    lines: list[str] = [
        click.style(f"Grade: {report.grade}", fg=_GRADE_COLORS[report.grade], bold=True)
    ]
    if not report.findings:
        lines.append("No findings.")
    else:
        lines.append(click.style(f"Findings ({len(report.findings)}):", bold=True))
        for finding in report.findings[:HUMAN_FINDINGS_LIMIT]:
            lines.append(f"- [{finding.severity}] {finding.id} :: {finding.file}:{finding.line}")
        hidden = len(report.findings) - HUMAN_FINDINGS_LIMIT
        if hidden > 0:
            lines.append(f"… +{hidden} more")
    if report_path:
        lines.append(f"Report written: {report_path}")
    return "\n".join(lines)


def build_json_payload(report: ScanReport) -> dict[str, Any]:
    """Build stable JSON payload for CI and automation."""
    return {
        "grade": report.grade,
        "scanned_paths": list(report.scanned_paths),
        "findings": [finding.to_dict() for finding in report.findings],
        "meta": {
            "mode": report.mode,
            "preset": report.preset,
            "diff": report.diff_mode,
            "total_findings": report.total_findings,
            "version": __version__,
            "generated_at": _utc_now(),
        },
    }


def render_json(report: ScanReport) -> str:
    return json.dumps(build_json_payload(report), indent=2, sort_keys=True)


def render_report_markdown(report: ScanReport) -> str:
    """Render the report file body.

    Excerpts are left out so a committed report never repeats matched content.
    """
    lines = [
        "# openclaw-sec report",
        "",
        f"- Grade: **{report.grade}**",
        f"- Preset: {report.preset}",
    ]
    if report.diff_mode:
        lines.append(f"- Diff: {report.diff_mode}")
    lines.append(f"- Scanned paths: {', '.join(report.scanned_paths)}")
    lines.extend(["", f"## Findings ({len(report.findings)})", ""])
    for finding in report.findings:
        lines.append(f"- [{finding.severity}] {finding.id} — {finding.location()}")
    lines.append("")
    return "\n".join(lines) + "\n"


def write_report(report: ScanReport, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_report_markdown(report), encoding="utf-8")


def render_integrity_init(manifest: Manifest, out_path: str, *, output_format: str) -> str:
    if output_format == "json":
        payload = {"ok": True, "out": out_path, "manifest": manifest.to_dict()}
        return json.dumps(payload, indent=2)
    return click.style(f"PASS: integrity manifest written: {out_path}", fg="green")


def render_integrity_check(result: IntegrityResult, *, output_format: str) -> str:
    if output_format == "json":
        return json.dumps(result.to_dict(), indent=2)
    if result.error:
        return click.style(
            f"WARN: integrity manifest not found: {result.manifest_path}", fg="yellow"
        )
    if not result.ok:
        lines = [click.style(f"BLOCK: integrity mismatch ({len(result.mismatches)})", fg="red")]
        for mismatch in result.mismatches[:INTEGRITY_MISMATCH_LIMIT]:
            lines.append(f"- {mismatch.path} ({mismatch.reason})")
        return "\n".join(lines)
    return click.style(f"PASS: integrity OK ({result.manifest_path})", fg="green")


def _utc_now() -> str:
    return datetime.now(tz=UTC).replace(microsecond=0).isoformat().replace("+00:00", "Z")
