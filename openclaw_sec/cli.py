"""CLI entrypoint for openclaw-sec."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Annotated, NoReturn

import typer

from openclaw_sec import __version__
from openclaw_sec.config import (
    DIFF_CHOICES,
    FORMATS,
    PRESETS,
    AppConfig,
    default_config_template,
    load_app_config,
)
from openclaw_sec.findings import INPUT_PLACEHOLDER
from openclaw_sec.grading import exit_code_for
from openclaw_sec.integrity import ManifestError, check_manifest, init_manifest
from openclaw_sec.output import (
    render_human,
    render_integrity_check,
    render_integrity_init,
    render_json,
    write_report,
)
from openclaw_sec.rules import RuleSetError, load_rule_sets
from openclaw_sec.rules.sentinel import SENTINEL_RULES, analyze_text
from openclaw_sec.runner import (
    DEFAULT_EXCLUDES,
    MODE_CHECK,
    MODE_EGRESS,
    MODE_PROMPT,
    MODE_RELEASE,
    MODE_SECRETS,
    ScanReport,
    build_request,
    run_scan,
)

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="openclaw-sec",
    no_args_is_help=True,
    pretty_exceptions_enable=False,
    help="Local security gate: secrets, egress, prompt injection, allowlist, integrity.",
)
integrity_app = typer.Typer(no_args_is_help=True, help="Create or verify the integrity manifest.")
app.add_typer(integrity_app, name="integrity")

FormatOption = Annotated[
    str | None, typer.Option(help="Output format: human|json.", show_default="human")
]
OutOption = Annotated[Path | None, typer.Option("--out", help="Write a markdown report here.")]
PresetOption = Annotated[
    str | None, typer.Option(help="Scope preset: repo|workspace.", show_default="workspace")
]
DiffOption = Annotated[
    str | None, typer.Option("--diff", help="Scan a git diff: staged|head|worktree.")
]
PathsOption = Annotated[
    list[str] | None, typer.Option("--paths", help="Scan root (repeatable, comma-separated).")
]
ExcludeOption = Annotated[
    list[str] | None, typer.Option("--exclude", help="Exclude glob (repeatable, comma-separated).")
]
ConfigOption = Annotated[
    Path | None, typer.Option("--config", help="Path to config TOML file.")
]
TextOption = Annotated[str | None, typer.Option("--text", help="Text to scan.")]
FileOption = Annotated[Path | None, typer.Option("--file", help="File whose text to scan.")]
StdinOption = Annotated[bool, typer.Option("--stdin", help="Read text from stdin.")]


def version_callback(value: bool) -> None:
    """Print version and exit when --version is provided."""
    if value:
        typer.echo(__version__)
        raise typer.Exit()


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option("--version", help="Show version and exit.", callback=version_callback),
    ] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging.")] = False,
) -> None:
    """Root command callback."""
    _ = version
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


@app.command("check")
def check_command(
    format: FormatOption = None,
    out: OutOption = None,
    preset: PresetOption = None,
    diff: DiffOption = None,
    paths: PathsOption = None,
    exclude: ExcludeOption = None,
    config_file: ConfigOption = None,
) -> None:
    """Secrets, egress, URLs, allowlist and integrity in one pass."""
    _scan(MODE_CHECK, format, out, preset, diff, paths, exclude, config_file)


@app.command("scan-secrets")
def scan_secrets_command(
    format: FormatOption = None,
    out: OutOption = None,
    preset: PresetOption = None,
    diff: DiffOption = None,
    paths: PathsOption = None,
    exclude: ExcludeOption = None,
    config_file: ConfigOption = None,
) -> None:
    """Scan files or a diff for committed secrets."""
    _scan(MODE_SECRETS, format, out, preset, diff, paths, exclude, config_file)


@app.command("scan-egress")
def scan_egress_command(
    format: FormatOption = None,
    out: OutOption = None,
    preset: PresetOption = None,
    diff: DiffOption = None,
    paths: PathsOption = None,
    exclude: ExcludeOption = None,
    config_file: ConfigOption = None,
) -> None:
    """Scan files or a diff for data-egress indicators."""
    _scan(MODE_EGRESS, format, out, preset, diff, paths, exclude, config_file)


@app.command("release-check")
def release_check_command(
    format: FormatOption = None,
    out: OutOption = None,
    diff: DiffOption = None,
    paths: PathsOption = None,
    exclude: ExcludeOption = None,
    config_file: ConfigOption = None,
) -> None:
    """Strict check: repo preset, staged diff, integrity manifest required."""
    _scan(MODE_RELEASE, format, out, None, diff, paths, exclude, config_file)


@app.command("scan-prompt")
def scan_prompt_command(
    file: FileOption = None,
    text: TextOption = None,
    stdin: StdinOption = False,
    format: FormatOption = None,
    out: OutOption = None,
    config_file: ConfigOption = None,
) -> None:
    """Scan untrusted text for prompt-injection phrasing and suspicious URLs."""
    content, source = _read_prompt_input(file=file, text=text, stdin=stdin)
    app_config = _load_config_or_raise(config_file)
    output_format = _resolve_format(format, app_config)
    try:
        request = build_request(
            MODE_PROMPT,
            app_config,
            prompt_text=content,
            prompt_source=source,
        )
        report = run_scan(request)
    except (RuleSetError, ValueError) as exc:
        _fail(exc)
    _emit_report(report, output_format=output_format, out=out)


@app.command("analyze")
def analyze_command(
    file: FileOption = None,
    text: TextOption = None,
    stdin: StdinOption = False,
) -> None:
    """Print the prompt sentinel's JSON verdict for one piece of text."""
    content, _source = _read_prompt_input(file=file, text=text, stdin=stdin)
    verdict = analyze_text(content)
    typer.echo(json.dumps(verdict.to_dict(), indent=2))


@integrity_app.command("init")
def integrity_init_command(
    manifest: Annotated[
        Path | None,
        typer.Option("--manifest", "--out", help="Manifest path.", show_default=False),
    ] = None,
    exclude: ExcludeOption = None,
    format: FormatOption = None,
    config_file: ConfigOption = None,
) -> None:
    """Hash the current tree into a manifest file."""
    app_config = _load_config_or_raise(config_file)
    output_format = _resolve_format(format, app_config)
    manifest_path = manifest or Path(app_config.manifest)
    excludes = [*DEFAULT_EXCLUDES, *app_config.exclude, *_split_values(exclude)]
    try:
        written = init_manifest(manifest_path, excludes)
    except OSError as exc:
        _fail(exc)
    typer.echo(render_integrity_init(written, str(manifest_path), output_format=output_format))


@integrity_app.command("check")
def integrity_check_command(
    manifest: Annotated[
        Path | None,
        typer.Option("--manifest", "--out", help="Manifest path.", show_default=False),
    ] = None,
    exclude: ExcludeOption = None,
    format: FormatOption = None,
    config_file: ConfigOption = None,
) -> None:
    """Compare the current tree with the manifest."""
    app_config = _load_config_or_raise(config_file)
    output_format = _resolve_format(format, app_config)
    manifest_path = manifest or Path(app_config.manifest)
    excludes = [*DEFAULT_EXCLUDES, *app_config.exclude, *_split_values(exclude)]
    try:
        result = check_manifest(manifest_path, excludes)
    except ManifestError as exc:
        _fail(exc)

    typer.echo(render_integrity_check(result, output_format=output_format))
    if result.error:
        raise typer.Exit(code=1)
    if not result.ok:
        raise typer.Exit(code=2)


@app.command("rules")
def rules_command(
    format: Annotated[str, typer.Option(help="Output format: human|json.")] = "human",
    config_file: ConfigOption = None,
) -> None:
    """List the loaded rule sets and the sentinel rules."""
    output_format = format.lower()
    if output_format not in FORMATS:
        raise typer.BadParameter("format must be one of: human, json", param_hint="--format")

    app_config = _load_config_or_raise(config_file)
    try:
        rule_sets = load_rule_sets(app_config.rule_overrides(Path(".")))
    except RuleSetError as exc:
        _fail(exc)

    entries = [
        {
            "id": rule.id,
            "set": rule_set.name,
            "severity": rule.severity,
            "action": rule.action,
            "pattern": rule.pattern.pattern,
        }
        for rule_set in rule_sets.values()
        for rule in rule_set.rules
    ]
    entries.extend(
        {
            "id": rule.id,
            "set": "sentinel",
            "severity": rule.severity,
            "action": rule.action,
            "pattern": rule.pattern.pattern,
        }
        for rule in SENTINEL_RULES
    )

    if output_format == "json":
        payload = {
            "rules": entries,
            "sources": {name: rule_set.source for name, rule_set in rule_sets.items()},
        }
        typer.echo(json.dumps(payload, sort_keys=True))
        return

    lines = ["Loaded rules:"]
    for entry in entries:
        lines.append(
            f"- {entry['id']} [{entry['set']}] {entry['severity']}/{entry['action']}"
            f" :: {entry['pattern']}"
        )
    typer.echo("\n".join(lines))


@app.command("config")
def config_command(
    format: Annotated[str, typer.Option(help="Output format: human|json.")] = "human",
    config_file: ConfigOption = None,
) -> None:
    """Show resolved configuration."""
    output_format = format.lower()
    if output_format not in FORMATS:
        raise typer.BadParameter("format must be one of: human, json", param_hint="--format")

    app_config = _load_config_or_raise(config_file)
    payload = app_config.to_dict()
    if output_format == "json":
        typer.echo(json.dumps(payload, sort_keys=True))
        return

    lines = [
        "Resolved configuration:",
        f"- source: {payload['source'] or 'defaults'}",
        f"- format: {payload['format']}",
        f"- preset: {payload['preset']}",
        f"- diff: {payload['diff']}",
        f"- paths: {payload['paths']}",
        f"- exclude: {payload['exclude']}",
        f"- manifest: {payload['manifest']}",
        f"- allowlist: {payload['allowlist']}",
        f"- sensitive_markers: {payload['sensitive_markers']}",
        f"- rules: {payload['rules']}",
    ]
    typer.echo("\n".join(lines))


@app.command("config-init")
def config_init_command(
    out: Annotated[Path, typer.Option(help="Output path for starter config TOML.")] = Path(
        ".openclaw-sec.toml"
    ),
    force: Annotated[
        bool,
        typer.Option("--force", help="Overwrite if file already exists."),
    ] = False,
) -> None:
    """Create a starter repository config file."""
    out_path = out.resolve()
    if out_path.exists() and not force:
        raise typer.BadParameter(
            f"Refusing to overwrite existing file: {out_path}. Use --force to overwrite."
        )
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(default_config_template(), encoding="utf-8")
    typer.echo(f"Wrote starter config: {out_path}")


def main() -> None:
    """Console script entrypoint."""
    try:
        app()
    except Exception as exc:
        logger.debug("unhandled error", exc_info=True)
        typer.echo(f"error: {exc}", err=True)
        raise SystemExit(2) from exc


def _scan(
    mode: str,
    format: str | None,
    out: Path | None,
    preset: str | None,
    diff: str | None,
    paths: list[str] | None,
    exclude: list[str] | None,
    config_file: Path | None,
) -> None:
    app_config = _load_config_or_raise(config_file)
    output_format = _resolve_format(format, app_config)
    resolved_preset = _optional_choice(preset, PRESETS, "--preset")
    resolved_diff = _optional_choice(diff, DIFF_CHOICES, "--diff")

    try:
        request = build_request(
            mode,
            app_config,
            preset=resolved_preset,
            diff=resolved_diff,
            paths=_split_values(paths),
            excludes=_split_values(exclude),
        )
        report = run_scan(request)
    except (RuleSetError, ManifestError, ValueError) as exc:
        _fail(exc)
    _emit_report(report, output_format=output_format, out=out)


def _emit_report(report: ScanReport, *, output_format: str, out: Path | None) -> NoReturn:
    if out is not None:
        write_report(report, out)
    if output_format == "json":
        typer.echo(render_json(report))
    else:
        typer.echo(render_human(report, report_path=str(out) if out is not None else None))
    raise typer.Exit(code=exit_code_for(report.grade))


def _read_prompt_input(*, file: Path | None, text: str | None, stdin: bool) -> tuple[str, str]:
    if file is not None:
        try:
            return (file.read_text(encoding="utf-8", errors="replace"), str(file))
        except OSError as exc:
            raise typer.BadParameter(f"Cannot read {file}: {exc}", param_hint="--file") from exc
    if text is not None:
        return (text, INPUT_PLACEHOLDER)
    if stdin:
        return (sys.stdin.read(), INPUT_PLACEHOLDER)
    raise typer.BadParameter("Provide one of --file, --text, or --stdin.")


def _split_values(values: list[str] | None) -> list[str]:
    items: list[str] = []
    for value in values or []:
        items.extend(part.strip() for part in value.split(",") if part.strip())
    return items


def _load_config_or_raise(config_file: Path | None = None) -> AppConfig:
    try:
        return load_app_config(Path("."), config_path=config_file)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="config") from exc


def _resolve_format(value: str | None, app_config: AppConfig) -> str:
    resolved = (value or app_config.format).lower()
    if resolved not in FORMATS:
        raise typer.BadParameter("format must be one of: human, json", param_hint="--format")
    return resolved


def _optional_choice(value: str | None, allowed: set[str], field_name: str) -> str | None:
    if value is None:
        return None
    resolved = value.lower()
    if resolved not in allowed:
        choices = ", ".join(sorted(allowed))
        raise typer.BadParameter(f"{field_name} must be one of: {choices}", param_hint=field_name)
    return resolved


def _fail(exc: Exception) -> NoReturn:
    typer.echo(f"error: {exc}", err=True)
    raise typer.Exit(code=2)
