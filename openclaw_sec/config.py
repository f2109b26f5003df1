"""Configuration loading for openclaw-sec."""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

CONFIG_FILENAMES = (".openclaw-sec.toml", "openclaw-sec.toml")
PYPROJECT_FILENAME = "pyproject.toml"
PYPROJECT_TOOL_KEYS = ("openclaw_sec", "openclaw-sec")

FORMATS = {"human", "json"}
PRESETS = {"repo", "workspace"}
DIFF_CHOICES = {"staged", "head", "worktree"}


@dataclass(slots=True)
class RuleFilesConfig:
    """Alternate rule files, one per rule set."""

    secrets: str | None = None
    egress: str | None = None
    prompt: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"secrets": self.secrets, "egress": self.egress, "prompt": self.prompt}


@dataclass(slots=True)
class AppConfig:
    """Runtime configuration values resolved from project files."""

    format: str = "human"
    preset: str = "workspace"
    diff: str | None = None
    paths: list[str] = field(default_factory=list)
    exclude: list[str] = field(default_factory=list)
    manifest: str = "integrity_manifest.json"
    allowlist: str = ".aoi-allowlist"
    sensitive_markers: list[str] = field(default_factory=list)
    rules: RuleFilesConfig = field(default_factory=RuleFilesConfig)
    source: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "format": self.format,
            "preset": self.preset,
            "diff": self.diff,
            "paths": list(self.paths),
            "exclude": list(self.exclude),
            "manifest": self.manifest,
            "allowlist": self.allowlist,
            "sensitive_markers": list(self.sensitive_markers),
            "rules": self.rules.to_dict(),
            "source": self.source,
        }

    def rule_overrides(self, base: Path) -> dict[str, str | None]:
        """Rule file overrides resolved against ``base``."""
        overrides: dict[str, str | None] = {}
        for name, value in self.rules.to_dict().items():
            if value is None:
                overrides[name] = None
                continue
            path = Path(value)
            overrides[name] = str(path if path.is_absolute() else base / path)
        return overrides


def load_app_config(repo: Path, config_path: Path | None = None) -> AppConfig:
    """Load config from explicit path or repository-local files with precedence."""
    repo = repo.resolve()
    if config_path is not None:
        resolved = config_path if config_path.is_absolute() else (repo / config_path)
        if not resolved.exists():
            raise ValueError(f"Config file does not exist: {resolved}")
        mapping = _extract_config_mapping(_load_toml(resolved), source_path=resolved)
        return _from_mapping(mapping, source=str(resolved))

    for filename in CONFIG_FILENAMES:
        resolved = repo / filename
        if resolved.exists():
            mapping = _extract_config_mapping(_load_toml(resolved), source_path=resolved)
            return _from_mapping(mapping, source=str(resolved))

    pyproject_path = repo / PYPROJECT_FILENAME
    if pyproject_path.exists():
        mapping = _extract_config_mapping(_load_toml(pyproject_path), source_path=pyproject_path)
        if mapping:
            return _from_mapping(mapping, source=str(pyproject_path))

    return AppConfig()


def default_config_template() -> str:
    """Return a starter config template."""
    return "\n".join(
        [
            'format = "human"',
            'preset = "repo"',
            'diff = "staged"',
            'paths = ["."]',
            'exclude = ["docs/**", "*.log"]',
            'manifest = "integrity_manifest.json"',
            'allowlist = ".aoi-allowlist"',
            "# Extra path markers that escalate egress findings to block.",
            'sensitive_markers = ["/srv/secrets/"]',
            "",
            "[rules]",
            '# secrets = "security/secret_patterns.txt"',
            '# egress = "security/egress_patterns.txt"',
            '# prompt = "security/prompt_injection_patterns.txt"',
            "",
        ]
    )


def _load_toml(path: Path) -> dict[str, Any]:
    try:
        with path.open("rb") as file_obj:
            loaded = tomllib.load(file_obj)
    except tomllib.TOMLDecodeError as exc:
        raise ValueError(f"Invalid TOML in {path}: {exc}") from exc
    if not isinstance(loaded, dict):
        return {}
    return loaded


def _extract_config_mapping(loaded: dict[str, Any], *, source_path: Path) -> dict[str, Any]:
    tool_section = _find_pyproject_tool_section(loaded)
    if source_path.name == PYPROJECT_FILENAME:
        return tool_section if tool_section is not None else {}
    return tool_section if tool_section is not None else loaded


def _find_pyproject_tool_section(loaded: dict[str, Any]) -> dict[str, Any] | None:
    tool = loaded.get("tool")
    if not isinstance(tool, dict):
        return None
    for key in PYPROJECT_TOOL_KEYS:
        section = tool.get(key)
        if isinstance(section, dict):
            return section
    return None


def _from_mapping(mapping: dict[str, Any], *, source: str) -> AppConfig:
    rules_mapping = _as_table(mapping.get("rules"), "rules")
    raw_diff = mapping.get("diff")

    return AppConfig(
        format=_as_choice(mapping.get("format", "human"), FORMATS, "format"),
        preset=_as_choice(mapping.get("preset", "workspace"), PRESETS, "preset"),
        diff=None if raw_diff is None else _as_choice(raw_diff, DIFF_CHOICES, "diff"),
        paths=_as_str_list(mapping.get("paths"), "paths"),
        exclude=_as_str_list(mapping.get("exclude"), "exclude"),
        manifest=_as_str(mapping.get("manifest", "integrity_manifest.json"), "manifest"),
        allowlist=_as_str(mapping.get("allowlist", ".aoi-allowlist"), "allowlist"),
        sensitive_markers=_as_str_list(mapping.get("sensitive_markers"), "sensitive_markers"),
        rules=RuleFilesConfig(
            secrets=_as_optional_str(rules_mapping.get("secrets"), "rules.secrets"),
            egress=_as_optional_str(rules_mapping.get("egress"), "rules.egress"),
            prompt=_as_optional_str(rules_mapping.get("prompt"), "rules.prompt"),
        ),
        source=source,
    )


def _as_table(value: Any, field_name: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"{field_name} must be a table/object")
    return value


def _as_str_list(value: Any, field_name: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"{field_name} must be a list of strings")
    items: list[str] = []
    for item in value:
        if not isinstance(item, str):
            raise ValueError(f"{field_name} must be a list of strings")
        items.append(item)
    return items


def _as_str(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value:
        raise ValueError(f"{field_name} must be a non-empty string")
    return value


def _as_optional_str(value: Any, field_name: str) -> str | None:
    if value is None:
        return None
    return _as_str(value, field_name)


def _as_choice(raw: Any, allowed: set[str], field_name: str) -> str:
    value = str(raw).lower()
    if value not in allowed:
        choices = ", ".join(sorted(allowed))
        raise ValueError(f"{field_name} must be one of: {choices}")
    return value
