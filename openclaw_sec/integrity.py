"""Content-addressed integrity manifest of a directory tree."""

from __future__ import annotations

import hashlib
import json
import logging
import os
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Literal

from openclaw_sec import __version__
from openclaw_sec.paths import is_excluded, normalize_path
from openclaw_sec.walker import walk_files

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = "integrity_manifest.json"
MAX_MANIFEST_FILE_BYTES = 2 * 1024 * 1024
MANIFEST_NOT_FOUND = "manifest_not_found"

MismatchReason = Literal["missing", "hash_mismatch", "unexpected"]


class ManifestError(ValueError):
    """Raised when a manifest file cannot be parsed."""


@dataclass(frozen=True, slots=True)
class ManifestEntry:
    path: str
    sha256: str
    bytes: int

    def to_dict(self) -> dict[str, Any]:
        return {"path": self.path, "sha256": self.sha256, "bytes": self.bytes}


@dataclass(slots=True)
class Manifest:
    """Snapshot of ``path -> sha256`` for every hashed file, sorted by path."""

    version: str
    created_at: str
    root: str = "."
    entries: list[ManifestEntry] = field(default_factory=list)

    def hashes(self) -> dict[str, str]:
        return {entry.path: entry.sha256 for entry in self.entries}

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "created_at": self.created_at,
            "root": self.root,
            "entries": [entry.to_dict() for entry in self.entries],
        }

    @classmethod
    def from_dict(cls, payload: Any) -> Manifest:
        if not isinstance(payload, dict):
            raise ManifestError("manifest must be a JSON object")
        raw_entries = payload.get("entries", [])
        if not isinstance(raw_entries, list):
            raise ManifestError("manifest entries must be a list")

        entries: list[ManifestEntry] = []
        for index, item in enumerate(raw_entries):
            if not isinstance(item, dict):
                raise ManifestError(f"manifest entry {index} must be an object")
            path = item.get("path")
            digest = item.get("sha256")
            size = item.get("bytes", 0)
            if not isinstance(path, str) or not isinstance(digest, str):
                raise ManifestError(f"manifest entry {index} needs string path and sha256")
            if isinstance(size, bool) or not isinstance(size, int):
                raise ManifestError(f"manifest entry {index} bytes must be an integer")
            entries.append(ManifestEntry(path=path, sha256=digest, bytes=size))

        return cls(
            version=str(payload.get("version", "")),
            created_at=str(payload.get("created_at", "")),
            root=str(payload.get("root", ".")),
            entries=entries,
        )


@dataclass(frozen=True, slots=True)
class Mismatch:
    path: str
    reason: MismatchReason

    def to_dict(self) -> dict[str, Any]:
        return {"path": self.path, "reason": self.reason}


@dataclass(slots=True)
class IntegrityResult:
    """Outcome of comparing a stored manifest with the current tree.

    ``error`` is set (and ``mismatches`` empty) when there was nothing to
    compare against; a missing manifest is not a mismatch.
    """

    ok: bool
    manifest_path: str
    mismatches: list[Mismatch] = field(default_factory=list)
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "manifest": self.manifest_path,
            "error": self.error,
            "mismatches": [item.to_dict() for item in self.mismatches],
        }


class ManifestStore:
    """Reads and writes one manifest file."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> Manifest:
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ManifestError(f"Invalid JSON in manifest {self.path}: {exc}") from exc
        except OSError as exc:
            raise ManifestError(f"Cannot read manifest {self.path}: {exc}") from exc
        return Manifest.from_dict(payload)

    def save(self, manifest: Manifest) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(manifest.to_dict(), indent=2) + "\n", encoding="utf-8")


def build_manifest(root_dir: Path = Path("."), excludes: Iterable[str] = ()) -> Manifest:
    """Hash every file under ``root_dir`` that is not excluded."""
    rules = [*excludes, MANIFEST_FILENAME]
    relative_paths: list[str] = []
    for file_path in walk_files(root_dir, rules):
        rel = normalize_path(os.path.relpath(file_path, root_dir))
        if not rel or rel.startswith(".."):
            continue
        if is_excluded(rel, rules):
            continue
        relative_paths.append(rel)
    relative_paths.sort()

    entries: list[ManifestEntry] = []
    for rel in relative_paths:
        try:
            data = (root_dir / rel).read_bytes()
        except OSError as exc:
            logger.debug("skipping unreadable file %s: %s", rel, exc)
            continue
        if len(data) > MAX_MANIFEST_FILE_BYTES:
            logger.debug("skipping %s: too large to hash", rel)
            continue
        entries.append(
            ManifestEntry(path=rel, sha256=hashlib.sha256(data).hexdigest(), bytes=len(data))
        )

    return Manifest(version=__version__, created_at=_utc_timestamp(), root=".", entries=entries)


def init_manifest(
    out_path: Path = Path(MANIFEST_FILENAME),
    excludes: Iterable[str] = (),
    root_dir: Path = Path("."),
) -> Manifest:
    """Build a manifest of ``root_dir`` and write it to ``out_path``."""
    rules = [*excludes, _relative_to(out_path, root_dir)]
    manifest = build_manifest(root_dir, rules)
    ManifestStore(out_path).save(manifest)
    logger.info("wrote integrity manifest %s (%d entries)", out_path, len(manifest.entries))
    return manifest


def check_manifest(
    manifest_path: Path = Path(MANIFEST_FILENAME),
    excludes: Iterable[str] = (),
    root_dir: Path = Path("."),
) -> IntegrityResult:
    """Compare the stored manifest against the current tree.

    Raises ``ManifestError`` when the manifest exists but cannot be parsed.
    """
    store = ManifestStore(manifest_path)
    if not store.exists():
        return IntegrityResult(ok=False, manifest_path=str(manifest_path), error=MANIFEST_NOT_FOUND)

    wanted = store.load().hashes()
    rules = [*excludes, _relative_to(manifest_path, root_dir)]
    current = build_manifest(root_dir, rules).hashes()

    mismatches: list[Mismatch] = []
    for path, digest in wanted.items():
        if path not in current:
            mismatches.append(Mismatch(path=path, reason="missing"))
        elif current[path] != digest:
            mismatches.append(Mismatch(path=path, reason="hash_mismatch"))
    for path in current:
        if path not in wanted:
            mismatches.append(Mismatch(path=path, reason="unexpected"))

    logger.info("integrity check: %d mismatch(es)", len(mismatches))
    return IntegrityResult(
        ok=not mismatches, manifest_path=str(manifest_path), mismatches=mismatches
    )


def _relative_to(path: Path, root_dir: Path) -> str:
    return normalize_path(os.path.relpath(os.path.abspath(path), os.path.abspath(root_dir)))


def _utc_timestamp() -> str:
    return datetime.now(tz=UTC).replace(microsecond=0).isoformat().replace("+00:00", "Z")
