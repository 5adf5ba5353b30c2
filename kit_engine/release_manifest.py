"""Release manifest loading and validation."""

from __future__ import annotations

import json
from pathlib import Path, PurePosixPath

from pydantic import ValidationError as PydanticValidationError

from .constants import RELEASE_MANIFEST_FILE
from .errors import ValidationError
from .types import ReleaseManifest


def validate_relative_path(rel_path: str, *, what: str = "path") -> None:
    """Reject paths that are absolute or escape the installation root."""
    if not rel_path or not rel_path.strip():
        raise ValidationError(f"Empty {what} in manifest")
    posix = PurePosixPath(rel_path.replace("\\", "/"))
    if posix.is_absolute() or ".." in posix.parts:
        raise ValidationError(f'Invalid {what} in manifest: {rel_path} (must be relative without "..")')


def parse_release_manifest(raw: object) -> ReleaseManifest:
    """Validate an already-decoded release manifest document."""
    if not isinstance(raw, dict):
        raise ValidationError("Release manifest must be a JSON object")

    try:
        manifest = ReleaseManifest.model_validate(raw)
    except PydanticValidationError as err:
        raise ValidationError(f"Release manifest failed validation: {err}") from err

    seen: set[str] = set()
    for entry in manifest.files:
        validate_relative_path(entry.path)
        entry.path = entry.path.replace("\\", "/")
        if entry.path in seen:
            raise ValidationError(f"Duplicate path in release manifest: {entry.path}")
        seen.add(entry.path)
    for pattern in manifest.deletions:
        validate_relative_path(pattern, what="deletion pattern")

    return manifest


def load_release_manifest(path: Path) -> ReleaseManifest:
    """Read a release manifest from a JSON file."""
    if not path.exists():
        raise FileNotFoundError(f"Release manifest not found: {path}")

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as err:
        raise ValidationError(f"{path} is not valid JSON: {err}") from err

    return parse_release_manifest(raw)


def find_release_manifest(release_dir: Path) -> ReleaseManifest | None:
    """Load release-manifest.json from a release tree if it ships one."""
    manifest_path = release_dir / RELEASE_MANIFEST_FILE
    if not manifest_path.exists():
        return None
    return load_release_manifest(manifest_path)
