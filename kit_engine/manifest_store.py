"""Install manifest persistence and file hashing."""

from __future__ import annotations

import hashlib
import os
from pathlib import Path

import yaml
from pydantic import ValidationError as PydanticValidationError

from .errors import ManifestWriteError, ValidationError
from .logger import logger
from .paths import InstallPaths
from .types import InstallManifest, TrackedFile

_CHUNK_SIZE = 64 * 1024


def get_manifest_path(install_dir: Path) -> Path:
    return InstallPaths.manifest_file(install_dir)


def load_install_manifest(install_dir: Path) -> InstallManifest | None:
    """Read and validate the install manifest.

    Returns None when no manifest exists. Raises ValidationError when the
    document exists but is malformed.
    """
    manifest_path = get_manifest_path(install_dir)
    if not manifest_path.exists():
        return None

    try:
        raw = yaml.safe_load(manifest_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as err:
        raise ValidationError(f"{manifest_path} is not valid YAML: {err}") from err

    if not isinstance(raw, dict):
        raise ValidationError(f"{manifest_path} does not contain a manifest document")

    try:
        return InstallManifest.model_validate(raw)
    except PydanticValidationError as err:
        raise ValidationError(f"{manifest_path} failed validation: {err}") from err


def read_install_manifest(install_dir: Path) -> InstallManifest | None:
    """Like load_install_manifest, but treats an unreadable manifest as absent."""
    try:
        return load_install_manifest(install_dir)
    except (ValidationError, OSError) as err:
        logger.debug("Ignoring unreadable install manifest", install_dir=str(install_dir), error=str(err))
        return None


def serialize_manifest(manifest: InstallManifest) -> str:
    """Render the manifest deterministically: files sorted, keys sorted."""
    ordered = manifest.model_copy(update={"files": sorted(manifest.files, key=lambda f: f.path)})
    data = ordered.model_dump(mode="json", by_alias=True, exclude_none=True)
    return yaml.safe_dump(data, sort_keys=True)


def write_install_manifest(install_dir: Path, manifest: InstallManifest) -> Path:
    """Atomically write the install manifest."""
    manifest_path = get_manifest_path(install_dir)
    content = serialize_manifest(manifest)

    # Write to temp file then atomic rename to prevent corruption on crash
    tmp_path = manifest_path.with_name(manifest_path.name + ".tmp")
    try:
        manifest_path.parent.mkdir(parents=True, exist_ok=True)
        with tmp_path.open("w", encoding="utf-8") as fh:
            fh.write(content)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_path, manifest_path)
    except OSError as err:
        tmp_path.unlink(missing_ok=True)
        raise ManifestWriteError(f"Failed to write {manifest_path}: {err}") from err

    logger.debug("Wrote install manifest", path=str(manifest_path), files=len(manifest.files))
    return manifest_path


def delete_install_manifest(install_dir: Path) -> bool:
    manifest_path = get_manifest_path(install_dir)
    if not manifest_path.exists():
        return False
    manifest_path.unlink()
    return True


def remove_entries(manifest: InstallManifest, paths: list[str]) -> list[TrackedFile]:
    """Drop entries for the given paths. Returns the removed entries."""
    doomed = set(paths)
    removed = [f for f in manifest.files if f.path in doomed]
    manifest.files = [f for f in manifest.files if f.path not in doomed]
    return removed


def prune_orphans(install_dir: Path, manifest: InstallManifest) -> list[TrackedFile]:
    """Remove entries whose file no longer exists on disk."""
    missing = [f.path for f in manifest.files if not (install_dir / f.path).is_file()]
    return remove_entries(manifest, missing)


def compute_file_hash(file_path: Path) -> str:
    """Compute the SHA-256 hash of a file's contents, streaming in chunks."""
    digest = hashlib.sha256()
    with file_path.open("rb") as fh:
        for chunk in iter(lambda: fh.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def compare_semver(a: str, b: str) -> int:
    """Compare two semver strings.

    Returns negative if a < b, 0 if equal, positive if a > b. A leading "v"
    and any pre-release suffix are ignored.
    """
    parts_a = _version_parts(a)
    parts_b = _version_parts(b)

    for i in range(max(len(parts_a), len(parts_b))):
        val_a = parts_a[i] if i < len(parts_a) else 0
        val_b = parts_b[i] if i < len(parts_b) else 0
        diff = val_a - val_b
        if diff != 0:
            return diff

    return 0


def _version_parts(version: str) -> list[int]:
    core = version.strip().lstrip("v").split("-", 1)[0].split("+", 1)[0]
    parts: list[int] = []
    for piece in core.split("."):
        digits = "".join(ch for ch in piece if ch.isdigit())
        parts.append(int(digits) if digits else 0)
    return parts
