"""Backfill an install manifest for installations that predate tracking."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from .constants import MIN_MANIFEST_VERSION
from .errors import SyncCancelled, ValidationError
from .fs_utils import list_files
from .logger import logger
from .manifest_store import compare_semver, load_install_manifest, write_install_manifest
from .tracker import build_manifest
from .types import (
    FileTrackInfo,
    InstallManifest,
    LegacyDetectionResult,
    LegacyMigrationResult,
    Ownership,
    ReleaseManifest,
    Scope,
)

if TYPE_CHECKING:
    from .prompter import Prompter

_PREVIEW_SAMPLES = 5


def scan_install_files(install_dir: Path) -> list[str]:
    """Every file of an installation, minus engine bookkeeping and backups."""
    return list_files(install_dir, skip_engine_files=True)


def detect_legacy(install_dir: Path) -> LegacyDetectionResult:
    install_dir = Path(install_dir)
    if not scan_install_files(install_dir):
        return LegacyDetectionResult(is_legacy=False, reason="empty")

    try:
        manifest = load_install_manifest(install_dir)
    except (ValidationError, OSError) as err:
        logger.debug("Install manifest unreadable", install_dir=str(install_dir), error=str(err))
        return LegacyDetectionResult(is_legacy=True, reason="invalid-manifest")

    if manifest is None:
        return LegacyDetectionResult(is_legacy=True, reason="no-manifest")

    if not manifest.files or compare_semver(manifest.manifest_version, MIN_MANIFEST_VERSION) < 0:
        return LegacyDetectionResult(is_legacy=True, reason="old-format")

    return LegacyDetectionResult(is_legacy=False, reason="current")


def _mark_edited_release_files(manifest: InstallManifest, release_manifest: ReleaseManifest) -> None:
    """Release files whose content differs from the shipped checksum were edited locally.

    Only possible when the release manifest carries checksums.
    """
    for entry in manifest.files:
        if entry.ownership != Ownership.TOOL:
            continue
        shipped = release_manifest.find_file(entry.path)
        if shipped is not None and shipped.checksum and shipped.checksum != entry.checksum:
            entry.ownership = Ownership.TOOL_MODIFIED
            entry.base_checksum = shipped.checksum


def _sample(paths: list[str]) -> dict[str, object]:
    return {"count": len(paths), "sample": paths[:_PREVIEW_SAMPLES], "more": max(0, len(paths) - _PREVIEW_SAMPLES)}


def _log_preview(tool_files: list[str], modified_files: list[str], user_files: list[str]) -> None:
    logger.info("Legacy install preview", tool=_sample(tool_files), modified=_sample(modified_files), user=_sample(user_files))


def migrate_legacy(
    install_dir: Path,
    release_manifest: ReleaseManifest | None,
    kit_name: str,
    version: str,
    *,
    scope: Scope,
    interactive: bool = False,
    prompter: Prompter | None = None,
    concurrency: int | None = None,
) -> LegacyMigrationResult:
    """Classify an untracked installation and write its first manifest.

    Files listed in the release manifest become tool-owned with their current
    content as baseline; everything else is user-owned. A listed file whose
    content differs from the checksum the release ships is recorded as
    tool-modified against that checksum.
    """
    install_dir = Path(install_dir)
    detection = detect_legacy(install_dir)
    if not detection.is_legacy:
        return LegacyMigrationResult(migrated=False, reason=detection.reason)

    release_paths = release_manifest.paths() if release_manifest else set()
    files = [
        FileTrackInfo(
            file_path=str(install_dir / rel_path),
            relative_path=rel_path,
            installed_version=version,
            matches_release=rel_path in release_paths,
        )
        for rel_path in scan_install_files(install_dir)
    ]

    tracked = build_manifest(
        install_dir,
        files,
        release_manifest=release_manifest,
        existing=None,
        kit_name=kit_name,
        version=version,
        scope=scope,
        concurrency=concurrency,
    )
    manifest = tracked.manifest
    if release_manifest is not None:
        _mark_edited_release_files(manifest, release_manifest)
    tool_files = [f.path for f in manifest.files if f.ownership == Ownership.TOOL]
    modified_files = [f.path for f in manifest.files if f.ownership == Ownership.TOOL_MODIFIED]
    user_files = [f.path for f in manifest.files if f.ownership == Ownership.USER]

    _log_preview(tool_files, modified_files, user_files)

    if interactive:
        if prompter is None:
            raise ValueError("An interactive legacy migration needs a prompter")
        try:
            accepted = prompter.confirm(
                f"Track {len(tool_files)} tool files, {len(modified_files)} edited tool files "
                f"and {len(user_files)} user files in {install_dir}?"
            )
        except SyncCancelled:
            accepted = False
        if not accepted:
            logger.info("Legacy migration declined", install_dir=str(install_dir))
            return LegacyMigrationResult(
                migrated=False,
                tool_files=tool_files,
                modified_files=modified_files,
                user_files=user_files,
                reason="declined",
            )

    write_install_manifest(install_dir, manifest)
    logger.info(
        "Migrated legacy install",
        install_dir=str(install_dir),
        reason=detection.reason,
        tool_files=len(tool_files),
        modified_files=len(modified_files),
        user_files=len(user_files),
    )
    return LegacyMigrationResult(
        migrated=True,
        tool_files=tool_files,
        modified_files=modified_files,
        user_files=user_files,
        manifest=manifest,
        reason=detection.reason,
    )
