"""Ownership-aware removal of an installed kit."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from .errors import SyncCancelled
from .fs_utils import prune_empty_dirs
from .lock import install_lock
from .logger import logger
from .manifest_store import (
    compute_file_hash,
    delete_install_manifest,
    load_install_manifest,
    remove_entries,
    write_install_manifest,
)
from .types import Ownership, TrackedFile, UninstallResult

if TYPE_CHECKING:
    from .prompter import Prompter


def current_ownership(install_dir: Path, entry: TrackedFile) -> Ownership:
    """Ownership as it stands on disk now, not as last recorded."""
    if entry.ownership != Ownership.TOOL or not entry.base_checksum:
        return entry.ownership
    if compute_file_hash(install_dir / entry.path) != entry.base_checksum:
        return Ownership.TOOL_MODIFIED
    return Ownership.TOOL


def plan_uninstall(install_dir: Path, files: list[TrackedFile], *, force: bool = False) -> tuple[list[str], list[str]]:
    """Split tracked files into (remove, preserve)."""
    remove: list[str] = []
    preserve: list[str] = []
    for entry in files:
        if not (install_dir / entry.path).is_file():
            continue
        ownership = current_ownership(install_dir, entry)
        if ownership == Ownership.TOOL or (ownership == Ownership.TOOL_MODIFIED and force):
            remove.append(entry.path)
        else:
            preserve.append(entry.path)
    return remove, preserve


def uninstall_kit(
    install_dir: Path,
    *,
    force: bool = False,
    dry_run: bool = False,
    interactive: bool = False,
    prompter: Prompter | None = None,
) -> UninstallResult:
    """Remove tool-owned files; keep user files and, unless forced, local edits.

    The manifest is rewritten with the preserved entries, or deleted when
    nothing is left to track.
    """
    install_dir = Path(install_dir)
    manifest = load_install_manifest(install_dir)
    if manifest is None:
        logger.info("Nothing to uninstall", install_dir=str(install_dir))
        return UninstallResult()

    remove, preserve = plan_uninstall(install_dir, manifest.files, force=force)
    result = UninstallResult(preserved=preserve)

    if dry_run:
        result.removed = remove
        return result

    if interactive:
        if prompter is None:
            raise ValueError("An interactive uninstall needs a prompter")
        try:
            accepted = prompter.confirm(f"Remove {len(remove)} files and keep {len(preserve)} from {install_dir}?")
        except SyncCancelled:
            accepted = False
        if not accepted:
            result.cancelled = True
            return result

    with install_lock(install_dir, "uninstall"):
        for rel_path in remove:
            full_path = install_dir / rel_path
            try:
                full_path.unlink()
            except OSError as err:
                logger.warning("Failed to remove file", path=rel_path, error=str(err))
                result.errors.append(f"{rel_path}: {err}")
                continue
            prune_empty_dirs(full_path.parent, install_dir)
            result.removed.append(rel_path)

        # Drop entries for removed files and for files already gone
        remove_entries(manifest, result.removed)
        manifest.files = [f for f in manifest.files if (install_dir / f.path).is_file()]
        if manifest.files:
            write_install_manifest(install_dir, manifest)
        else:
            result.manifest_removed = delete_install_manifest(install_dir)

    logger.info(
        "Uninstalled kit",
        install_dir=str(install_dir),
        removed=len(result.removed),
        preserved=len(result.preserved),
        errors=len(result.errors),
    )
    return result
