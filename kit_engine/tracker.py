"""Checksum and ownership tracking for installed files.

Classification rules, applied per file:

1. Paths listed in the release manifest are candidates for TOOL, others USER.
2. A TOOL candidate whose content equals the release copy gets a fresh
   baseline (base_checksum := checksum).
3. A previously TOOL or TOOL_MODIFIED entry whose checksum no longer equals
   its base_checksum is demoted to TOOL_MODIFIED. The old base is kept.
4. A previously USER entry that does not match the release copy stays USER.
   An untracked release file whose local content was kept over the release
   copy becomes TOOL_MODIFIED against the shipped checksum, or USER when the
   release ships no checksum. It is never given a baseline of its own.
5. Anything else takes its candidate ownership.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from .config import default_concurrency
from .logger import logger
from .manifest_store import compute_file_hash, prune_orphans, write_install_manifest
from .types import (
    FileTrackInfo,
    InstalledFile,
    InstallManifest,
    Ownership,
    ReleaseManifest,
    ReleaseManifestFile,
    Scope,
    TrackedFile,
    TrackResult,
)

ProgressCallback = Callable[[int, int], None]


def build_track_list(
    install_dir: Path,
    installed: list[InstalledFile],
    installed_version: str,
) -> list[FileTrackInfo]:
    """Turn the planner's installed paths into tracker input."""
    return [
        FileTrackInfo(
            file_path=str(install_dir / item.path),
            relative_path=item.path,
            installed_version=installed_version,
            matches_release=item.matches_release,
        )
        for item in installed
    ]


def compute_checksums(
    files: list[FileTrackInfo],
    *,
    concurrency: int | None = None,
    on_progress: ProgressCallback | None = None,
) -> list[str | None]:
    """Hash every file on a bounded pool. Failed reads yield None."""
    total = len(files)
    results: list[str | None] = [None] * total
    if total == 0:
        return results

    lock = threading.Lock()
    processed = 0

    def work(index: int) -> None:
        nonlocal processed
        try:
            results[index] = compute_file_hash(Path(files[index].file_path))
        except OSError as err:
            logger.debug("Failed to checksum file", path=files[index].relative_path, error=str(err))
        with lock:
            processed += 1
            if on_progress is not None:
                on_progress(processed, total)

    workers = max(1, min(concurrency or default_concurrency(), total))
    with ThreadPoolExecutor(max_workers=workers) as executor:
        # list() re-raises anything unexpected from a worker
        list(executor.map(work, range(total)))

    return results


def _classify_kept(checksum: str, shipped: ReleaseManifestFile | None) -> tuple[Ownership, str | None]:
    if shipped is None or not shipped.checksum:
        return Ownership.USER, None
    if shipped.checksum == checksum:
        return Ownership.TOOL, checksum
    return Ownership.TOOL_MODIFIED, shipped.checksum


def classify(
    info: FileTrackInfo,
    checksum: str,
    release_manifest: ReleaseManifest | None,
    existing: TrackedFile | None,
) -> TrackedFile:
    in_release = release_manifest is not None and release_manifest.contains(info.relative_path)
    candidate = Ownership.TOOL if in_release else Ownership.USER

    if candidate == Ownership.TOOL and info.matches_release:
        ownership, base = Ownership.TOOL, checksum
    elif existing is not None and existing.ownership in (Ownership.TOOL, Ownership.TOOL_MODIFIED) and (
        existing.base_checksum is not None and checksum != existing.base_checksum
    ):
        ownership, base = Ownership.TOOL_MODIFIED, existing.base_checksum
    elif existing is not None and existing.ownership == Ownership.USER:
        ownership, base = Ownership.USER, None
    elif candidate == Ownership.TOOL and existing is None and not info.matches_release:
        # Local file kept over the release copy
        ownership, base = _classify_kept(checksum, release_manifest.find_file(info.relative_path))
    elif candidate == Ownership.TOOL:
        ownership, base = Ownership.TOOL, checksum
    else:
        ownership, base = Ownership.USER, None

    installed_version = info.installed_version
    if existing is not None and existing.checksum == checksum and existing.ownership == ownership:
        # Untouched content keeps the version that put it there
        installed_version = existing.installed_version if not info.matches_release else info.installed_version

    return TrackedFile(
        path=info.relative_path,
        checksum=checksum,
        ownership=ownership,
        installed_version=installed_version,
        base_checksum=base,
    )


def build_manifest(
    install_dir: Path,
    files: list[FileTrackInfo],
    *,
    release_manifest: ReleaseManifest | None,
    existing: InstallManifest | None,
    kit_name: str,
    version: str,
    scope: Scope,
    concurrency: int | None = None,
    on_progress: ProgressCallback | None = None,
) -> TrackResult:
    """Classify files and reconcile them with the existing manifest. No writes."""
    previous = existing.by_path() if existing else {}
    checksums = compute_checksums(files, concurrency=concurrency, on_progress=on_progress)

    entries: dict[str, TrackedFile] = {}
    changed: list[str] = []
    failed: list[str] = []

    for info, checksum in zip(files, checksums, strict=True):
        if checksum is None:
            failed.append(info.relative_path)
            continue
        old = previous.get(info.relative_path)
        entry = classify(info, checksum, release_manifest, old)
        entries[entry.path] = entry
        if old is None or old.ownership != entry.ownership:
            changed.append(entry.path)
            if old is not None:
                logger.info(
                    "Ownership changed",
                    path=entry.path,
                    previous=str(old.ownership),
                    current=str(entry.ownership),
                )

    # Carry over entries this run did not touch
    for path, old in previous.items():
        if path not in entries:
            entries[path] = old

    manifest = InstallManifest(
        kit_name=kit_name,
        version=version,
        scope=scope.label,
        files=sorted(entries.values(), key=lambda f: f.path),
    )
    pruned = prune_orphans(install_dir, manifest)
    for entry in pruned:
        logger.info("Pruned orphaned manifest entry", path=entry.path)

    if failed:
        logger.warning("Failed to track some files", failed=len(failed), total=len(files))

    return TrackResult(manifest=manifest, pruned=pruned, changed=sorted(changed), failed=failed, total=len(files))


def track_installation(
    install_dir: Path,
    files: list[FileTrackInfo],
    *,
    release_manifest: ReleaseManifest | None,
    existing: InstallManifest | None,
    kit_name: str,
    version: str,
    scope: Scope,
    concurrency: int | None = None,
    on_progress: ProgressCallback | None = None,
) -> TrackResult:
    """Classify files and atomically persist the updated manifest.

    Raises ManifestWriteError when the manifest cannot be written.
    """
    result = build_manifest(
        install_dir,
        files,
        release_manifest=release_manifest,
        existing=existing,
        kit_name=kit_name,
        version=version,
        scope=scope,
        concurrency=concurrency,
        on_progress=on_progress,
    )
    write_install_manifest(install_dir, result.manifest)
    logger.info(
        "Tracked installed files",
        tracked=len(result.manifest.files),
        changed=len(result.changed),
        pruned=len(result.pruned),
    )
    return result
