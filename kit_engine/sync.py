"""End-to-end release synchronization.

One run walks IDLE -> PLANNED -> MERGING -> TRACKING -> DONE. A hard error
during MERGING or TRACKING leaves the run in FAILED. The only parallel work
is checksum computation inside the tracker.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from .deletions import apply_deletions
from .errors import KitEngineError, ManifestWriteError, SourceTreeError
from .fs_utils import prune_empty_dirs
from .layout import migrate_layout
from .legacy import detect_legacy, migrate_legacy
from .lock import install_lock
from .logger import logger
from .manifest_store import read_install_manifest, remove_entries
from .path_matcher import PathMatcher
from .planner import merge
from .prompter import make_prompter
from .release_manifest import find_release_manifest
from .tracker import ProgressCallback, build_track_list, track_installation
from .types import (
    FileTrackInfo,
    InstallManifest,
    LayoutMigrationOptions,
    LayoutMigrationResult,
    LayoutMove,
    LegacyMigrationResult,
    MergeOptions,
    ReleaseManifest,
    Scope,
    SyncOptions,
    SyncPhase,
    SyncResult,
    SyncStatus,
    TrackResult,
)
from .uninstall import plan_uninstall

if TYPE_CHECKING:
    from .prompter import Prompter

# Allowed phase transitions
_TRANSITIONS = {
    SyncPhase.IDLE: {SyncPhase.PLANNED},
    SyncPhase.PLANNED: {SyncPhase.MERGING, SyncPhase.DONE},
    SyncPhase.MERGING: {SyncPhase.TRACKING, SyncPhase.FAILED},
    SyncPhase.TRACKING: {SyncPhase.DONE, SyncPhase.FAILED},
    SyncPhase.DONE: set(),
    SyncPhase.FAILED: set(),
}


class SyncRun:
    """Phase bookkeeping for one sync."""

    def __init__(self, install_dir: Path) -> None:
        self.install_dir = install_dir
        self.phase = SyncPhase.IDLE

    def advance(self, phase: SyncPhase) -> None:
        if phase not in _TRANSITIONS[self.phase]:
            raise RuntimeError(f"Invalid sync transition {self.phase} -> {phase}")
        logger.debug("Sync phase", install_dir=str(self.install_dir), previous=str(self.phase), phase=str(phase))
        self.phase = phase

    def fail(self) -> None:
        if SyncPhase.FAILED in _TRANSITIONS[self.phase]:
            self.advance(SyncPhase.FAILED)


def _remap_manifest(manifest: InstallManifest, move: LayoutMove, result: LayoutMigrationResult) -> None:
    """Carry ownership history along with files a layout migration moved."""
    old_prefix = move.old.strip("/") + "/"
    new_prefix = move.new.strip("/") + "/"
    by_path = manifest.by_path()

    for rel_path in result.moved:
        entry = by_path.pop(old_prefix + rel_path, None)
        new_path = new_prefix + rel_path
        if entry is not None and new_path not in by_path:
            by_path[new_path] = entry.model_copy(update={"path": new_path})
    for rel_path in result.deduplicated:
        by_path.pop(old_prefix + rel_path, None)

    manifest.files = sorted(by_path.values(), key=lambda f: f.path)


def _run_layout_moves(
    install_dir: Path,
    moves: list[LayoutMove],
    options: SyncOptions,
    prompter: Prompter,
    manifest: InstallManifest | None,
) -> list[LayoutMigrationResult]:
    layout_options = LayoutMigrationOptions(
        interactive=options.interactive,
        backup=options.backup,
        dry_run=options.dry_run,
    )
    results = []
    for move in moves:
        result = migrate_layout(install_dir / move.new, install_dir / move.old, layout_options, prompter=prompter)
        if manifest is not None and not result.dry_run:
            _remap_manifest(manifest, move, result)
        results.append(result)
    return results


def _remove_for_fresh(install_dir: Path, manifest: InstallManifest, dry_run: bool) -> list[str]:
    """Remove unmodified tool files so the release installs clean."""
    remove, _ = plan_uninstall(install_dir, manifest.files)
    if dry_run:
        return remove

    removed = []
    for rel_path in remove:
        full_path = install_dir / rel_path
        try:
            full_path.unlink()
        except OSError as err:
            logger.warning("Failed to remove file for fresh install", path=rel_path, error=str(err))
            continue
        prune_empty_dirs(full_path.parent, install_dir)
        removed.append(rel_path)

    remove_entries(manifest, removed)
    logger.info("Removed tool files for fresh install", removed=len(removed), kept=len(manifest.files))
    return removed


def _dry_run(
    release_dir: Path,
    install_dir: Path,
    options: SyncOptions,
    *,
    run: SyncRun,
    release_manifest: ReleaseManifest | None,
    prompter: Prompter,
    layout_moves: list[LayoutMove],
) -> SyncResult:
    existing = read_install_manifest(install_dir)
    layout = _run_layout_moves(install_dir, layout_moves, options, prompter, None)

    detection = detect_legacy(install_dir)
    legacy = LegacyMigrationResult(migrated=False, reason=detection.reason)

    fresh_removed: list[str] = []
    if options.fresh and existing is not None:
        fresh_removed = _remove_for_fresh(install_dir, existing, dry_run=True)

    merge_result = merge(
        release_dir,
        install_dir,
        MergeOptions(
            include_globs=options.include_globs,
            exclude_globs=options.exclude_globs,
            scope=options.scope,
            dry_run=True,
        ),
        prompter=prompter,
        install_manifest=existing,
    )

    deletions = None
    if release_manifest is not None and release_manifest.deletions:
        deletions = apply_deletions(
            install_dir,
            release_manifest.deletions,
            existing,
            release_manifest=release_manifest,
            protected={o.path for o in merge_result.outcomes},
            dry_run=True,
        )

    run.advance(SyncPhase.DONE)
    return SyncResult(
        phase=run.phase,
        status=SyncStatus.DRY_RUN,
        merge=merge_result,
        layout=layout,
        legacy=legacy,
        deletions=deletions,
        fresh_removed=fresh_removed,
    )


def sync_release(
    release_dir: Path,
    install_dir: Path,
    options: SyncOptions | None = None,
    *,
    kit_name: str,
    version: str | None = None,
    release_manifest: ReleaseManifest | None = None,
    prompter: Prompter | None = None,
    layout_moves: list[LayoutMove] | None = None,
    on_progress: ProgressCallback | None = None,
    concurrency: int | None = None,
) -> SyncResult:
    """Install or upgrade a release into install_dir and record provenance.

    Malformed input (globs, release manifest) raises ValidationError before
    anything is written. A missing release tree raises SourceTreeError.
    """
    release_dir = Path(release_dir)
    install_dir = Path(install_dir)
    options = options or SyncOptions()
    layout_moves = layout_moves or []
    run = SyncRun(install_dir)

    PathMatcher.validate_patterns([*options.include_globs, *options.exclude_globs])
    if not release_dir.is_dir():
        raise SourceTreeError(f"Release tree not found or not a directory: {release_dir}")
    if release_manifest is None:
        release_manifest = find_release_manifest(release_dir)
    version = version or (release_manifest.version if release_manifest else "unknown")
    prompter = prompter or make_prompter(options.interactive, options.conflict_policy)

    logger.info(
        "Starting sync",
        kit=kit_name,
        version=version,
        release=str(release_dir),
        install_dir=str(install_dir),
        scope=options.scope.label,
        fresh=options.fresh,
        dry_run=options.dry_run,
    )
    run.advance(SyncPhase.PLANNED)

    if options.dry_run:
        return _dry_run(
            release_dir,
            install_dir,
            options,
            run=run,
            release_manifest=release_manifest,
            prompter=prompter,
            layout_moves=layout_moves,
        )

    with install_lock(install_dir):
        existing = read_install_manifest(install_dir)
        layout = _run_layout_moves(install_dir, layout_moves, options, prompter, existing)

        legacy = None
        if detect_legacy(install_dir).is_legacy:
            legacy = migrate_legacy(
                install_dir,
                release_manifest,
                kit_name,
                version,
                scope=options.scope,
                interactive=options.interactive,
                prompter=prompter,
                concurrency=concurrency,
            )
            if legacy.manifest is not None:
                existing = legacy.manifest
            elif legacy.reason == "declined":
                # Without a backfill, pre-existing files would be left untracked
                run.advance(SyncPhase.DONE)
                logger.warning("Sync cancelled: legacy install not migrated", install_dir=str(install_dir))
                return SyncResult(
                    phase=run.phase,
                    status=SyncStatus.CANCELLED,
                    layout=layout,
                    legacy=legacy,
                    warnings=["legacy install was not migrated; nothing was installed"],
                )

        fresh_removed: list[str] = []
        if options.fresh and existing is not None:
            fresh_removed = _remove_for_fresh(install_dir, existing, dry_run=False)

        run.advance(SyncPhase.MERGING)
        try:
            merge_result = merge(
                release_dir,
                install_dir,
                MergeOptions(
                    include_globs=options.include_globs,
                    exclude_globs=options.exclude_globs,
                    scope=options.scope,
                ),
                prompter=prompter,
                install_manifest=existing,
            )
        except KitEngineError:
            run.fail()
            raise

        deletions = None
        if release_manifest is not None and release_manifest.deletions and not merge_result.cancelled:
            deletions = apply_deletions(
                install_dir,
                release_manifest.deletions,
                existing,
                release_manifest=release_manifest,
                protected={f.path for f in merge_result.installed},
            )

        result = SyncResult(
            phase=run.phase,
            status=SyncStatus.SUCCESS,
            merge=merge_result,
            layout=layout,
            legacy=legacy,
            deletions=deletions,
            fresh_removed=fresh_removed,
        )
        if merge_result.failed:
            result.warnings.append(f"{merge_result.failed} file(s) failed to install")
            result.warnings.extend(merge_result.failures)

        # Files written before a cancel are tracked too
        run.advance(SyncPhase.TRACKING)
        track_list = build_track_list(install_dir, merge_result.installed, version)
        try:
            result.tracking = track_installation(
                install_dir,
                track_list,
                release_manifest=release_manifest,
                existing=existing,
                kit_name=kit_name,
                version=version,
                scope=options.scope,
                concurrency=concurrency,
                on_progress=on_progress,
            )
        except ManifestWriteError as err:
            run.fail()
            logger.error("Files installed but manifest not written", install_dir=str(install_dir), error=str(err))
            result.phase = run.phase
            result.status = SyncStatus.INSTALLED_NOT_TRACKED
            result.pending_tracking = track_list
            result.error = str(err)
            return result

    run.advance(SyncPhase.DONE)
    result.phase = run.phase
    if merge_result.cancelled:
        result.status = SyncStatus.CANCELLED
    elif merge_result.failed:
        result.status = SyncStatus.PARTIAL

    logger.info(
        "Sync finished",
        status=str(result.status),
        created=merge_result.created,
        overwritten=merge_result.overwritten,
        skipped=merge_result.skipped,
        failed=merge_result.failed,
    )
    return result


def retry_tracking(
    install_dir: Path,
    pending: list[FileTrackInfo],
    *,
    kit_name: str,
    version: str,
    scope: Scope,
    release_manifest: ReleaseManifest | None = None,
    concurrency: int | None = None,
) -> TrackResult:
    """Run only the tracking phase for files an earlier sync installed."""
    install_dir = Path(install_dir)
    with install_lock(install_dir):
        return track_installation(
            install_dir,
            pending,
            release_manifest=release_manifest,
            existing=read_install_manifest(install_dir),
            kit_name=kit_name,
            version=version,
            scope=scope,
            concurrency=concurrency,
        )
