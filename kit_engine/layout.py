"""Detect and migrate installations whose directory layout changed between releases.

A release may relocate a managed subdirectory (for example skills moving
from ``skills/`` to ``agents/skills/``). Files still sitting under the old
location are consolidated into the new one without losing user edits:

- files missing at the new location are moved;
- byte-identical duplicates are removed from the old location;
- files that differ are left in place and reported as conflicts.
"""

from __future__ import annotations

import filecmp
import shutil
from pathlib import Path
from typing import TYPE_CHECKING

from .backup import cleanup_old_backups, create_directory_backup, restore_directory_backup
from .errors import MigrationError, SyncCancelled
from .fs_utils import list_files, remove_empty_tree
from .logger import logger
from .types import (
    LayoutAction,
    LayoutMigrationOptions,
    LayoutMigrationResult,
    MigrationDetectionResult,
    MigrationStatus,
)

if TYPE_CHECKING:
    from .prompter import Prompter


def detect_migration(new_dir: Path, current_dir: Path) -> MigrationDetectionResult:
    """Compare the old layout (current_dir) against the new one (new_dir)."""
    new_dir = Path(new_dir)
    current_dir = Path(current_dir)
    old_files = list_files(current_dir)
    if not old_files:
        return MigrationDetectionResult(status=MigrationStatus.NONE)

    pending: list[str] = []
    overlapping: list[str] = []
    conflicting: list[str] = []
    for rel_path in old_files:
        target = new_dir / rel_path
        if not target.is_file():
            pending.append(rel_path)
        elif filecmp.cmp(current_dir / rel_path, target, shallow=False):
            overlapping.append(rel_path)
        else:
            conflicting.append(rel_path)

    if pending:
        status = MigrationStatus.REQUIRED
    elif conflicting:
        status = MigrationStatus.RECOMMENDED
    else:
        status = MigrationStatus.NONE

    return MigrationDetectionResult(
        status=status,
        pending=pending,
        overlapping=overlapping,
        conflicting=conflicting,
    )


def plan_layout_actions(detection: MigrationDetectionResult) -> list[LayoutAction]:
    actions = [LayoutAction(kind="move", path=p) for p in detection.pending]
    actions += [LayoutAction(kind="dedupe", path=p) for p in detection.overlapping]
    actions += [LayoutAction(kind="skip-conflict", path=p) for p in detection.conflicting]
    return sorted(actions, key=lambda a: a.path)


def _undo_moves(new_dir: Path, moved: list[str]) -> None:
    for rel_path in moved:
        (new_dir / rel_path).unlink(missing_ok=True)


def _drop_consolidated_copies(
    old_dir: Path,
    detection: MigrationDetectionResult,
    options: LayoutMigrationOptions,
) -> LayoutMigrationResult:
    """Remove old-location files that already exist byte-identically at the new location."""
    actions = [LayoutAction(kind="dedupe", path=p) for p in detection.overlapping]
    result = LayoutMigrationResult(status=MigrationStatus.NONE, actions=actions, dry_run=options.dry_run)
    if options.dry_run or not actions:
        return result

    for action in actions:
        try:
            (old_dir / action.path).unlink()
        except OSError as err:
            logger.warning("Failed to remove consolidated copy", path=action.path, error=str(err))
            result.errors.append(f"{action.path}: {err}")
            continue
        result.deduplicated.append(action.path)
    remove_empty_tree(old_dir)
    logger.info("Removed consolidated copies", old=str(old_dir), deduplicated=len(result.deduplicated))
    return result


def migrate_layout(
    new_dir: Path,
    old_dir: Path,
    options: LayoutMigrationOptions | None = None,
    *,
    prompter: Prompter | None = None,
) -> LayoutMigrationResult:
    """Consolidate old_dir into new_dir.

    Raises MigrationError when the move fails part way; the old directory is
    restored from its backup first when one was taken.
    """
    new_dir = Path(new_dir)
    old_dir = Path(old_dir)
    options = options or LayoutMigrationOptions()

    detection = detect_migration(new_dir, old_dir)
    if detection.status == MigrationStatus.NONE:
        logger.debug("No layout migration needed", old=str(old_dir), new=str(new_dir))
        return _drop_consolidated_copies(old_dir, detection, options)

    actions = plan_layout_actions(detection)
    result = LayoutMigrationResult(status=detection.status, actions=actions, dry_run=options.dry_run)

    if options.dry_run:
        logger.info(
            "Layout migration plan",
            old=str(old_dir),
            new=str(new_dir),
            move=len(detection.pending),
            dedupe=len(detection.overlapping),
            conflicts=len(detection.conflicting),
        )
        result.conflicts = list(detection.conflicting)
        return result

    if options.interactive:
        if prompter is None:
            raise ValueError("An interactive layout migration needs a prompter")
        try:
            accepted = prompter.confirm(
                f"Move {len(detection.pending)} files from {old_dir} to {new_dir} "
                f"({len(detection.conflicting)} conflicting files stay in place)?"
            )
        except SyncCancelled:
            accepted = False
        if not accepted:
            logger.info("Layout migration declined", old=str(old_dir))
            result.declined = True
            return result

    backup_dir: Path | None = None
    if options.backup:
        try:
            backup_dir = create_directory_backup(old_dir)
        except OSError as err:
            raise MigrationError(f"Failed to back up {old_dir}: {err}") from err
        result.backup_path = str(backup_dir)

    try:
        for action in actions:
            source = old_dir / action.path
            if action.kind == "move":
                target = new_dir / action.path
                target.parent.mkdir(parents=True, exist_ok=True)
                shutil.move(source, target)
                result.moved.append(action.path)
            elif action.kind == "dedupe":
                source.unlink()
                result.deduplicated.append(action.path)
            else:
                result.conflicts.append(action.path)
        remove_empty_tree(old_dir)
    except OSError as err:
        logger.error("Layout migration failed", old=str(old_dir), error=str(err))
        if backup_dir is not None:
            _undo_moves(new_dir, result.moved)
            restore_directory_backup(backup_dir, old_dir)
        raise MigrationError(f"Layout migration from {old_dir} failed: {err}") from err

    if result.conflicts:
        logger.warning("Conflicting files left at old location", old=str(old_dir), files=result.conflicts)
    if backup_dir is not None:
        cleanup_old_backups(old_dir)

    logger.info(
        "Layout migrated",
        old=str(old_dir),
        new=str(new_dir),
        moved=len(result.moved),
        deduplicated=len(result.deduplicated),
        conflicts=len(result.conflicts),
    )
    return result
