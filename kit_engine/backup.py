"""Directory snapshots taken before a layout migration mutates anything."""

from __future__ import annotations

import secrets
import shutil
import time
from pathlib import Path

from .constants import BACKUP_PREFIX
from .logger import logger

KEEP_BACKUPS = 3


def is_backup_dir(name: str) -> bool:
    return name.startswith(".") and BACKUP_PREFIX in name


def backup_path_for(source_dir: Path) -> Path:
    """Sibling path like .skills-backup-20260101T120000Z-a1b2c3."""
    stamp = time.strftime("%Y%m%dT%H%M%SZ", time.gmtime())
    return source_dir.parent / f".{source_dir.name}{BACKUP_PREFIX}{stamp}-{secrets.token_hex(3)}"


def create_directory_backup(source_dir: Path) -> Path:
    """Copy source_dir to a fresh sibling backup directory."""
    backup_dir = backup_path_for(source_dir)
    try:
        shutil.copytree(source_dir, backup_dir, symlinks=True)
    except OSError:
        # Don't leave a half-written snapshot behind
        shutil.rmtree(backup_dir, ignore_errors=True)
        raise
    logger.info("Created backup", source=str(source_dir), backup=str(backup_dir))
    return backup_dir


def restore_directory_backup(backup_dir: Path, target_dir: Path) -> None:
    """Replace target_dir with the contents of backup_dir."""
    if not backup_dir.is_dir():
        raise FileNotFoundError(f"Backup not found: {backup_dir}")
    if target_dir.exists():
        shutil.rmtree(target_dir)
    shutil.copytree(backup_dir, target_dir, symlinks=True)
    logger.info("Restored backup", backup=str(backup_dir), target=str(target_dir))


def list_backups(source_dir: Path) -> list[Path]:
    """Backups of source_dir, newest first."""
    parent = source_dir.parent
    if not parent.is_dir():
        return []
    prefix = f".{source_dir.name}{BACKUP_PREFIX}"
    backups = [entry for entry in parent.iterdir() if entry.is_dir() and entry.name.startswith(prefix)]
    return sorted(backups, key=lambda p: p.name, reverse=True)


def cleanup_old_backups(source_dir: Path, keep: int = KEEP_BACKUPS) -> list[Path]:
    """Remove all but the newest `keep` backups of source_dir."""
    removed = []
    for backup_dir in list_backups(source_dir)[keep:]:
        try:
            shutil.rmtree(backup_dir)
        except OSError as err:
            logger.warning("Failed to remove old backup", backup=str(backup_dir), error=str(err))
            continue
        removed.append(backup_dir)
    return removed
