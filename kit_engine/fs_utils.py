"""Filesystem utilities for the kit engine."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .backup import is_backup_dir
from .constants import ENGINE_FILES

if TYPE_CHECKING:
    from pathlib import Path


def list_files(root: Path, *, skip_engine_files: bool = False) -> list[str]:
    """Return every regular file under root as a sorted POSIX relative path.

    Symlinks and backup snapshots are never listed.
    """
    if not root.is_dir():
        return []

    results: list[str] = []

    def walk(dir_path: Path) -> None:
        for entry in sorted(dir_path.iterdir()):
            if entry.is_symlink():
                continue
            if entry.is_dir():
                if not is_backup_dir(entry.name):
                    walk(entry)
            elif entry.is_file():
                rel = entry.relative_to(root).as_posix()
                if skip_engine_files and rel in ENGINE_FILES:
                    continue
                results.append(rel)

    walk(root)
    return results


def prune_empty_dirs(start: Path, stop_at: Path) -> list[Path]:
    """Remove start and its empty parents, never going above stop_at."""
    removed: list[Path] = []
    current = start
    while current != stop_at and stop_at in current.parents:
        try:
            if any(current.iterdir()):
                break
            current.rmdir()
        except OSError:
            break
        removed.append(current)
        current = current.parent
    return removed


def remove_empty_tree(root: Path) -> list[Path]:
    """Remove every empty directory under root, deepest first. root itself included."""
    if not root.is_dir():
        return []
    removed: list[Path] = []
    for dir_path in sorted((p for p in root.rglob("*") if p.is_dir() and not p.is_symlink()), reverse=True):
        if not any(dir_path.iterdir()):
            dir_path.rmdir()
            removed.append(dir_path)
    if not any(root.iterdir()):
        root.rmdir()
        removed.append(root)
    return removed
