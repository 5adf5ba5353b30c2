"""Remove files a release marks as deprecated."""

from __future__ import annotations

from pathlib import Path

from .fs_utils import list_files, prune_empty_dirs
from .logger import logger
from .manifest_store import remove_entries
from .path_matcher import PathMatcher, default_matcher
from .types import DeletionResult, InstallManifest, Ownership, ReleaseManifest


def expand_deletions(install_dir: Path, patterns: list[str], matcher: PathMatcher = default_matcher) -> list[str]:
    """Resolve globs and literal paths (files or directories) to existing files."""
    all_files = list_files(install_dir, skip_engine_files=True)
    expanded: list[str] = []
    for pattern in patterns:
        if PathMatcher.is_glob(pattern):
            matches = [f for f in all_files if matcher.is_match(f, [pattern])]
            if matches:
                logger.debug("Deletion pattern matched", pattern=pattern, files=len(matches))
            expanded.extend(matches)
        else:
            literal = pattern.strip("/")
            if (install_dir / literal).is_dir():
                expanded.extend(f for f in all_files if f.startswith(literal + "/"))
            elif literal in all_files:
                expanded.append(literal)
    return sorted(set(expanded))


def _is_inside(path: Path, root: Path) -> bool:
    resolved = path.resolve()
    return resolved != root and root in resolved.parents


def apply_deletions(
    install_dir: Path,
    patterns: list[str],
    manifest: InstallManifest | None,
    *,
    release_manifest: ReleaseManifest | None = None,
    protected: set[str] | None = None,
    dry_run: bool = False,
    matcher: PathMatcher = default_matcher,
) -> DeletionResult:
    """Delete tool-owned or untracked files matching the release's deletion list.

    User-owned and locally modified tool files are preserved, as is anything
    the release still ships or `protected` names. Entries of deleted files
    are dropped from `manifest` in place.
    """
    result = DeletionResult()
    if not patterns:
        return result

    install_dir = Path(install_dir)
    root = install_dir.resolve()
    tracked = manifest.by_path() if manifest else {}
    shipped = (release_manifest.paths() if release_manifest else set()) | (protected or set())

    for rel_path in expand_deletions(install_dir, patterns, matcher):
        entry = tracked.get(rel_path)
        if rel_path in shipped:
            # Still part of the release; a deletion entry cannot remove it
            result.preserved.append(rel_path)
            continue
        if entry is not None and entry.ownership in (Ownership.USER, Ownership.TOOL_MODIFIED):
            result.preserved.append(rel_path)
            continue

        full_path = install_dir / rel_path
        if not _is_inside(full_path, root):
            logger.warning("Skipping deletion outside install dir", path=rel_path)
            result.errors.append(rel_path)
            continue

        if dry_run:
            result.deleted.append(rel_path)
            continue

        try:
            full_path.unlink()
        except OSError as err:
            logger.warning("Failed to delete file", path=rel_path, error=str(err))
            result.errors.append(rel_path)
            continue
        prune_empty_dirs(full_path.parent, install_dir)
        result.deleted.append(rel_path)

    if manifest is not None and not dry_run:
        remove_entries(manifest, result.deleted)

    if result.deleted or result.preserved:
        logger.info(
            "Applied release deletions",
            deleted=len(result.deleted),
            preserved=len(result.preserved),
            errors=len(result.errors),
            dry_run=dry_run,
        )
    return result
