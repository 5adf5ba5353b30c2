"""File-by-file merge of a release tree onto an installation directory."""

from __future__ import annotations

import filecmp
import shutil
from pathlib import Path
from typing import TYPE_CHECKING

from .constants import NEVER_COPY_PATTERNS, RELEASE_MANIFEST_FILE, USER_CONFIG_PATTERNS
from .errors import ConflictUnresolved, SourceTreeError, SyncCancelled
from .logger import logger
from .manifest_store import compute_file_hash
from .path_matcher import PathMatcher, default_matcher
from .types import (
    ConflictChoice,
    FileAction,
    FileOutcome,
    InstalledFile,
    InstallManifest,
    MergeOptions,
    MergeResult,
    Ownership,
    TrackedFile,
)

if TYPE_CHECKING:
    from .prompter import Prompter

SELF_COPY_REASON = "File already exists at source location, skipping self-copy"
CONFLICT_KEPT_REASON = "conflict unresolved: local version kept"

# Release-tree bookkeeping that is never installed
_SOURCE_SKIP = {RELEASE_MANIFEST_FILE}


def scan_source_tree(source_tree: Path) -> list[str]:
    """Return every file under the release tree as a sorted POSIX relative path."""
    if not source_tree.is_dir():
        raise SourceTreeError(f"Release tree not found or not a directory: {source_tree}")

    results: list[str] = []

    def walk(directory: Path) -> None:
        try:
            entries = sorted(directory.iterdir())
        except OSError as err:
            raise SourceTreeError(f"Cannot read release tree at {directory}: {err}") from err
        for entry in entries:
            if entry.is_symlink():
                continue
            if entry.is_dir():
                walk(entry)
            elif entry.is_file():
                rel = entry.relative_to(source_tree).as_posix()
                if rel not in _SOURCE_SKIP:
                    results.append(rel)

    walk(source_tree)
    return results


def select_paths(paths: list[str], options: MergeOptions, matcher: PathMatcher = default_matcher) -> list[str]:
    """Apply include and exclude globs."""
    selected = []
    for rel_path in paths:
        if options.exclude_globs and matcher.is_match(rel_path, options.exclude_globs):
            continue
        if options.include_globs and not matcher.is_match(rel_path, options.include_globs):
            continue
        selected.append(rel_path)
    return selected


def _conflict_reason(tracked: TrackedFile | None) -> str:
    if tracked is None:
        return "untracked local file differs from release"
    if tracked.ownership == Ownership.USER:
        return "user-owned file differs from release"
    return "tool file was modified locally"


def decide_action(
    source_path: Path,
    target_path: Path,
    rel_path: str,
    tracked: TrackedFile | None,
    matcher: PathMatcher = default_matcher,
) -> FileOutcome:
    """Decide what to do with one file. Performs no writes."""
    if source_path.resolve() == target_path.resolve():
        return FileOutcome(path=rel_path, action=FileAction.SKIP, skipped=True, reason=SELF_COPY_REASON)

    if matcher.is_match(rel_path, NEVER_COPY_PATTERNS):
        return FileOutcome(path=rel_path, action=FileAction.SKIP, skipped=True, reason="security-sensitive file")

    if not target_path.exists() and not target_path.is_symlink():
        return FileOutcome(path=rel_path, action=FileAction.CREATE)

    if not target_path.is_file():
        return FileOutcome(
            path=rel_path,
            action=FileAction.SKIP,
            skipped=True,
            error="target exists and is not a regular file",
        )

    if matcher.is_match(rel_path, USER_CONFIG_PATTERNS):
        return FileOutcome(path=rel_path, action=FileAction.SKIP, skipped=True, reason="user configuration preserved")

    if filecmp.cmp(source_path, target_path, shallow=False):
        return FileOutcome(path=rel_path, action=FileAction.SKIP, skipped=True, reason="unchanged")

    if tracked is not None and tracked.ownership == Ownership.TOOL and tracked.base_checksum:
        if compute_file_hash(target_path) == tracked.base_checksum:
            return FileOutcome(path=rel_path, action=FileAction.OVERWRITE)

    return FileOutcome(path=rel_path, action=FileAction.CONFLICT, reason=_conflict_reason(tracked))


def _resolve_conflict(prompter: Prompter, rel_path: str, reason: str | None) -> ConflictChoice:
    """Ask how to resolve one conflict. Raises ConflictUnresolved when the local file is kept."""
    try:
        choice = prompter.choose(
            f"{rel_path}: {reason}. Keep local version or overwrite?",
            [ConflictChoice.KEEP, ConflictChoice.OVERWRITE, ConflictChoice.CANCEL],
        )
    except SyncCancelled:
        return ConflictChoice.CANCEL
    if choice == ConflictChoice.KEEP:
        raise ConflictUnresolved(rel_path)
    return choice


def _copy(source_path: Path, target_path: Path) -> None:
    target_path.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(source_path, target_path)


def merge(
    source_tree: Path,
    target_dir: Path,
    options: MergeOptions,
    *,
    prompter: Prompter,
    install_manifest: InstallManifest | None = None,
    matcher: PathMatcher = default_matcher,
) -> MergeResult:
    """Merge a release tree into target_dir, one file at a time.

    Per-file I/O errors are captured in the result. A cancel answer stops
    the remaining queue; files written before it are left in place.
    """
    source_tree = Path(source_tree)
    target_dir = Path(target_dir)
    PathMatcher.validate_patterns([*options.include_globs, *options.exclude_globs])

    paths = select_paths(scan_source_tree(source_tree), options, matcher)
    tracked_by_path = install_manifest.by_path() if install_manifest else {}
    result = MergeResult(dry_run=options.dry_run)

    logger.info(
        "Merging release tree",
        source=str(source_tree),
        target=str(target_dir),
        scope=options.scope.label,
        files=len(paths),
        dry_run=options.dry_run,
    )

    for index, rel_path in enumerate(paths):
        source_path = source_tree / rel_path
        target_path = target_dir / rel_path

        try:
            outcome = decide_action(source_path, target_path, rel_path, tracked_by_path.get(rel_path), matcher)
        except OSError as err:
            outcome = FileOutcome(path=rel_path, action=FileAction.SKIP, skipped=True, error=str(err))
            result.outcomes.append(outcome)
            logger.warning("Failed to inspect file", path=rel_path, error=str(err))
            continue

        if options.dry_run or outcome.error is not None:
            result.outcomes.append(outcome)
            continue

        if outcome.action == FileAction.CONFLICT:
            try:
                choice = _resolve_conflict(prompter, rel_path, outcome.reason)
            except ConflictUnresolved as err:
                outcome.skipped = True
                outcome.reason = CONFLICT_KEPT_REASON
                result.outcomes.append(outcome)
                result.installed.append(InstalledFile(path=rel_path, matches_release=False))
                logger.debug("Kept local version", path=err.path)
                continue

            if choice == ConflictChoice.CANCEL:
                outcome.skipped = True
                outcome.reason = "cancelled"
                result.outcomes.append(outcome)
                result.cancelled = True
                logger.warning("Merge cancelled by user", path=rel_path, remaining=len(paths) - index - 1)
                break

        if outcome.action in (FileAction.CREATE, FileAction.OVERWRITE, FileAction.CONFLICT):
            try:
                _copy(source_path, target_path)
            except OSError as err:
                outcome.error = str(err)
                result.outcomes.append(outcome)
                logger.warning("Failed to write file", path=rel_path, error=str(err))
                continue
            outcome.written = True
            result.installed.append(InstalledFile(path=rel_path, matches_release=True))
            logger.debug("Wrote file", path=rel_path, action=str(outcome.action))
        elif outcome.reason in ("unchanged", SELF_COPY_REASON):
            result.installed.append(InstalledFile(path=rel_path, matches_release=True))
        elif outcome.reason == "user configuration preserved":
            result.installed.append(InstalledFile(path=rel_path, matches_release=False))

        result.outcomes.append(outcome)

    logger.info(
        "Merge finished",
        created=result.created,
        overwritten=result.overwritten,
        skipped=result.skipped,
        failed=result.failed,
        cancelled=result.cancelled,
    )
    if result.failed:
        logger.warning("Some files could not be installed", failed=result.failed, failures=result.failures)

    return result
