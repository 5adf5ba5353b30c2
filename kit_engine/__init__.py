"""Kit engine: ownership-aware synchronization of release trees into installations."""

from __future__ import annotations

from .backup import cleanup_old_backups, create_directory_backup, restore_directory_backup
from .config_layers import (
    ConfigSource,
    ResolvedConfig,
    ResolvedFolders,
    deep_merge,
    load_config_document,
    resolve_config_layers,
    resolve_effective_config,
    resolve_folders,
    save_config_document,
)
from .constants import (
    LOCK_FILE,
    MANIFEST_FILE,
    MANIFEST_SCHEMA_VERSION,
    MIN_MANIFEST_VERSION,
    RELEASE_MANIFEST_FILE,
)
from .deletions import apply_deletions, expand_deletions
from .errors import (
    ConflictUnresolved,
    KitEngineError,
    LockError,
    ManifestWriteError,
    MigrationError,
    SourceTreeError,
    SyncCancelled,
    ValidationError,
)
from .layout import detect_migration, migrate_layout
from .legacy import detect_legacy, migrate_legacy
from .lock import acquire_lock, install_lock, is_locked, read_lock, release_lock
from .manifest_store import (
    compare_semver,
    compute_file_hash,
    load_install_manifest,
    read_install_manifest,
    write_install_manifest,
)
from .path_matcher import PathMatcher
from .paths import InstallPaths
from .planner import decide_action, merge
from .prompter import ConsolePrompter, NonInteractivePrompter, Prompter, make_prompter
from .release_manifest import find_release_manifest, load_release_manifest, parse_release_manifest
from .sync import retry_tracking, sync_release
from .tracker import build_manifest, build_track_list, track_installation
from .types import (
    ConflictChoice,
    DeletionResult,
    FileAction,
    FileOutcome,
    FileTrackInfo,
    InstallManifest,
    LayoutMigrationOptions,
    LayoutMigrationResult,
    LayoutMove,
    LegacyDetectionResult,
    LegacyMigrationResult,
    MergeOptions,
    MergeResult,
    MigrationDetectionResult,
    MigrationStatus,
    Ownership,
    ReleaseManifest,
    Scope,
    SyncOptions,
    SyncPhase,
    SyncResult,
    SyncStatus,
    TrackedFile,
    TrackResult,
    UninstallResult,
)
from .uninstall import uninstall_kit

__all__ = [
    # backup
    "cleanup_old_backups",
    "create_directory_backup",
    "restore_directory_backup",
    # config_layers
    "ConfigSource",
    "ResolvedConfig",
    "ResolvedFolders",
    "deep_merge",
    "load_config_document",
    "resolve_config_layers",
    "resolve_effective_config",
    "resolve_folders",
    "save_config_document",
    # constants
    "LOCK_FILE",
    "MANIFEST_FILE",
    "MANIFEST_SCHEMA_VERSION",
    "MIN_MANIFEST_VERSION",
    "RELEASE_MANIFEST_FILE",
    # deletions
    "apply_deletions",
    "expand_deletions",
    # errors
    "ConflictUnresolved",
    "KitEngineError",
    "LockError",
    "ManifestWriteError",
    "MigrationError",
    "SourceTreeError",
    "SyncCancelled",
    "ValidationError",
    # layout
    "detect_migration",
    "migrate_layout",
    # legacy
    "detect_legacy",
    "migrate_legacy",
    # lock
    "acquire_lock",
    "install_lock",
    "is_locked",
    "read_lock",
    "release_lock",
    # manifest_store
    "compare_semver",
    "compute_file_hash",
    "load_install_manifest",
    "read_install_manifest",
    "write_install_manifest",
    # path_matcher
    "PathMatcher",
    # paths
    "InstallPaths",
    # planner
    "decide_action",
    "merge",
    # prompter
    "ConsolePrompter",
    "NonInteractivePrompter",
    "Prompter",
    "make_prompter",
    # release_manifest
    "find_release_manifest",
    "load_release_manifest",
    "parse_release_manifest",
    # sync
    "retry_tracking",
    "sync_release",
    # tracker
    "build_manifest",
    "build_track_list",
    "track_installation",
    # types
    "ConflictChoice",
    "DeletionResult",
    "FileAction",
    "FileOutcome",
    "FileTrackInfo",
    "InstallManifest",
    "LayoutMigrationOptions",
    "LayoutMigrationResult",
    "LayoutMove",
    "LegacyDetectionResult",
    "LegacyMigrationResult",
    "MergeOptions",
    "MergeResult",
    "MigrationDetectionResult",
    "MigrationStatus",
    "Ownership",
    "ReleaseManifest",
    "Scope",
    "SyncOptions",
    "SyncPhase",
    "SyncResult",
    "SyncStatus",
    "TrackedFile",
    "TrackResult",
    "UninstallResult",
    # uninstall
    "uninstall_kit",
]
