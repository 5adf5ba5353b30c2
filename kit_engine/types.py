"""Kit engine domain types."""

from __future__ import annotations

from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .constants import MANIFEST_SCHEMA_VERSION


class Ownership(StrEnum):
    TOOL = "tool"
    USER = "user"
    TOOL_MODIFIED = "tool-modified"


class Scope(BaseModel):
    """Installation scope, passed explicitly to every call that needs it."""

    model_config = ConfigDict(frozen=True)

    is_global: bool = False

    @property
    def label(self) -> Literal["global", "local"]:
        return "global" if self.is_global else "local"

    @classmethod
    def from_label(cls, label: str) -> Scope:
        if label not in ("global", "local"):
            raise ValueError(f"Unknown scope: {label}")
        return cls(is_global=label == "global")


class _ManifestModel(BaseModel):
    """Persisted documents use camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TrackedFile(_ManifestModel):
    path: str
    checksum: str
    ownership: Ownership
    installed_version: str
    base_checksum: str | None = None


class InstallManifest(_ManifestModel):
    kit_name: str
    version: str
    scope: Literal["global", "local"] = "local"
    manifest_version: str = MANIFEST_SCHEMA_VERSION
    files: list[TrackedFile] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_paths(self) -> InstallManifest:
        seen: set[str] = set()
        for entry in self.files:
            if entry.path in seen:
                raise ValueError(f"Duplicate manifest entry: {entry.path}")
            seen.add(entry.path)
        return self

    def find(self, rel_path: str) -> TrackedFile | None:
        return next((f for f in self.files if f.path == rel_path), None)

    def by_path(self) -> dict[str, TrackedFile]:
        return {f.path: f for f in self.files}


class ReleaseManifestFile(BaseModel):
    path: str
    checksum: str | None = None
    size: int | None = None


class ReleaseManifest(BaseModel):
    """Tool-owned paths of one release. Never mutated by the engine."""

    version: str = "unknown"
    files: list[ReleaseManifestFile] = Field(default_factory=list)
    deletions: list[str] = Field(default_factory=list)

    @field_validator("files", mode="before")
    @classmethod
    def _accept_plain_paths(cls, value: object) -> object:
        if isinstance(value, list):
            return [{"path": item} if isinstance(item, str) else item for item in value]
        return value

    def contains(self, rel_path: str) -> bool:
        return any(f.path == rel_path for f in self.files)

    def find_file(self, rel_path: str) -> ReleaseManifestFile | None:
        return next((f for f in self.files if f.path == rel_path), None)

    def paths(self) -> set[str]:
        return {f.path for f in self.files}


# --- Change planner ---


class FileAction(StrEnum):
    CREATE = "create"
    SKIP = "skip"
    OVERWRITE = "overwrite"
    CONFLICT = "conflict"


class ConflictChoice(StrEnum):
    KEEP = "keep"
    OVERWRITE = "overwrite"
    CANCEL = "cancel"


class MergeOptions(BaseModel):
    include_globs: list[str] = Field(default_factory=list)
    exclude_globs: list[str] = Field(default_factory=list)
    scope: Scope = Field(default_factory=Scope)
    dry_run: bool = False


class FileOutcome(BaseModel):
    path: str
    action: FileAction
    skipped: bool = False
    reason: str | None = None
    error: str | None = None
    written: bool = False


class InstalledFile(BaseModel):
    path: str
    matches_release: bool


class MergeResult(BaseModel):
    outcomes: list[FileOutcome] = Field(default_factory=list)
    installed: list[InstalledFile] = Field(default_factory=list)
    cancelled: bool = False
    dry_run: bool = False

    def _count(self, action: FileAction, *, written: bool | None = None) -> int:
        return sum(
            1 for o in self.outcomes if o.action == action and o.error is None and (written is None or o.written == written)
        )

    @property
    def created(self) -> int:
        return self._count(FileAction.CREATE)

    @property
    def overwritten(self) -> int:
        return self._count(FileAction.OVERWRITE) + self._count(FileAction.CONFLICT, written=True)

    @property
    def skipped(self) -> int:
        return sum(1 for o in self.outcomes if o.skipped and o.error is None)

    @property
    def conflicts(self) -> int:
        return sum(1 for o in self.outcomes if o.action == FileAction.CONFLICT)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.error is not None)

    @property
    def failures(self) -> list[str]:
        return [f"{o.path}: {o.error}" for o in self.outcomes if o.error is not None]


# --- Tracker ---


class FileTrackInfo(BaseModel):
    file_path: str
    relative_path: str
    installed_version: str
    matches_release: bool = False


class TrackResult(BaseModel):
    manifest: InstallManifest
    pruned: list[TrackedFile] = Field(default_factory=list)
    changed: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)
    total: int = 0


# --- Legacy migration ---


class LegacyDetectionResult(BaseModel):
    is_legacy: bool
    reason: Literal["no-manifest", "invalid-manifest", "old-format", "current", "empty"]


class LegacyMigrationResult(BaseModel):
    migrated: bool
    tool_files: list[str] = Field(default_factory=list)
    modified_files: list[str] = Field(default_factory=list)
    user_files: list[str] = Field(default_factory=list)
    manifest: InstallManifest | None = None
    reason: str | None = None


# --- Layout migration ---


class MigrationStatus(StrEnum):
    NONE = "none"
    RECOMMENDED = "recommended"
    REQUIRED = "required"


class MigrationDetectionResult(BaseModel):
    status: MigrationStatus
    pending: list[str] = Field(default_factory=list)
    overlapping: list[str] = Field(default_factory=list)
    conflicting: list[str] = Field(default_factory=list)


class LayoutMigrationOptions(BaseModel):
    interactive: bool = False
    backup: bool = True
    dry_run: bool = False


class LayoutAction(BaseModel):
    kind: Literal["move", "dedupe", "skip-conflict"]
    path: str


class LayoutMigrationResult(BaseModel):
    status: MigrationStatus
    actions: list[LayoutAction] = Field(default_factory=list)
    moved: list[str] = Field(default_factory=list)
    deduplicated: list[str] = Field(default_factory=list)
    conflicts: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    backup_path: str | None = None
    dry_run: bool = False
    declined: bool = False


class LayoutMove(BaseModel):
    """A managed subdirectory relocated between releases (paths relative to the install dir)."""

    old: str
    new: str


# --- Deletions and uninstall ---


class DeletionResult(BaseModel):
    deleted: list[str] = Field(default_factory=list)
    preserved: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


class UninstallResult(BaseModel):
    removed: list[str] = Field(default_factory=list)
    preserved: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    manifest_removed: bool = False
    cancelled: bool = False


# --- Pipeline ---


class SyncPhase(StrEnum):
    IDLE = "idle"
    PLANNED = "planned"
    MERGING = "merging"
    TRACKING = "tracking"
    DONE = "done"
    FAILED = "failed"


class SyncStatus(StrEnum):
    SUCCESS = "success"
    PARTIAL = "partial"
    CANCELLED = "cancelled"
    INSTALLED_NOT_TRACKED = "installed-not-tracked"
    DRY_RUN = "dry-run"


class SyncOptions(BaseModel):
    scope: Scope = Field(default_factory=Scope)
    fresh: bool = False
    dry_run: bool = False
    include_globs: list[str] = Field(default_factory=list)
    exclude_globs: list[str] = Field(default_factory=list)
    backup: bool = True
    interactive: bool = False
    conflict_policy: ConflictChoice = ConflictChoice.KEEP


class SyncResult(BaseModel):
    phase: SyncPhase
    status: SyncStatus
    merge: MergeResult | None = None
    tracking: TrackResult | None = None
    layout: list[LayoutMigrationResult] = Field(default_factory=list)
    legacy: LegacyMigrationResult | None = None
    deletions: DeletionResult | None = None
    fresh_removed: list[str] = Field(default_factory=list)
    pending_tracking: list[FileTrackInfo] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    error: str | None = None
