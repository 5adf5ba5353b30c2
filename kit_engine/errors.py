"""Exceptions raised by the kit engine.

Per-file problems are collected into result models; only the errors below
cross the engine boundary.
"""

from __future__ import annotations


class KitEngineError(Exception):
    """Base class for kit engine errors."""


class ValidationError(KitEngineError, ValueError):
    """A manifest document or glob pattern is malformed.

    Always raised before any filesystem write happens.
    """


class SyncCancelled(KitEngineError):
    """The user aborted the run. Files already written are kept."""


class ConflictUnresolved(KitEngineError):
    """A conflicting file was left untouched by the user or the policy."""

    def __init__(self, path: str) -> None:
        super().__init__(f"conflict unresolved: {path}")
        self.path = path


class SourceTreeError(KitEngineError):
    """The release tree cannot be read at all."""


class ManifestWriteError(KitEngineError, OSError):
    """The install manifest could not be written atomically."""


class MigrationError(KitEngineError):
    """A layout migration failed structurally."""


class LockError(KitEngineError, RuntimeError):
    """Another run holds the installation lock."""
