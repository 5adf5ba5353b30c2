"""Glob matching shared by include, exclude, protection, and deletion filters."""

from __future__ import annotations

from fnmatch import fnmatchcase
from pathlib import PurePosixPath

from .errors import ValidationError


def _normalize(path: str) -> str:
    normalized = path.replace("\\", "/")
    while normalized.startswith("./"):
        normalized = normalized[2:]
    return normalized


class PathMatcher:
    """One pattern dialect for every path filter in the engine.

    Patterns are matched against POSIX relative paths with fnmatch rules
    (``*`` also crosses ``/``), plus:

    - ``**/x`` matches ``x`` at any depth, including the root;
    - ``dir/`` matches everything below ``dir``;
    - a pattern without ``/`` also matches the file's base name.
    """

    def is_match(self, path: str, patterns: list[str]) -> bool:
        normalized = _normalize(path)
        return any(self._match_one(normalized, _normalize(pattern)) for pattern in patterns)

    def filter(self, paths: list[str], patterns: list[str]) -> list[str]:
        return [p for p in paths if self.is_match(p, patterns)]

    @staticmethod
    def is_glob(pattern: str) -> bool:
        return any(ch in pattern for ch in "*?[")

    @staticmethod
    def validate_patterns(patterns: list[str]) -> None:
        """Raise ValidationError for patterns the matcher cannot honor."""
        for pattern in patterns:
            if not isinstance(pattern, str) or not pattern.strip():
                raise ValidationError(f"Invalid glob pattern: {pattern!r}")
            posix = PurePosixPath(pattern.replace("\\", "/"))
            if posix.is_absolute() or ".." in posix.parts:
                raise ValidationError(f"Glob pattern must be relative without '..': {pattern}")
            if pattern.count("[") != pattern.count("]"):
                raise ValidationError(f"Unbalanced brackets in glob pattern: {pattern}")

    @staticmethod
    def _match_one(path: str, pattern: str) -> bool:
        if fnmatchcase(path, pattern):
            return True

        if pattern.endswith("/"):
            return path.startswith(pattern)

        if pattern.startswith("**/"):
            return PathMatcher._match_one(path, pattern[3:])

        if "/" not in pattern:
            return fnmatchcase(PurePosixPath(path).name, pattern)

        return False


# Shared instance; the matcher holds no state.
default_matcher = PathMatcher()
