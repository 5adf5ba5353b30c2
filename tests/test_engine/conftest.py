"""Shared fixtures for kit engine tests."""

from __future__ import annotations

import hashlib
import json
from typing import TYPE_CHECKING, Any

import pytest
import yaml

from kit_engine.constants import MANIFEST_FILE, RELEASE_MANIFEST_FILE

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture()
def kit_tmp(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Create a temp directory, chdir into it and isolate engine settings."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("KIT_ENGINE_HOME", str(tmp_path / "engine-home"))
    monkeypatch.setenv("KIT_ENGINE_GLOBAL_DIR", str(tmp_path / "global-install"))
    monkeypatch.setenv("KIT_ENGINE_CONCURRENCY", "4")
    return tmp_path


@pytest.fixture()
def release_dir(kit_tmp: Path) -> Path:
    path = kit_tmp / "release"
    path.mkdir()
    return path


@pytest.fixture()
def install_dir(kit_tmp: Path) -> Path:
    return kit_tmp / "project" / ".claude"


def sha256_text(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def write_files(root: Path, files: dict[str, str]) -> None:
    """Write text files below root, creating parents."""
    for rel_path, content in files.items():
        full_path = root / rel_path
        full_path.parent.mkdir(parents=True, exist_ok=True)
        full_path.write_text(content, encoding="utf-8")


def create_release(
    root: Path,
    files: dict[str, str],
    *,
    version: str = "1.0.0",
    tool_paths: list[str] | None = None,
    deletions: list[str] | None = None,
) -> Path:
    """Write a release tree plus its release-manifest.json.

    Every file is listed as tool-owned unless tool_paths narrows it.
    """
    write_files(root, files)
    listed = tool_paths if tool_paths is not None else sorted(files)
    manifest: dict[str, Any] = {
        "version": version,
        "files": [{"path": p, "checksum": sha256_text(files[p])} for p in listed if p in files],
        "deletions": deletions or [],
    }
    (root / RELEASE_MANIFEST_FILE).write_text(json.dumps(manifest), encoding="utf-8")
    return root


def write_raw_manifest(install_dir: Path, data: dict[str, Any]) -> None:
    """Write an install manifest document as-is, bypassing validation."""
    install_dir.mkdir(parents=True, exist_ok=True)
    (install_dir / MANIFEST_FILE).write_text(yaml.safe_dump(data), encoding="utf-8")


def read_raw_manifest(install_dir: Path) -> dict[str, Any]:
    return yaml.safe_load((install_dir / MANIFEST_FILE).read_text(encoding="utf-8"))
