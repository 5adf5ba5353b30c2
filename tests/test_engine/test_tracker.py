"""Tests for checksum computation and ownership classification."""

from __future__ import annotations

import os
import threading
from typing import TYPE_CHECKING

import pytest

from kit_engine.constants import MANIFEST_FILE
from kit_engine.errors import ManifestWriteError
from kit_engine.manifest_store import load_install_manifest
from kit_engine.tracker import build_manifest, build_track_list, compute_checksums, track_installation
from kit_engine.types import (
    FileTrackInfo,
    InstalledFile,
    InstallManifest,
    Ownership,
    ReleaseManifest,
    Scope,
    TrackedFile,
)

from .conftest import sha256_text, write_files

if TYPE_CHECKING:
    from pathlib import Path


class TestTracker:
    @pytest.fixture(autouse=True)
    def _setup(self, install_dir: Path) -> None:
        self.install_dir = install_dir
        install_dir.mkdir(parents=True)

    def _info(self, rel_path: str, *, matches_release: bool, version: str = "1.0.0") -> FileTrackInfo:
        return FileTrackInfo(
            file_path=str(self.install_dir / rel_path),
            relative_path=rel_path,
            installed_version=version,
            matches_release=matches_release,
        )

    def _build(
        self,
        files: list[FileTrackInfo],
        release: list[str],
        existing: InstallManifest | None = None,
        version: str = "1.0.0",
    ):
        return build_manifest(
            self.install_dir,
            files,
            release_manifest=ReleaseManifest(version=version, files=release),
            existing=existing,
            kit_name="engineer",
            version=version,
            scope=Scope(),
        )

    def test_release_file_matching_release_is_tool_with_baseline(self) -> None:
        write_files(self.install_dir, {"skills/a.md": "a"})

        result = self._build([self._info("skills/a.md", matches_release=True)], ["skills/a.md"])

        entry = result.manifest.find("skills/a.md")
        assert entry.ownership == Ownership.TOOL
        assert entry.checksum == sha256_text("a")
        assert entry.base_checksum == entry.checksum
        assert result.changed == ["skills/a.md"]

    def test_file_outside_release_is_user(self) -> None:
        write_files(self.install_dir, {"notes.md": "mine"})

        result = self._build([self._info("notes.md", matches_release=False)], ["skills/a.md"])

        entry = result.manifest.find("notes.md")
        assert entry.ownership == Ownership.USER
        assert entry.base_checksum is None

    def test_edited_tool_file_becomes_tool_modified(self) -> None:
        write_files(self.install_dir, {"a.md": "edited"})
        existing = InstallManifest(
            kit_name="engineer",
            version="1.0.0",
            files=[
                TrackedFile(
                    path="a.md",
                    checksum=sha256_text("original"),
                    ownership=Ownership.TOOL,
                    installed_version="1.0.0",
                    base_checksum=sha256_text("original"),
                )
            ],
        )

        result = self._build([self._info("a.md", matches_release=False)], ["a.md"], existing)

        entry = result.manifest.find("a.md")
        assert entry.ownership == Ownership.TOOL_MODIFIED
        assert entry.checksum == sha256_text("edited")
        assert entry.base_checksum == sha256_text("original")
        assert result.changed == ["a.md"]

    def test_tool_modified_file_refreshed_from_release_returns_to_tool(self) -> None:
        write_files(self.install_dir, {"a.md": "v2"})
        existing = InstallManifest(
            kit_name="engineer",
            version="1.0.0",
            files=[
                TrackedFile(
                    path="a.md",
                    checksum=sha256_text("edited"),
                    ownership=Ownership.TOOL_MODIFIED,
                    installed_version="1.0.0",
                    base_checksum=sha256_text("v1"),
                )
            ],
        )

        result = self._build([self._info("a.md", matches_release=True, version="2.0.0")], ["a.md"], existing, "2.0.0")

        entry = result.manifest.find("a.md")
        assert entry.ownership == Ownership.TOOL
        assert entry.base_checksum == sha256_text("v2")
        assert entry.installed_version == "2.0.0"

    def test_user_file_in_release_stays_user_unless_it_matches(self) -> None:
        write_files(self.install_dir, {"a.md": "mine"})
        existing = InstallManifest(
            kit_name="engineer",
            version="1.0.0",
            files=[TrackedFile(path="a.md", checksum=sha256_text("mine"), ownership=Ownership.USER, installed_version="1.0.0")],
        )

        result = self._build([self._info("a.md", matches_release=False)], ["a.md"], existing)

        assert result.manifest.find("a.md").ownership == Ownership.USER
        assert result.changed == []

    def test_kept_untracked_release_file_is_user_without_shipped_checksum(self) -> None:
        write_files(self.install_dir, {"a.md": "mine"})

        result = self._build([self._info("a.md", matches_release=False)], ["a.md"])

        entry = result.manifest.find("a.md")
        assert entry.ownership == Ownership.USER
        assert entry.base_checksum is None

    def test_kept_untracked_release_file_is_tool_modified_against_shipped_checksum(self) -> None:
        write_files(self.install_dir, {"a.md": "mine"})
        release = ReleaseManifest(version="1.0.0", files=[{"path": "a.md", "checksum": sha256_text("release")}])

        result = build_manifest(
            self.install_dir,
            [self._info("a.md", matches_release=False)],
            release_manifest=release,
            existing=None,
            kit_name="engineer",
            version="1.0.0",
            scope=Scope(),
        )

        entry = result.manifest.find("a.md")
        assert entry.ownership == Ownership.TOOL_MODIFIED
        assert entry.checksum == sha256_text("mine")
        assert entry.base_checksum == sha256_text("release")

    def test_entries_not_in_input_are_carried_over(self) -> None:
        write_files(self.install_dir, {"a.md": "a", "notes.md": "mine"})
        existing = InstallManifest(
            kit_name="engineer",
            version="1.0.0",
            files=[TrackedFile(path="notes.md", checksum=sha256_text("mine"), ownership=Ownership.USER, installed_version="0.9.0")],
        )

        result = self._build([self._info("a.md", matches_release=True)], ["a.md"], existing)

        assert [f.path for f in result.manifest.files] == ["a.md", "notes.md"]
        assert result.manifest.find("notes.md").installed_version == "0.9.0"

    def test_entries_missing_on_disk_are_pruned(self) -> None:
        write_files(self.install_dir, {"a.md": "a"})
        existing = InstallManifest(
            kit_name="engineer",
            version="1.0.0",
            files=[
                TrackedFile(path="gone.md", checksum="x", ownership=Ownership.TOOL, installed_version="1.0.0", base_checksum="x")
            ],
        )

        result = self._build([self._info("a.md", matches_release=True)], ["a.md"], existing)

        assert [f.path for f in result.pruned] == ["gone.md"]
        assert result.manifest.find("gone.md") is None

    def test_unreadable_file_is_counted_as_failed(self) -> None:
        write_files(self.install_dir, {"a.md": "a"})

        result = self._build(
            [self._info("a.md", matches_release=True), self._info("missing.md", matches_release=True)],
            ["a.md", "missing.md"],
        )

        assert result.failed == ["missing.md"]
        assert result.total == 2
        assert [f.path for f in result.manifest.files] == ["a.md"]

    def test_track_installation_is_idempotent(self) -> None:
        write_files(self.install_dir, {"a.md": "a", "b/c.md": "c", "notes.md": "mine"})
        files = [
            self._info("a.md", matches_release=True),
            self._info("b/c.md", matches_release=True),
            self._info("notes.md", matches_release=False),
        ]
        release = ReleaseManifest(version="1.0.0", files=["a.md", "b/c.md"])
        kwargs = {"release_manifest": release, "kit_name": "engineer", "version": "1.0.0", "scope": Scope()}

        track_installation(self.install_dir, files, existing=None, **kwargs)
        first = (self.install_dir / MANIFEST_FILE).read_bytes()
        second_result = track_installation(
            self.install_dir, files, existing=load_install_manifest(self.install_dir), **kwargs
        )
        second = (self.install_dir / MANIFEST_FILE).read_bytes()

        assert first == second
        assert second_result.changed == []
        assert second_result.pruned == []

    def test_track_installation_propagates_write_failure(self, monkeypatch: pytest.MonkeyPatch) -> None:
        write_files(self.install_dir, {"a.md": "a"})

        def broken_replace(src: object, dst: object) -> None:
            raise OSError("read-only filesystem")

        monkeypatch.setattr(os, "replace", broken_replace)
        with pytest.raises(ManifestWriteError):
            track_installation(
                self.install_dir,
                [self._info("a.md", matches_release=True)],
                release_manifest=ReleaseManifest(files=["a.md"]),
                existing=None,
                kit_name="engineer",
                version="1.0.0",
                scope=Scope(),
            )

    def test_manifest_records_scope(self) -> None:
        write_files(self.install_dir, {"a.md": "a"})
        result = build_manifest(
            self.install_dir,
            [self._info("a.md", matches_release=True)],
            release_manifest=None,
            existing=None,
            kit_name="engineer",
            version="1.0.0",
            scope=Scope(is_global=True),
        )
        assert result.manifest.scope == "global"


class TestComputeChecksums:
    def test_results_keep_input_order(self, tmp_path: Path) -> None:
        names = [f"f{i:03d}.txt" for i in range(50)]
        write_files(tmp_path, {name: name for name in names})
        files = [FileTrackInfo(file_path=str(tmp_path / n), relative_path=n, installed_version="1") for n in names]

        checksums = compute_checksums(files, concurrency=8)

        assert checksums == [sha256_text(n) for n in names]

    def test_progress_is_monotonic_and_complete(self, tmp_path: Path) -> None:
        names = [f"f{i}.txt" for i in range(40)]
        write_files(tmp_path, {name: name for name in names})
        files = [FileTrackInfo(file_path=str(tmp_path / n), relative_path=n, installed_version="1") for n in names]
        calls: list[tuple[int, int]] = []
        lock = threading.Lock()

        def on_progress(processed: int, total: int) -> None:
            with lock:
                calls.append((processed, total))

        compute_checksums(files, concurrency=6, on_progress=on_progress)

        assert [c[0] for c in calls] == list(range(1, 41))
        assert {c[1] for c in calls} == {40}

    def test_empty_input(self) -> None:
        assert compute_checksums([]) == []


def test_build_track_list_joins_install_dir(tmp_path: Path) -> None:
    track_list = build_track_list(
        tmp_path,
        [InstalledFile(path="a/b.md", matches_release=True), InstalledFile(path="c.md", matches_release=False)],
        "3.0.0",
    )
    assert [t.file_path for t in track_list] == [str(tmp_path / "a/b.md"), str(tmp_path / "c.md")]
    assert [t.matches_release for t in track_list] == [True, False]
    assert {t.installed_version for t in track_list} == {"3.0.0"}
