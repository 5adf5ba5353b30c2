"""Tests for install manifest persistence, hashing, and semver."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest

from kit_engine.constants import MANIFEST_FILE
from kit_engine.errors import ManifestWriteError, ValidationError
from kit_engine.manifest_store import (
    compare_semver,
    compute_file_hash,
    load_install_manifest,
    prune_orphans,
    read_install_manifest,
    serialize_manifest,
    write_install_manifest,
)
from kit_engine.types import InstallManifest, Ownership, TrackedFile

from .conftest import read_raw_manifest, sha256_text, write_files, write_raw_manifest

if TYPE_CHECKING:
    from pathlib import Path


def _manifest(*paths: str) -> InstallManifest:
    return InstallManifest(
        kit_name="engineer",
        version="1.0.0",
        files=[
            TrackedFile(
                path=p,
                checksum=sha256_text(p),
                ownership=Ownership.TOOL,
                installed_version="1.0.0",
                base_checksum=sha256_text(p),
            )
            for p in paths
        ],
    )


class TestManifestStore:
    @pytest.fixture(autouse=True)
    def _setup(self, install_dir: Path) -> None:
        self.install_dir = install_dir

    def test_load_returns_none_when_no_manifest(self) -> None:
        assert load_install_manifest(self.install_dir) is None

    def test_write_then_load(self) -> None:
        write_install_manifest(self.install_dir, _manifest("skills/a.md", "rules/b.md"))
        loaded = load_install_manifest(self.install_dir)
        assert loaded is not None
        assert loaded.kit_name == "engineer"
        assert [f.path for f in loaded.files] == ["rules/b.md", "skills/a.md"]
        assert loaded.find("skills/a.md").ownership == Ownership.TOOL

    def test_persisted_keys_are_camel_case(self) -> None:
        write_install_manifest(self.install_dir, _manifest("a.md"))
        raw = read_raw_manifest(self.install_dir)
        assert raw["kitName"] == "engineer"
        assert raw["manifestVersion"] == "1.0.0"
        entry = raw["files"][0]
        assert set(entry) == {"path", "checksum", "ownership", "installedVersion", "baseChecksum"}

    def test_user_entries_omit_base_checksum(self) -> None:
        manifest = InstallManifest(
            kit_name="engineer",
            version="1.0.0",
            files=[TrackedFile(path="x.md", checksum="abc", ownership=Ownership.USER, installed_version="1.0.0")],
        )
        write_install_manifest(self.install_dir, manifest)
        assert "baseChecksum" not in read_raw_manifest(self.install_dir)["files"][0]

    def test_serialization_is_independent_of_entry_order(self) -> None:
        forward = _manifest("a.md", "b.md", "c.md")
        backward = _manifest("c.md", "b.md", "a.md")
        assert serialize_manifest(forward) == serialize_manifest(backward)

    def test_write_leaves_no_temp_file(self) -> None:
        write_install_manifest(self.install_dir, _manifest("a.md"))
        assert sorted(p.name for p in self.install_dir.iterdir()) == [MANIFEST_FILE]

    def test_failed_write_raises_and_keeps_previous_manifest(self, monkeypatch: pytest.MonkeyPatch) -> None:
        write_install_manifest(self.install_dir, _manifest("a.md"))
        before = (self.install_dir / MANIFEST_FILE).read_bytes()

        def broken_replace(src: object, dst: object) -> None:
            raise OSError("disk full")

        monkeypatch.setattr(os, "replace", broken_replace)
        with pytest.raises(ManifestWriteError):
            write_install_manifest(self.install_dir, _manifest("a.md", "b.md"))

        assert (self.install_dir / MANIFEST_FILE).read_bytes() == before
        assert not (self.install_dir / (MANIFEST_FILE + ".tmp")).exists()

    def test_invalid_yaml_raises_validation_error(self) -> None:
        self.install_dir.mkdir(parents=True)
        (self.install_dir / MANIFEST_FILE).write_text("files: [unclosed", encoding="utf-8")
        with pytest.raises(ValidationError):
            load_install_manifest(self.install_dir)

    def test_duplicate_paths_are_rejected(self) -> None:
        entry = {"path": "a.md", "checksum": "x", "ownership": "tool", "installedVersion": "1.0.0"}
        write_raw_manifest(self.install_dir, {"kitName": "engineer", "version": "1.0.0", "files": [entry, entry]})
        with pytest.raises(ValidationError):
            load_install_manifest(self.install_dir)

    def test_unknown_ownership_is_rejected(self) -> None:
        entry = {"path": "a.md", "checksum": "x", "ownership": "ck", "installedVersion": "1.0.0"}
        write_raw_manifest(self.install_dir, {"kitName": "engineer", "version": "1.0.0", "files": [entry]})
        with pytest.raises(ValidationError):
            load_install_manifest(self.install_dir)

    def test_read_install_manifest_treats_invalid_as_absent(self) -> None:
        write_raw_manifest(self.install_dir, {"version": "1.0.0"})
        assert read_install_manifest(self.install_dir) is None

    def test_prune_orphans_drops_missing_files(self) -> None:
        write_files(self.install_dir, {"kept.md": "kept"})
        manifest = _manifest("kept.md", "gone.md")
        pruned = prune_orphans(self.install_dir, manifest)
        assert [f.path for f in pruned] == ["gone.md"]
        assert [f.path for f in manifest.files] == ["kept.md"]


class TestHashing:
    def test_compute_file_hash_is_sha256_of_content(self, tmp_path: Path) -> None:
        file_path = tmp_path / "hashtest.txt"
        file_path.write_text("hello world", encoding="utf-8")
        assert compute_file_hash(file_path) == sha256_text("hello world")

    def test_compute_file_hash_handles_files_larger_than_one_chunk(self, tmp_path: Path) -> None:
        content = "x" * (200 * 1024)
        file_path = tmp_path / "big.txt"
        file_path.write_text(content, encoding="utf-8")
        assert compute_file_hash(file_path) == sha256_text(content)


class TestCompareSemver:
    def test_equal_versions(self) -> None:
        assert compare_semver("1.0.0", "1.0.0") == 0

    def test_ordering(self) -> None:
        assert compare_semver("1.2.0", "1.10.0") < 0
        assert compare_semver("2.0.0", "1.9.9") > 0

    def test_leading_v_and_prerelease_are_ignored(self) -> None:
        assert compare_semver("v1.4.0", "1.4.0") == 0
        assert compare_semver("1.4.0-beta.2", "1.4.0") == 0

    def test_missing_parts_count_as_zero(self) -> None:
        assert compare_semver("1.0", "1.0.0") == 0
        assert compare_semver("0.9", "1.0.0") < 0
