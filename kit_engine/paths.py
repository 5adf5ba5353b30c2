"""Installation path construction."""

from __future__ import annotations

from pathlib import Path

from .config import engine_home, global_install_dir
from .constants import GLOBAL_CONFIG_FILE, LOCAL_INSTALL_DIR, LOCK_FILE, MANIFEST_FILE, PROJECT_CONFIG_FILE
from .types import Scope


class InstallPaths:
    """Centralized path construction for installation directories."""

    @staticmethod
    def install_dir(project_dir: Path, scope: Scope) -> Path:
        """Global: ~/.claude (configurable). Local: {project}/.claude"""
        if scope.is_global:
            return global_install_dir()
        return Path(project_dir) / LOCAL_INSTALL_DIR

    @staticmethod
    def manifest_file(install_dir: Path) -> Path:
        """{install_dir}/kit-manifest.yaml"""
        return install_dir / MANIFEST_FILE

    @staticmethod
    def lock_file(install_dir: Path) -> Path:
        """{install_dir}/.kit-lock"""
        return install_dir / LOCK_FILE

    @staticmethod
    def project_config(install_dir: Path) -> Path:
        """{install_dir}/.kit.json"""
        return install_dir / PROJECT_CONFIG_FILE

    @staticmethod
    def global_config() -> Path:
        """~/.kit-engine/config.json (configurable)"""
        return engine_home() / GLOBAL_CONFIG_FILE
