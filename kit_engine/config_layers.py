"""Layered user configuration: defaults < global < local < explicit overrides."""

from __future__ import annotations

import copy
import json
import os
from enum import StrEnum
from pathlib import Path, PurePosixPath
from typing import Any

from pydantic import BaseModel, Field

from .constants import DEFAULT_FOLDERS
from .logger import logger
from .paths import InstallPaths
from .types import Scope


class ConfigSource(StrEnum):
    DEFAULT = "default"
    GLOBAL = "global"
    LOCAL = "local"
    OVERRIDE = "override"


class ResolvedConfig(BaseModel):
    merged: dict[str, Any] = Field(default_factory=dict)
    # Dotted leaf path -> layer that supplied it. Display only.
    sources: dict[str, ConfigSource] = Field(default_factory=dict)


class ResolvedFolders(BaseModel):
    docs: str
    plans: str
    docs_source: ConfigSource
    plans_source: ConfigSource


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge override into a copy of base.

    Nested objects merge key by key; scalars and arrays replace wholesale.
    """
    result = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def flatten_leaves(doc: dict[str, Any], prefix: str = "") -> dict[str, Any]:
    """Map dotted paths to leaf values. Arrays and empty objects are leaves."""
    leaves: dict[str, Any] = {}
    for key, value in doc.items():
        path = f"{prefix}.{key}" if prefix else key
        if isinstance(value, dict) and value:
            leaves.update(flatten_leaves(value, path))
        else:
            leaves[path] = value
    return leaves


def resolve_config_layers(
    global_doc: dict[str, Any] | None,
    local_doc: dict[str, Any] | None,
    defaults: dict[str, Any] | None = None,
    *,
    overrides: dict[str, Any] | None = None,
) -> ResolvedConfig:
    layers = [
        (ConfigSource.DEFAULT, defaults or {}),
        (ConfigSource.GLOBAL, global_doc or {}),
        (ConfigSource.LOCAL, local_doc or {}),
        (ConfigSource.OVERRIDE, overrides or {}),
    ]

    merged: dict[str, Any] = {}
    for _, doc in layers:
        merged = deep_merge(merged, doc)

    layer_leaves = [(source, flatten_leaves(doc)) for source, doc in layers]
    sources: dict[str, ConfigSource] = {}
    for path in flatten_leaves(merged):
        for source, leaves in reversed(layer_leaves):
            if path in leaves:
                sources[path] = source
                break

    return ResolvedConfig(merged=merged, sources=sources)


def load_config_document(path: Path) -> dict[str, Any] | None:
    """Read a JSON config document. Missing or malformed files yield None."""
    try:
        content = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except OSError as err:
        logger.warning("Failed to read config", path=str(path), error=str(err))
        return None

    try:
        doc = json.loads(content)
    except json.JSONDecodeError as err:
        logger.warning("Ignoring malformed config", path=str(path), error=str(err))
        return None

    if not isinstance(doc, dict):
        logger.warning("Ignoring config that is not a JSON object", path=str(path))
        return None
    return doc


def save_config_document(path: Path, doc: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".tmp")
    tmp_path.write_text(json.dumps(doc, indent=2, sort_keys=True) + "\n", encoding="utf-8")
    os.replace(tmp_path, path)


def global_config_path() -> Path:
    return InstallPaths.global_config()


def project_config_path(project_dir: Path, scope: Scope) -> Path:
    return InstallPaths.project_config(InstallPaths.install_dir(project_dir, scope))


def _valid_folder(value: object) -> bool:
    if not isinstance(value, str) or not value.strip():
        return False
    return ".." not in PurePosixPath(value.replace("\\", "/")).parts


def _folder_value(doc: dict[str, Any] | None, section: str, key: str, path: Path) -> str | None:
    if not doc or not isinstance(doc.get(section), dict):
        return None
    value = doc[section].get(key)
    if value is None:
        return None
    if not _valid_folder(value):
        logger.warning("Ignoring invalid folder setting", path=str(path), key=f"{section}.{key}", value=value)
        return None
    return value


def resolve_folders(
    project_dir: Path,
    scope: Scope,
    *,
    docs_dir: str | None = None,
    plans_dir: str | None = None,
) -> ResolvedFolders:
    """Resolve docs/plans folder names.

    Explicit argument, then project config (``paths``), then global config
    (``folders``), then the built-in defaults.
    """
    project_path = project_config_path(project_dir, scope)
    global_path = global_config_path()
    project_doc = load_config_document(project_path)
    global_doc = load_config_document(global_path)

    def pick(key: str, explicit: str | None) -> tuple[str, ConfigSource]:
        if explicit:
            return explicit, ConfigSource.OVERRIDE
        value = _folder_value(project_doc, "paths", key, project_path)
        if value is not None:
            return value, ConfigSource.LOCAL
        value = _folder_value(global_doc, "folders", key, global_path)
        if value is not None:
            return value, ConfigSource.GLOBAL
        return DEFAULT_FOLDERS[key], ConfigSource.DEFAULT

    docs, docs_source = pick("docs", docs_dir)
    plans, plans_source = pick("plans", plans_dir)
    return ResolvedFolders(docs=docs, plans=plans, docs_source=docs_source, plans_source=plans_source)


def resolve_effective_config(
    project_dir: Path,
    scope: Scope,
    overrides: dict[str, Any] | None = None,
    defaults: dict[str, Any] | None = None,
) -> ResolvedConfig:
    """Resolve the persisted global and project documents for one scope."""
    global_doc = load_config_document(global_config_path())
    # For a global install, its own .kit.json is the most specific layer
    local_doc = load_config_document(project_config_path(project_dir, scope))
    return resolve_config_layers(global_doc, local_doc, defaults, overrides=overrides)
