"""Environment settings, .env parsing, and engine defaults."""

from __future__ import annotations

import os
from pathlib import Path

from .logger import logger


def read_env_file(keys: list[str]) -> dict[str, str]:
    """Parse .env file and return values for requested keys.

    Values are returned, never loaded into os.environ.
    """
    env_file = Path.cwd() / ".env"
    try:
        content = env_file.read_text()
    except OSError:
        return {}

    result: dict[str, str] = {}
    wanted = set(keys)

    for line in content.splitlines():
        trimmed = line.strip()
        if not trimmed or trimmed.startswith("#"):
            continue
        eq_idx = trimmed.find("=")
        if eq_idx == -1:
            continue
        key = trimmed[:eq_idx].strip()
        if key not in wanted:
            continue
        value = trimmed[eq_idx + 1 :].strip()
        if (value.startswith('"') and value.endswith('"')) or (value.startswith("'") and value.endswith("'")):
            value = value[1:-1]
        if value:
            result[key] = value

    return result


_ENV_KEYS = ["KIT_ENGINE_HOME", "KIT_ENGINE_GLOBAL_DIR", "KIT_ENGINE_CONCURRENCY"]


def get_setting(key: str, default: str = "") -> str:
    """Read a setting from the environment, falling back to .env."""
    value = os.environ.get(key)
    if value:
        return value
    return read_env_file(_ENV_KEYS).get(key, default)


def engine_home() -> Path:
    """Root of the engine's own global config: ~/.kit-engine by default."""
    configured = get_setting("KIT_ENGINE_HOME")
    return Path(configured).expanduser() if configured else Path.home() / ".kit-engine"


def global_install_dir() -> Path:
    """Global (per-user) installation directory: ~/.claude by default."""
    configured = get_setting("KIT_ENGINE_GLOBAL_DIR")
    return Path(configured).expanduser() if configured else Path.home() / ".claude"


def default_concurrency() -> int:
    """Worker count for checksum batches.

    Twice the CPU count (checksumming is I/O bound), capped at 32.
    KIT_ENGINE_CONCURRENCY overrides it.
    """
    configured = get_setting("KIT_ENGINE_CONCURRENCY")
    if configured:
        try:
            return max(1, int(configured))
        except ValueError:
            logger.warning("Ignoring invalid KIT_ENGINE_CONCURRENCY", value=configured)
    return max(1, min(32, (os.cpu_count() or 1) * 2))
