"""Kit engine constants."""

from __future__ import annotations

MANIFEST_FILE = "kit-manifest.yaml"
RELEASE_MANIFEST_FILE = "release-manifest.json"
LOCK_FILE = ".kit-lock"
BACKUP_PREFIX = "-backup-"

# Schema version written into every install manifest
MANIFEST_SCHEMA_VERSION = "1.0.0"
# Manifests older than this are treated as legacy installs
MIN_MANIFEST_VERSION = "1.0.0"

LOCAL_INSTALL_DIR = ".claude"
PROJECT_CONFIG_FILE = ".kit.json"
GLOBAL_CONFIG_FILE = "config.json"

DEFAULT_FOLDERS = {"docs": "docs", "plans": "plans"}

# Never copied from a release, even on first install
NEVER_COPY_PATTERNS = [
    ".env",
    ".env.local",
    ".env.*.local",
    "*.key",
    "*.pem",
    "*.p12",
    "node_modules/**",
    ".git/**",
]

# Copied on first install only; afterwards the user's copy wins
USER_CONFIG_PATTERNS = [
    ".gitignore",
    ".repomixignore",
    ".mcp.json",
    ".kitignore",
    "CLAUDE.md",
]

# Engine bookkeeping that scans and migrations must not treat as content
ENGINE_FILES = {MANIFEST_FILE, MANIFEST_FILE + ".tmp", LOCK_FILE}
