"""Sync a release tree into an installation directory."""

from __future__ import annotations

import json
import sys
from pathlib import Path

from kit_engine.sync import sync_release
from kit_engine.types import Scope, SyncOptions, SyncStatus

USAGE = "Usage: python scripts/sync_release.py <release-dir> <install-dir> [kit-name] [--global] [--fresh] [--dry-run] [--interactive]"


def main() -> None:
    args = [a for a in sys.argv[1:] if not a.startswith("--")]
    flags = {a for a in sys.argv[1:] if a.startswith("--")}
    unknown = flags - {"--global", "--fresh", "--dry-run", "--interactive"}
    if len(args) < 2 or unknown:
        print(USAGE, file=sys.stderr)
        sys.exit(1)

    release_dir = Path(args[0])
    install_dir = Path(args[1])
    kit_name = args[2] if len(args) > 2 else release_dir.name

    options = SyncOptions(
        scope=Scope(is_global="--global" in flags),
        fresh="--fresh" in flags,
        dry_run="--dry-run" in flags,
        interactive="--interactive" in flags,
    )
    result = sync_release(release_dir, install_dir, options, kit_name=kit_name)
    print(json.dumps(result.model_dump(mode="json"), indent=2))

    if result.status in (SyncStatus.CANCELLED, SyncStatus.INSTALLED_NOT_TRACKED):
        sys.exit(1)


if __name__ == "__main__":
    try:
        main()
    except Exception as err:
        print(err, file=sys.stderr)
        sys.exit(1)
