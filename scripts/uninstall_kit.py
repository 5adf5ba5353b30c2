"""Remove an installed kit, keeping user files."""

from __future__ import annotations

import sys
from pathlib import Path

from kit_engine.uninstall import uninstall_kit


def main() -> None:
    args = [a for a in sys.argv[1:] if not a.startswith("--")]
    flags = {a for a in sys.argv[1:] if a.startswith("--")}
    if len(args) != 1 or flags - {"--force", "--dry-run"}:
        print("Usage: python scripts/uninstall_kit.py <install-dir> [--force] [--dry-run]", file=sys.stderr)
        sys.exit(1)

    install_dir = Path(args[0])
    print(f"Uninstalling kit from: {install_dir}")
    result = uninstall_kit(install_dir, force="--force" in flags, dry_run="--dry-run" in flags)

    verb = "Would remove" if "--dry-run" in flags else "Removed"
    print(f"\n{verb} {len(result.removed)} file(s)")
    if result.preserved:
        print("Preserved (user-owned or modified):")
        for path in result.preserved:
            print(f"  {path}")
    if result.errors:
        print("\nErrors:", file=sys.stderr)
        for error in result.errors:
            print(f"  {error}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    try:
        main()
    except Exception as err:
        print(err, file=sys.stderr)
        sys.exit(1)
