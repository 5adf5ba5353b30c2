"""Per-installation run lock.

A sync or uninstall holds ``<install_dir>/.kit-lock`` for its whole run. The
lock records who holds it and for what, so a second run can report a useful
error. Locks older than STALE_TIMEOUT_S, locks left by dead processes, and
unreadable lock files are taken over.
"""

from __future__ import annotations

import contextlib
import json
import os
import time
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from .errors import LockError
from .logger import logger
from .paths import InstallPaths

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

STALE_TIMEOUT_S = 5 * 60


class LockInfo(BaseModel):
    pid: int
    timestamp: float
    operation: str = "sync"

    @property
    def started(self) -> str:
        return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(self.timestamp))

    def is_stale(self) -> bool:
        return time.time() - self.timestamp > STALE_TIMEOUT_S

    def is_held(self) -> bool:
        return not self.is_stale() and _is_process_alive(self.pid)


def get_lock_path(install_dir: Path) -> Path:
    return InstallPaths.lock_file(install_dir)


def _is_process_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists, owned by someone else
        return True
    return True


def read_lock(install_dir: Path) -> LockInfo | None:
    """The current lock record, or None when absent or unreadable."""
    try:
        return LockInfo.model_validate_json(get_lock_path(install_dir).read_bytes())
    except (OSError, PydanticValidationError):
        return None


def _create_lock_file(lock_path: Path, info: LockInfo) -> None:
    # O_EXCL: fails if the file already exists
    fd = os.open(str(lock_path), os.O_WRONLY | os.O_CREAT | os.O_EXCL)
    try:
        os.write(fd, json.dumps(info.model_dump()).encode())
    finally:
        os.close(fd)


def acquire_lock(install_dir: Path, operation: str = "sync") -> Callable[[], None]:
    """Take the installation lock. Returns a release function.

    Raises LockError while another live process holds a fresh lock.
    """
    lock_path = get_lock_path(install_dir)
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    info = LockInfo(pid=os.getpid(), timestamp=time.time(), operation=operation)

    try:
        _create_lock_file(lock_path, info)
    except FileExistsError:
        existing = read_lock(install_dir)
        if existing is not None and existing.is_held():
            raise LockError(
                f"Another {existing.operation} is running on {install_dir} "
                f"(pid {existing.pid}, started {existing.started}). If this is stale, delete {lock_path}"
            ) from None

        logger.warning(
            "Replacing stale lock",
            path=str(lock_path),
            pid=existing.pid if existing else None,
            operation=existing.operation if existing else None,
        )
        with contextlib.suppress(FileNotFoundError):
            lock_path.unlink()
        try:
            _create_lock_file(lock_path, info)
        except FileExistsError as err:
            raise LockError(f"Lock contention on {install_dir}: another process took the lock. Retry.") from err

    logger.debug("Acquired lock", path=str(lock_path), operation=operation)
    return lambda: release_lock(install_dir)


def release_lock(install_dir: Path) -> None:
    """Release the lock if it belongs to the current process."""
    lock_path = get_lock_path(install_dir)
    if not lock_path.exists():
        return
    existing = read_lock(install_dir)
    # A corrupt lock has no owner to protect
    if existing is None or existing.pid == os.getpid():
        with contextlib.suppress(FileNotFoundError):
            lock_path.unlink()


def is_locked(install_dir: Path) -> bool:
    """Whether a live, non-stale lock is held."""
    existing = read_lock(install_dir)
    return existing is not None and existing.is_held()


@contextlib.contextmanager
def install_lock(install_dir: Path, operation: str = "sync") -> Iterator[None]:
    release = acquire_lock(install_dir, operation)
    try:
        yield
    finally:
        release()
