"""
SkillBridge Utility Functions

Filesystem primitives shared by the store, the sync engine and the git
cache: tree copy, path removal, atomic swap, symlink creation, plus
timestamps and cooperative cancellation.
"""

from __future__ import annotations

import os
import shutil
import threading
import time
from pathlib import Path
from uuid import uuid4

from skillbridge.config import BACKUP_PREFIX, IGNORED_DIR_NAMES, STAGING_PREFIX
from skillbridge.errors import OperationCancelled


def now_ms() -> int:
    """Current wall-clock time in integer milliseconds."""
    return int(time.time() * 1000)


class MonotonicClock:
    """Millisecond timestamps that never go backwards.

    Each call returns a value strictly greater than the previous one, so
    two completions observed in order always carry ordered timestamps.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._last = 0

    def now(self) -> int:
        with self._lock:
            value = max(now_ms(), self._last + 1)
            self._last = value
            return value


class CancelToken:
    """Cooperative cancellation flag for long-running operations."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled("Operation cancelled")


def check_cancel(cancel: CancelToken | None) -> None:
    if cancel is not None:
        cancel.raise_if_cancelled()


def staging_path_for(target: Path) -> Path:
    """Hidden sibling path used to build a replacement before the swap."""
    return target.parent / f"{STAGING_PREFIX}{target.name}-{uuid4().hex[:8]}"


def is_staging_name(name: str) -> bool:
    return name.startswith(STAGING_PREFIX) or name.startswith(BACKUP_PREFIX)


def copy_tree(source: Path, dest: Path, cancel: CancelToken | None = None) -> None:
    """Copy a skill bundle (directory or single file) into ``dest``.

    ``dest`` is always a directory afterwards. ``.git`` directories are
    skipped and symlinks inside the bundle are copied as their content.
    Raises OperationCancelled between files when ``cancel`` fires.
    """
    if source.is_file():
        dest.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source, dest / source.name)
        return

    dest.mkdir(parents=True, exist_ok=True)
    for root, dirs, files in os.walk(source, followlinks=True):
        dirs[:] = sorted(d for d in dirs if d not in IGNORED_DIR_NAMES)
        rel = Path(root).relative_to(source)
        target_dir = dest / rel
        target_dir.mkdir(parents=True, exist_ok=True)
        for name in sorted(files):
            check_cancel(cancel)
            shutil.copy2(Path(root) / name, target_dir / name)


def remove_path(path: Path) -> bool:
    """Remove a file, directory or symlink.

    Symlinks are unlinked, never followed. Returns False if nothing was
    there.
    """
    if not os.path.lexists(path):
        return False
    if path.is_symlink() or not path.is_dir():
        path.unlink()
    else:
        shutil.rmtree(path)
    return True


def _is_real_dir(path: Path) -> bool:
    return path.is_dir() and not path.is_symlink()


def atomic_replace(staged: Path, target: Path) -> bool:
    """Move ``staged`` into place at ``target``.

    Readers observe either the old or the new content, never a partial
    one. Directories cannot be renamed over, so an existing directory is
    first moved to a backup sibling and restored if the final rename
    fails.

    Returns:
        True if an existing artifact was replaced.
    """
    if not os.path.lexists(target):
        os.replace(staged, target)
        return False

    if not _is_real_dir(target) and not _is_real_dir(staged):
        os.replace(staged, target)
        return True

    backup = target.parent / f"{BACKUP_PREFIX}{target.name}-{uuid4().hex[:8]}"
    os.replace(target, backup)
    try:
        os.replace(staged, target)
    except OSError:
        os.replace(backup, target)
        raise
    remove_path(backup)
    return True


def try_symlink(source: Path, link_path: Path) -> bool:
    """Create a directory symlink, returning False if the host refuses."""
    try:
        os.symlink(source, link_path, target_is_directory=True)
        return True
    except (OSError, NotImplementedError):
        return False
