"""Content addressing and path identity.

A fingerprint is a ``sha256:`` digest over line-ending normalized
content, so the same skill checked out on Windows and on Linux hashes
the same. Directory fingerprints cover every file's relative path and
bytes in sorted order.
"""

from __future__ import annotations

import hashlib
import os
from pathlib import Path

from skillbridge.config import IGNORED_DIR_NAMES


def _normalize_newlines(content: bytes) -> bytes:
    return content.replace(b"\r\n", b"\n").replace(b"\r", b"\n")


def fingerprint(content: bytes) -> str:
    """Deterministic hash of raw content."""
    return f"sha256:{hashlib.sha256(_normalize_newlines(content)).hexdigest()}"


def fingerprint_path(path: Path) -> str:
    """Hash a skill bundle on disk (a single file or a directory tree).

    Symlinks are followed, so a link hashes as the content it points to.

    Raises:
        OSError: If the path or one of its files cannot be read.
    """
    path = Path(path)
    if path.is_file():
        digest = hashlib.sha256()
        digest.update(path.name.encode("utf-8"))
        digest.update(b"\0")
        digest.update(_normalize_newlines(path.read_bytes()))
        return f"sha256:{digest.hexdigest()}"

    if not path.is_dir():
        raise FileNotFoundError(f"No skill content at {path}")

    files: list[tuple[str, Path]] = []
    for root, dirs, names in os.walk(path, followlinks=True):
        dirs[:] = [d for d in dirs if d not in IGNORED_DIR_NAMES]
        for name in names:
            full = Path(root) / name
            files.append((full.relative_to(path).as_posix(), full))

    digest = hashlib.sha256()
    for relative, full in sorted(files):
        digest.update(relative.encode("utf-8"))
        digest.update(b"\0")
        digest.update(_normalize_newlines(full.read_bytes()))
        digest.update(b"\0")
    return f"sha256:{digest.hexdigest()}"


def fingerprint_path_or_none(path: Path) -> str | None:
    """Like fingerprint_path, but None when the content is unreadable."""
    try:
        return fingerprint_path(path)
    except OSError:
        return None


def normalize_path(path: str | Path) -> str:
    """Canonical absolute form of a path with symlinks resolved.

    Only meant for comparisons; observed link data is kept separately
    (see detect_link).
    """
    return str(Path(os.path.expanduser(str(path))).resolve())


def lexical_path(path: str | Path) -> str:
    """Absolute, normalized path without resolving symlinks."""
    return os.path.normpath(os.path.abspath(os.path.expanduser(str(path))))


def path_key(tool: str, path: str | Path) -> str:
    """Key identifying a managed (tool, target path) pair."""
    normalized = lexical_path(path)
    if os.name == "nt":
        normalized = normalized.lower()
    return f"{tool.lower()}\n{normalized}"


def detect_link(path: Path) -> tuple[bool, str | None]:
    """Observed link state of a path: (is_link, raw link target)."""
    if not path.is_symlink():
        return False, None
    try:
        raw = os.readlink(path)
    except OSError:
        return True, None
    target = Path(raw)
    if not target.is_absolute():
        target = path.parent / target
    return True, lexical_path(target)


def is_under(path: str | Path, base: str | Path) -> bool:
    """Whether ``path`` lies inside ``base`` (lexically)."""
    try:
        Path(lexical_path(path)).relative_to(lexical_path(base))
        return True
    except ValueError:
        return False
