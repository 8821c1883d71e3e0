"""SKILL.md parsing and skill bundle discovery."""

from __future__ import annotations

import os
import re
from pathlib import Path

from skillbridge.config import IGNORED_DIR_NAMES, SKILL_FILENAME

_FRONTMATTER_RE = re.compile(r"^---\s*\n(.*?)\n---", re.DOTALL)

_VALID_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


def parse_skill_frontmatter(path: Path) -> dict[str, str] | None:
    """Parse YAML frontmatter from a SKILL.md file.

    Uses simple regex parsing (flat ``key: value`` lines only).

    Returns:
        Dict with at least 'name' key, or None if invalid/missing.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return None

    match = _FRONTMATTER_RE.match(text)
    if not match:
        return None

    result: dict[str, str] = {}
    for line in match.group(1).splitlines():
        line = line.strip()
        if not line or line.startswith("#") or ":" not in line:
            continue

        key, _, value = line.partition(":")
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        result[key] = value

    if "name" not in result:
        return None

    return result


def validate_skill_name(name: str) -> str:
    """Return the name if usable as a directory name.

    Raises:
        ValueError: If the name is empty or contains path separators.
    """
    name = name.strip()
    if not name or not _VALID_NAME_RE.match(name):
        raise ValueError(f"Invalid skill name: {name!r}")
    return name


def infer_skill_name(source: Path) -> str:
    """Name for a skill bundle: frontmatter name, else the directory name."""
    skill_md = source / SKILL_FILENAME if source.is_dir() else source
    frontmatter = parse_skill_frontmatter(skill_md) if skill_md.is_file() else None
    if frontmatter and _VALID_NAME_RE.match(frontmatter["name"]):
        return frontmatter["name"]
    if source.is_file():
        return source.stem
    return source.name


def find_skill_dirs(root: Path) -> list[Path]:
    """Every directory under ``root`` (inclusive) holding a SKILL.md.

    Nested skills inside a skill directory are not descended into.
    """
    found: list[Path] = []
    for current, dirs, files in os.walk(root):
        dirs[:] = sorted(
            d for d in dirs if d not in IGNORED_DIR_NAMES and not d.startswith(".")
        )
        if SKILL_FILENAME in files:
            found.append(Path(current))
            dirs[:] = []
    return sorted(found)
