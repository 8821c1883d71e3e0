"""
SkillBridge Preferences

Small persisted key-value settings stored as JSON (``settings.json`` in the
data directory). A missing or unreadable file falls back to defaults.

Keys:
    central_repo_path       Location of the central skill store
    git_cache_cleanup_days  Age after which cached git sources are removed
    git_cache_ttl_secs      Age after which a cached git source is re-fetched
    preferred_tools         Tools new skills are synced to (null = never set)
    known_tools             Installed tools at the last observation
"""

import json
import logging
import os
import threading
from pathlib import Path
from typing import Any
from uuid import uuid4

from skillbridge.config import (
    DEFAULT_GIT_CACHE_CLEANUP_DAYS,
    DEFAULT_GIT_CACHE_TTL_SECS,
)

logger = logging.getLogger(__name__)


def load_preferences(path: Path) -> dict[str, Any]:
    """
    Load preferences from a JSON file.

    Args:
        path: Path to the settings.json file.

    Returns:
        Parsed dict, or empty dict if the file doesn't exist or is invalid.
    """
    if not path.exists():
        return {}

    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
            if isinstance(data, dict):
                return dict(data)
            logger.warning(f"Ignoring preferences in {path}: not a JSON object")
            return {}
    except (json.JSONDecodeError, OSError) as e:
        logger.warning(f"Failed to load preferences from {path}: {e}")
        return {}


def _positive_int(value: Any, key: str, default: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        if value is not None:
            logger.warning(f"Invalid {key}={value!r} in preferences, using {default}")
        return default
    return value


def _str_list(value: Any) -> list[str] | None:
    if value is None:
        return None
    if not isinstance(value, list):
        return None
    return [str(v) for v in value if isinstance(v, str) and v]


class PreferenceStore:
    """Read/write access to the preferences file."""

    def __init__(self, path: Path, default_central_repo: Path) -> None:
        self.path = Path(path)
        self.default_central_repo = Path(default_central_repo)
        self._lock = threading.Lock()

    def _read(self) -> dict[str, Any]:
        return load_preferences(self.path)

    def _write(self, key: str, value: Any) -> None:
        with self._lock:
            data = self._read()
            data[key] = value
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_name(f".{self.path.name}.{uuid4().hex[:8]}.tmp")
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
                f.write("\n")
            os.replace(tmp, self.path)
        logger.debug(f"Preference {key} set to {value!r}")

    # Central store

    def get_central_repo_path(self) -> Path:
        value = self._read().get("central_repo_path")
        if isinstance(value, str) and value.strip():
            return Path(os.path.expanduser(value))
        return self.default_central_repo

    def set_central_repo_path(self, path: Path) -> None:
        self._write("central_repo_path", str(path))

    # Git cache

    def get_git_cache_cleanup_days(self) -> int:
        return _positive_int(
            self._read().get("git_cache_cleanup_days"),
            "git_cache_cleanup_days",
            DEFAULT_GIT_CACHE_CLEANUP_DAYS,
        )

    def set_git_cache_cleanup_days(self, days: int) -> int:
        if isinstance(days, bool) or not isinstance(days, int) or days <= 0:
            raise ValueError(f"Cleanup days must be a positive integer, got {days!r}")
        self._write("git_cache_cleanup_days", days)
        return days

    def get_git_cache_ttl_secs(self) -> int:
        return _positive_int(
            self._read().get("git_cache_ttl_secs"),
            "git_cache_ttl_secs",
            DEFAULT_GIT_CACHE_TTL_SECS,
        )

    def set_git_cache_ttl_secs(self, secs: int) -> int:
        if isinstance(secs, bool) or not isinstance(secs, int) or secs <= 0:
            raise ValueError(f"Cache TTL must be a positive integer, got {secs!r}")
        self._write("git_cache_ttl_secs", secs)
        return secs

    # Tools

    def get_preferred_tools(self) -> list[str] | None:
        """Preferred tool keys; None if the user never chose any."""
        return _str_list(self._read().get("preferred_tools"))

    def set_preferred_tools(self, tools: list[str] | None) -> None:
        self._write("preferred_tools", None if tools is None else list(tools))

    def get_known_tools(self) -> list[str] | None:
        return _str_list(self._read().get("known_tools"))

    def set_known_tools(self, tools: list[str]) -> None:
        self._write("known_tools", sorted(tools))

    def as_dict(self) -> dict[str, Any]:
        return {
            "central_repo_path": str(self.get_central_repo_path()),
            "git_cache_cleanup_days": self.get_git_cache_cleanup_days(),
            "git_cache_ttl_secs": self.get_git_cache_ttl_secs(),
            "preferred_tools": self.get_preferred_tools(),
            "known_tools": self.get_known_tools(),
        }
