"""
Centralized path management for SkillBridge.

Provides functions to get standard paths for the skill database, the
central skill store, the git cache, settings and custom tool definitions.
All paths can be overridden via environment variables.
"""

import os
from pathlib import Path


def _resolve_path(env_var: str, default: Path) -> str:
    """Resolve a path from an environment variable or fall back to a default.

    If the environment variable is set, its value is expanded
    (``~`` and ``$VAR`` substitution) and returned. Otherwise the
    *default* path is returned.

    Args:
        env_var: Name of the environment variable to check.
        default: Default path when the environment variable is unset.

    Returns:
        Resolved path string.
    """
    env_path = os.environ.get(env_var)
    if env_path:
        return str(Path(os.path.expanduser(os.path.expandvars(env_path))))
    return str(default)


def get_data_dir() -> str:
    """Get the SkillBridge data directory.

    Override with SKILLBRIDGE_HOME environment variable.
    """
    return _resolve_path("SKILLBRIDGE_HOME", Path.home() / ".skillbridge")


def get_db_path() -> str:
    """Get the path to the skill database.

    Override with SKILLBRIDGE_DB_PATH environment variable.
    """
    return _resolve_path("SKILLBRIDGE_DB_PATH", Path(get_data_dir()) / "skills.db")


def get_default_central_repo_dir() -> str:
    """Get the default central skill store directory.

    The effective location is a preference (``central_repo_path``); this
    is only the value used before the user ever changes it.
    """
    return _resolve_path(
        "SKILLBRIDGE_CENTRAL_DIR",
        Path(get_data_dir()) / "skills",
    )


def get_git_cache_dir() -> str:
    """Get the path to the git source cache directory.

    Override with SKILLBRIDGE_GIT_CACHE_DIR environment variable.
    """
    return _resolve_path(
        "SKILLBRIDGE_GIT_CACHE_DIR",
        Path(get_data_dir()) / "git-cache",
    )


def get_settings_path() -> str:
    """Get the path to the preferences file.

    Override with SKILLBRIDGE_SETTINGS_PATH environment variable.
    """
    return _resolve_path(
        "SKILLBRIDGE_SETTINGS_PATH",
        Path(get_data_dir()) / "settings.json",
    )


def get_custom_tools_path() -> str:
    """Get the path to the custom tool definitions.

    Override with SKILLBRIDGE_TOOLS_FILE environment variable.
    """
    return _resolve_path(
        "SKILLBRIDGE_TOOLS_FILE",
        Path(get_data_dir()) / "tools.yaml",
    )
