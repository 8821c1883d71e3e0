"""Tests for skillbridge.paths module."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from skillbridge.paths import (
    get_custom_tools_path,
    get_data_dir,
    get_db_path,
    get_default_central_repo_dir,
    get_git_cache_dir,
    get_settings_path,
)

_ENV_VARS = (
    "SKILLBRIDGE_HOME",
    "SKILLBRIDGE_DB_PATH",
    "SKILLBRIDGE_CENTRAL_DIR",
    "SKILLBRIDGE_GIT_CACHE_DIR",
    "SKILLBRIDGE_SETTINGS_PATH",
    "SKILLBRIDGE_TOOLS_FILE",
)


@pytest.fixture
def clean_env():
    with patch.dict(os.environ):
        for var in _ENV_VARS:
            os.environ.pop(var, None)
        yield


class TestDefaults:
    def test_data_dir_default(self, clean_env):
        assert get_data_dir() == str(Path.home() / ".skillbridge")

    @pytest.mark.parametrize(
        ("func", "name"),
        [
            (get_db_path, "skills.db"),
            (get_default_central_repo_dir, "skills"),
            (get_git_cache_dir, "git-cache"),
            (get_settings_path, "settings.json"),
            (get_custom_tools_path, "tools.yaml"),
        ],
    )
    def test_paths_live_in_data_dir(self, clean_env, func, name):
        assert func() == str(Path.home() / ".skillbridge" / name)


class TestOverrides:
    def test_home_override_moves_everything(self, clean_env, tmp_path):
        os.environ["SKILLBRIDGE_HOME"] = str(tmp_path)
        assert get_db_path() == str(tmp_path / "skills.db")
        assert get_git_cache_dir() == str(tmp_path / "git-cache")

    def test_specific_override_wins(self, clean_env, tmp_path):
        os.environ["SKILLBRIDGE_HOME"] = str(tmp_path)
        os.environ["SKILLBRIDGE_DB_PATH"] = "/tmp/other.db"
        assert get_db_path() == "/tmp/other.db"

    def test_tilde_expanded(self, clean_env):
        os.environ["SKILLBRIDGE_GIT_CACHE_DIR"] = "~/cache"
        assert get_git_cache_dir() == str(Path.home() / "cache")
