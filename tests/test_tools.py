"""Tests for skillbridge/tools.py - the tool registry."""

from pathlib import Path

import pytest

from conftest import TEST_TOOLS, install_tool
from skillbridge.errors import NotFoundError
from skillbridge.models import SyncMode
from skillbridge.tools import (
    BUILTIN_TOOLS,
    ToolRegistry,
    load_custom_tools,
    resolve_storage_path,
)


@pytest.fixture
def registry(home: Path) -> ToolRegistry:
    return ToolRegistry(home=home, tools=list(TEST_TOOLS))


class TestBuiltins:
    def test_builtin_keys_unique(self):
        keys = [t.key for t in BUILTIN_TOOLS]
        assert len(keys) == len(set(keys))

    def test_cursor_forces_copy(self, home):
        registry = ToolRegistry(home=home)
        assert registry.preferred_mode("cursor") == SyncMode.COPY
        assert registry.preferred_mode("claude_code") == SyncMode.LINK

    def test_unknown_tool(self, registry):
        with pytest.raises(NotFoundError):
            registry.get("nope")


class TestResolveStoragePath:
    def test_home_relative(self, home):
        assert resolve_storage_path("~/.codex/skills", home) == home / ".codex" / "skills"

    def test_absolute(self, home, tmp_path):
        assert resolve_storage_path(str(tmp_path), home) == tmp_path


class TestInstallation:
    def test_detects_installed_tools(self, registry, home):
        assert registry.installed_keys() == []
        install_tool(home, "codex")
        assert registry.installed_keys() == ["codex"]
        info = {t.key: t for t in registry.list_tools()}
        assert info["codex"].installed is True
        assert info["cursor"].force_copy is True

    def test_target_path(self, registry, home):
        assert registry.target_path_for("codex", "foo") == home / ".codex" / "skills" / "foo"

    def test_status_without_baseline(self, registry, home):
        install_tool(home, "codex")
        status = registry.status(None)
        assert status.installed == ["codex"]
        assert status.newly_installed == []

    def test_status_reports_new_tools(self, registry, home):
        install_tool(home, "codex")
        install_tool(home, "goose")
        status = registry.status(["codex"])
        assert status.newly_installed == ["goose"]

    def test_extra_sources_only_when_present(self, registry, home):
        assert registry.extra_sources() == []
        (home / ".cc-switch" / "skills").mkdir(parents=True)
        [(source, path)] = registry.extra_sources()
        assert source.key == "cc_switch"
        assert path == home / ".cc-switch" / "skills"


class TestCustomTools:
    def test_load_custom_tools(self, tmp_path):
        path = tmp_path / "tools.yaml"
        path.write_text(
            "tools:\n"
            "  - key: my_tool\n"
            "    label: My Tool\n"
            "    skills_dir: ~/.my-tool/skills\n"
            "    force_copy: true\n"
            "  - key: broken\n"
            "  - just a string\n"
        )
        [tool] = load_custom_tools(path)
        assert tool.key == "my_tool"
        assert tool.detect_dir == "~/.my-tool"
        assert tool.force_copy is True
        assert tool.is_custom is True

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "tools.yaml"
        path.write_text("tools: [unclosed")
        assert load_custom_tools(path) == []

    def test_missing_file(self, tmp_path):
        assert load_custom_tools(tmp_path / "missing.yaml") == []

    def test_registry_merges_custom_tools(self, home, tmp_path):
        path = tmp_path / "tools.yaml"
        path.write_text(
            "- key: my_tool\n  skills_dir: ~/.my-tool/skills\n"
            "- key: codex\n  skills_dir: ~/.elsewhere\n"
        )
        registry = ToolRegistry(home=home, custom_tools_path=path)
        assert registry.get("my_tool").is_custom is True
        assert registry.skills_dir("codex") == home / ".codex" / "skills"
