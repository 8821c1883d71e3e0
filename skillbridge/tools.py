"""Tool registry: which AI coding tools exist and where their skills live.

Built-in tools are static; custom tools are read from a YAML file::

    tools:
      - key: my_tool
        label: My Tool
        skills_dir: ~/.my-tool/skills
        detect_dir: ~/.my-tool      # optional, defaults to skills_dir parent
        force_copy: false           # optional

Paths starting with ``~/`` are relative to the home directory,
``%APPDATA%/`` to the platform configuration directory.
"""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from skillbridge.errors import NotFoundError
from skillbridge.models import SyncMode, ToolInfo, ToolStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolDefinition:
    """Static description of a tool's skills directory convention."""

    key: str
    label: str
    skills_dir: str
    detect_dir: str
    force_copy: bool = False
    is_custom: bool = False


BUILTIN_TOOLS: tuple[ToolDefinition, ...] = (
    ToolDefinition("claude_code", "Claude Code", "~/.claude/skills", "~/.claude"),
    ToolDefinition("codex", "Codex", "~/.codex/skills", "~/.codex"),
    ToolDefinition("gemini_cli", "Gemini CLI", "~/.gemini/skills", "~/.gemini"),
    # Cursor does not follow symlinked skill directories
    ToolDefinition(
        "cursor", "Cursor", "~/.cursor/skills", "~/.cursor", force_copy=True
    ),
    ToolDefinition(
        "opencode", "OpenCode", "~/.config/opencode/skill", "~/.config/opencode"
    ),
    ToolDefinition(
        "antigravity",
        "Antigravity",
        "~/.gemini/antigravity/skills",
        "~/.gemini/antigravity",
    ),
    ToolDefinition("amp", "Amp", "~/.config/agents/skills", "%APPDATA%/Code"),
    ToolDefinition(
        "kilo_code",
        "Kilo Code",
        "~/.kilocode/skills",
        "%APPDATA%/Code/User/globalStorage/kilocode.kilo-code",
    ),
    ToolDefinition(
        "roo_code",
        "Roo Code",
        "~/.roo/skills",
        "%APPDATA%/Code/User/globalStorage/rooveterinaryinc.roo-cline",
    ),
    ToolDefinition("goose", "Goose", "~/.config/goose/skills", "~/.config/goose"),
    ToolDefinition("github_copilot", "GitHub Copilot", "~/.copilot/skills", "~/.copilot"),
    ToolDefinition("clawdbot", "Clawdbot", "~/.clawdbot/skills", "~/.clawdbot"),
    ToolDefinition("droid", "Droid", "~/.factory/skills", "~/.factory"),
    ToolDefinition(
        "windsurf", "Windsurf", "~/.codeium/windsurf/skills", "~/.codeium/windsurf"
    ),
)

# Third-party skill stores scanned during onboarding but never synced to.
EXTRA_SKILL_SOURCES: tuple[ToolDefinition, ...] = (
    ToolDefinition("cc_switch", "CC Switch", "~/.cc-switch/skills", "~/.cc-switch/skills"),
)


def _config_dir(home: Path) -> Path:
    if sys.platform == "win32":
        appdata = os.environ.get("APPDATA")
        return Path(appdata) if appdata else home / "AppData" / "Roaming"
    if sys.platform == "darwin":
        return home / "Library" / "Application Support"
    return home / ".config"


def resolve_storage_path(spec: str, home: Path) -> Path:
    """Expand ``~/`` and ``%APPDATA%/`` prefixes against ``home``."""
    if spec.startswith("~/"):
        return home / spec[2:]
    if spec == "~":
        return home
    if spec.startswith("%APPDATA%/"):
        return _config_dir(home) / spec[len("%APPDATA%/") :]
    return Path(os.path.expandvars(spec))


def load_custom_tools(path: Path) -> list[ToolDefinition]:
    """Load custom tool definitions from YAML.

    Returns:
        Valid definitions; invalid entries are skipped with a warning and a
        missing or malformed file yields an empty list.
    """
    if not path.exists():
        return []

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (yaml.YAMLError, OSError) as e:
        logger.warning(f"Failed to load custom tools from {path}: {e}")
        return []

    if isinstance(data, dict):
        data = data.get("tools", [])
    if not isinstance(data, list):
        logger.warning(f"Custom tools file {path} has no 'tools' list")
        return []

    tools: list[ToolDefinition] = []
    for entry in data:
        tool = _parse_custom_tool(entry)
        if tool is None:
            logger.warning(f"Skipping invalid custom tool entry: {entry!r}")
            continue
        tools.append(tool)
    return tools


def _parse_custom_tool(entry: Any) -> ToolDefinition | None:
    if not isinstance(entry, dict):
        return None
    key = entry.get("key")
    skills_dir = entry.get("skills_dir")
    if not isinstance(key, str) or not key.strip():
        return None
    if not isinstance(skills_dir, str) or not skills_dir.strip():
        return None
    detect_dir = entry.get("detect_dir")
    if not isinstance(detect_dir, str) or not detect_dir.strip():
        detect_dir = skills_dir.rstrip("/").rsplit("/", 1)[0] or skills_dir
    return ToolDefinition(
        key=key.strip(),
        label=str(entry.get("label") or key).strip(),
        skills_dir=skills_dir.strip(),
        detect_dir=detect_dir.strip(),
        force_copy=bool(entry.get("force_copy", False)),
        is_custom=True,
    )


class ToolRegistry:
    """Read model of the tools known to this host.

    Installation is detected by the presence of each tool's detection
    directory under ``home``.
    """

    def __init__(
        self,
        home: Path | None = None,
        custom_tools_path: Path | None = None,
        tools: list[ToolDefinition] | None = None,
    ) -> None:
        self.home = home or Path.home()
        if tools is None:
            tools = list(BUILTIN_TOOLS)
            if custom_tools_path is not None:
                builtin_keys = {t.key for t in tools}
                for custom in load_custom_tools(custom_tools_path):
                    if custom.key in builtin_keys:
                        logger.warning(
                            f"Custom tool '{custom.key}' shadows a built-in tool, ignored"
                        )
                        continue
                    tools.append(custom)
        self._tools: dict[str, ToolDefinition] = {t.key: t for t in tools}

    def definitions(self) -> list[ToolDefinition]:
        return list(self._tools.values())

    def get(self, key: str) -> ToolDefinition:
        try:
            return self._tools[key]
        except KeyError:
            raise NotFoundError("tool", key) from None

    def skills_dir(self, key: str) -> Path:
        return resolve_storage_path(self.get(key).skills_dir, self.home)

    def is_installed(self, key: str) -> bool:
        return resolve_storage_path(self.get(key).detect_dir, self.home).exists()

    def list_tools(self) -> list[ToolInfo]:
        return [
            ToolInfo(
                key=t.key,
                label=t.label,
                installed=self.is_installed(t.key),
                skills_dir=str(self.skills_dir(t.key)),
                force_copy=t.force_copy,
                is_custom=t.is_custom,
            )
            for t in self._tools.values()
        ]

    def installed_keys(self) -> list[str]:
        return [t.key for t in self._tools.values() if self.is_installed(t.key)]

    def target_path_for(self, tool: str, skill_name: str) -> Path:
        """Deterministic location of a skill inside a tool's directory."""
        return self.skills_dir(tool) / skill_name

    def preferred_mode(self, tool: str) -> SyncMode:
        return SyncMode.COPY if self.get(tool).force_copy else SyncMode.LINK

    def status(self, known_installed: list[str] | None) -> ToolStatus:
        """Current tool status.

        Args:
            known_installed: Tool keys installed at the previous observation,
                or None if nothing was ever observed (then no tool counts as
                newly installed).
        """
        tools = self.list_tools()
        installed = [t.key for t in tools if t.installed]
        if known_installed is None:
            newly: list[str] = []
        else:
            known = set(known_installed)
            newly = [key for key in installed if key not in known]
        return ToolStatus(tools=tools, installed=installed, newly_installed=newly)

    def extra_sources(self) -> list[tuple[ToolDefinition, Path]]:
        """Third-party skill stores present on this host."""
        found = []
        for source in EXTRA_SKILL_SOURCES:
            path = resolve_storage_path(source.skills_dir, self.home)
            if path.is_dir():
                found.append((source, path))
        return found
