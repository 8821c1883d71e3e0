"""Pytest configuration and shared fixtures."""

import shutil
import sys
import threading
from pathlib import Path

import pytest

# Add skillbridge to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from skillbridge.context import SkillContext  # noqa: E402
from skillbridge.errors import FetchFailure  # noqa: E402
from skillbridge.service import SkillService  # noqa: E402
from skillbridge.tools import ToolDefinition  # noqa: E402

TEST_TOOLS = [
    ToolDefinition("claude_code", "Claude Code", "~/.claude/skills", "~/.claude"),
    ToolDefinition("codex", "Codex", "~/.codex/skills", "~/.codex"),
    ToolDefinition("cursor", "Cursor", "~/.cursor/skills", "~/.cursor", force_copy=True),
    ToolDefinition("goose", "Goose", "~/.config/goose/skills", "~/.config/goose"),
]


def make_skill(base: Path, name: str, body: str = "Body.", extra: dict | None = None) -> Path:
    """Create a skill directory with a SKILL.md and optional extra files."""
    skill_dir = base / name
    skill_dir.mkdir(parents=True, exist_ok=True)
    (skill_dir / "SKILL.md").write_text(
        f"---\nname: {name}\ndescription: {name} desc\n---\n{body}\n"
    )
    for rel, content in (extra or {}).items():
        path = skill_dir / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    return skill_dir


def install_tool(home: Path, key: str) -> Path:
    """Mark a test tool installed and return its skills directory."""
    tool = next(t for t in TEST_TOOLS if t.key == key)
    (home / tool.detect_dir[2:]).mkdir(parents=True, exist_ok=True)
    skills_dir = home / tool.skills_dir[2:]
    skills_dir.mkdir(parents=True, exist_ok=True)
    return skills_dir


class FakeFetcher:
    """Git fetcher that copies local directories registered per URL."""

    def __init__(self) -> None:
        self.repos: dict[str, Path] = {}
        self.calls: list[str] = []
        self.failures_left = 0
        self.gate: threading.Event | None = None
        self.started = threading.Event()
        self.revision = "abc123"

    def fetch(self, source, dest: Path) -> str | None:
        self.calls.append(source.url)
        self.started.set()
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if self.failures_left > 0:
            self.failures_left -= 1
            raise FetchFailure(source.url, "simulated network error")
        repo = self.repos.get(source.url)
        if repo is None:
            raise FetchFailure(source.url, "repository not found")
        shutil.copytree(repo, dest)
        return self.revision


@pytest.fixture
def home(tmp_path: Path) -> Path:
    path = tmp_path / "home"
    path.mkdir()
    return path


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def ctx(tmp_path: Path, home: Path, fetcher: FakeFetcher) -> SkillContext:
    return SkillContext.create(
        home=home,
        data_dir=tmp_path / "data",
        tools=list(TEST_TOOLS),
        fetcher=fetcher,
    )


@pytest.fixture
def service(ctx: SkillContext) -> SkillService:
    return SkillService(ctx)


@pytest.fixture
def sources(tmp_path: Path) -> Path:
    path = tmp_path / "sources"
    path.mkdir()
    return path
