"""End-to-end tests for skillbridge/service.py."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from conftest import install_tool, make_skill
from skillbridge.errors import InvalidSkillSource, NotFoundError, TargetPathConflict
from skillbridge.fingerprint import normalize_path
from skillbridge.models import ImportResolution, SourceType, SyncMode, TargetStatus

REPO_URL = "https://example.com/org/skills.git"


@pytest.fixture
def git_repo(sources: Path, fetcher) -> Path:
    root = sources / "upstream"
    make_skill(root / "skills", "alpha", body="Alpha v1.")
    make_skill(root / "skills", "beta")
    fetcher.repos[REPO_URL] = root
    return root


class TestLocalLifecycle:
    def test_install_sync_edit_update_delete(self, service, home, sources) -> None:
        claude = install_tool(home, "claude_code")
        cursor = install_tool(home, "cursor")
        src = make_skill(sources, "foo", body="Original.")

        installed = service.install_local(src)
        assert installed.name == "foo"

        link = service.set_sync(installed.skill_id, "claude_code", True)
        copy = service.set_sync(installed.skill_id, "cursor", True)
        assert link.mode_used == SyncMode.LINK
        assert copy.mode_used == SyncMode.COPY

        central = Path(installed.central_path)
        (central / "SKILL.md").write_text("Edited.")
        result = service.update_skill(installed.skill_id)

        assert result.content_changed is True
        assert (claude / "foo" / "SKILL.md").read_text() == "Edited."
        assert (cursor / "foo" / "SKILL.md").read_text() == "Edited."

        service.delete_skill(installed.skill_id)
        assert not os.path.lexists(claude / "foo")
        assert not os.path.lexists(cursor / "foo")
        assert not central.exists()
        assert service.list_skills() == []

    def test_source_directory_untouched(self, service, home, sources) -> None:
        install_tool(home, "claude_code")
        src = make_skill(sources, "foo")
        installed = service.install_local(src)
        service.set_sync(installed.skill_id, "claude_code", True)
        service.delete_skill(installed.skill_id)
        assert (src / "SKILL.md").exists()

    def test_duplicate_name_rejected(self, service, sources) -> None:
        service.install_local(make_skill(sources / "a", "foo"))
        with pytest.raises(InvalidSkillSource):
            service.install_local(make_skill(sources / "b", "foo"))

    def test_missing_source(self, service, sources) -> None:
        with pytest.raises(InvalidSkillSource):
            service.install_local(sources / "nothing")

    def test_name_override(self, service, sources) -> None:
        installed = service.install_local(make_skill(sources, "foo"), name="bar")
        assert installed.name == "bar"

    def test_disable_sync(self, service, home, sources) -> None:
        skills_dir = install_tool(home, "codex")
        installed = service.install_local(make_skill(sources, "foo"))
        service.set_sync(installed.skill_id, "codex", True)
        assert service.set_sync(installed.skill_id, "codex", False) is None
        assert not os.path.lexists(skills_dir / "foo")
        assert service.get_skill(installed.skill_id).targets == []

    def test_resolve_by_name(self, service, sources) -> None:
        installed = service.install_local(make_skill(sources, "foo"))
        assert service.resolve_skill("FOO").id == installed.skill_id
        assert service.resolve_skill(installed.skill_id).name == "foo"
        with pytest.raises(NotFoundError):
            service.resolve_skill("missing")


class TestGitInstall:
    def test_candidates(self, service, git_repo) -> None:
        candidates = service.list_git_candidates(REPO_URL)
        assert [c.subpath for c in candidates] == ["skills/alpha", "skills/beta"]

    def test_candidates_under_subpath(self, service, git_repo) -> None:
        candidates = service.list_git_candidates(f"{REPO_URL}#:skills")
        assert [c.subpath for c in candidates] == ["skills/alpha", "skills/beta"]

    def test_multiple_candidates_require_choice(self, service, git_repo) -> None:
        with pytest.raises(InvalidSkillSource):
            service.install_git(REPO_URL)

    def test_install_chosen_subpath(self, service, git_repo) -> None:
        installed = service.install_git(REPO_URL, subpath="skills/alpha")
        skill = service.get_skill(installed.skill_id)
        assert skill.name == "alpha"
        assert skill.source_type == SourceType.GIT
        assert skill.source_ref == f"{REPO_URL}#:skills/alpha"
        assert skill.source_revision == "abc123"
        assert "Alpha v1." in (Path(skill.central_path) / "SKILL.md").read_text()

    def test_single_candidate_picked(self, service, git_repo, fetcher, sources) -> None:
        single = sources / "single"
        make_skill(single / "skills", "solo")
        fetcher.repos["https://example.com/single.git"] = single
        installed = service.install_git("https://example.com/single.git")
        assert installed.name == "solo"

    def test_update_pulls_upstream_changes(self, service, home, git_repo, fetcher) -> None:
        skills_dir = install_tool(home, "cursor")
        installed = service.install_git(REPO_URL, subpath="skills/alpha")
        service.set_sync(installed.skill_id, "cursor", True)
        make_skill(git_repo / "skills", "alpha", body="Alpha v2.")
        fetcher.revision = "fff000"

        result = service.update_skill(installed.skill_id)

        assert result.content_changed is True
        assert result.source_revision == "fff000"
        assert "Alpha v2." in (skills_dir / "alpha" / "SKILL.md").read_text()


class TestPreferredSync:
    def test_defaults_to_installed_tools(self, service, home, sources) -> None:
        install_tool(home, "claude_code")
        install_tool(home, "codex")
        installed = service.install_local(make_skill(sources, "foo"))

        result = service.sync_to_preferred(installed.skill_id)

        assert sorted(r.tool for r in result.succeeded) == ["claude_code", "codex"]

    def test_respects_preference(self, service, home, sources) -> None:
        install_tool(home, "claude_code")
        install_tool(home, "codex")
        service.set_preferred_tools(["codex", "goose"])
        installed = service.install_local(make_skill(sources, "foo"))

        result = service.sync_to_preferred(installed.skill_id)

        assert [r.tool for r in result.succeeded] == ["codex"]

    def test_unknown_preferred_tool(self, service) -> None:
        with pytest.raises(NotFoundError):
            service.set_preferred_tools(["nope"])


class TestNewTools:
    def test_first_status_records_baseline(self, service, home) -> None:
        install_tool(home, "codex")
        assert service.tool_status().newly_installed == []
        install_tool(home, "goose")
        assert service.tool_status(record=False).newly_installed == ["goose"]
        assert service.tool_status(record=False).newly_installed == ["goose"]
        assert service.tool_status().newly_installed == ["goose"]
        assert service.tool_status().newly_installed == []

    def test_sync_all_new_tools(self, service, home, sources) -> None:
        install_tool(home, "codex")
        service.tool_status()
        a = service.install_local(make_skill(sources, "a"))
        b = service.install_local(make_skill(sources, "b"))
        goose = install_tool(home, "goose")
        make_skill(goose, "b", body="Hand made.")

        result = service.sync_all_new_tools()

        assert [(r.tool, Path(r.target_path).name) for r in result.succeeded] == [("goose", "a")]
        assert [(f.tool, f.skill_id) for f in result.failed] == [("goose", b.skill_id)]
        assert "unmanaged content" in result.failed[0].error
        assert service.get_skill(a.skill_id).target_for("goose") is not None
        assert service.get_skill(b.skill_id).target_for("goose") is None
        assert "Hand made." in (goose / "b" / "SKILL.md").read_text()
        assert service.tool_status(record=False).newly_installed == []

    def test_sync_all_new_tools_reports_dangling_link(self, service, home, sources, tmp_path) -> None:
        install_tool(home, "codex")
        service.tool_status()
        a = service.install_local(make_skill(sources, "a"))
        goose = install_tool(home, "goose")
        os.symlink(tmp_path / "gone", goose / "a")

        result = service.sync_all_new_tools()

        assert result.succeeded == []
        assert [(f.tool, f.skill_id) for f in result.failed] == [("goose", a.skill_id)]
        assert os.path.islink(goose / "a")


class TestOnboarding:
    def test_import_by_group_name(self, service, home) -> None:
        codex = install_tool(home, "codex")
        make_skill(codex, "Legacy")

        result = service.onboarding_import("legacy", ImportResolution(tool="codex"))

        skill = service.get_skill(result.skill_id)
        assert skill.name == "Legacy"
        assert skill.target_for("codex").status == TargetStatus.SYNCED
        assert service.onboarding_scan().groups == []

    def test_unknown_group(self, service) -> None:
        with pytest.raises(NotFoundError):
            service.onboarding_import("nope", ImportResolution(tool="codex"))

    def test_imported_target_can_be_relinked(self, service, home) -> None:
        codex = install_tool(home, "codex")
        make_skill(codex, "legacy")
        result = service.onboarding_import("legacy", ImportResolution(tool="codex"))

        sync = service.set_sync(result.skill_id, "codex", True, mode=SyncMode.LINK)

        assert sync.replaced is True
        assert (codex / "legacy").is_symlink()


class TestCacheSettings:
    def test_ttl_applies_to_live_cache(self, service) -> None:
        assert service.set_cache_ttl_secs(600) == 600
        assert service.ctx.git_cache.ttl_secs == 600
        assert service.get_cache_ttl_secs() == 600

    def test_invalid_cleanup_days(self, service) -> None:
        with pytest.raises(ValueError):
            service.set_cache_cleanup_days(0)

    def test_clear_and_cleanup(self, service, git_repo) -> None:
        service.list_git_candidates(REPO_URL)
        assert service.cleanup_cache() == 0
        assert service.clear_cache() == 1
        assert service.ctx.git_cache.entries() == []


class TestRelocate:
    def test_relocate_relinks_targets(self, service, home, sources, tmp_path) -> None:
        claude = install_tool(home, "claude_code")
        cursor = install_tool(home, "cursor")
        installed = service.install_local(make_skill(sources, "foo"))
        service.set_sync(installed.skill_id, "claude_code", True)
        service.set_sync(installed.skill_id, "cursor", True)
        new_root = tmp_path / "relocated"

        result = service.relocate_central(new_root)

        assert result.failed == []
        assert service.get_central_path() == new_root
        assert service.ctx.preferences.get_central_repo_path() == new_root
        moved = service.get_skill(installed.skill_id)
        assert normalize_path(claude / "foo") == normalize_path(moved.central_path)
        assert (cursor / "foo" / "SKILL.md").exists()

    def test_conflict_surfaces_from_set_sync(self, service, home, sources) -> None:
        codex = install_tool(home, "codex")
        make_skill(codex, "foo", body="Mine.")
        installed = service.install_local(make_skill(sources, "foo"))
        with pytest.raises(TargetPathConflict):
            service.set_sync(installed.skill_id, "codex", True)
