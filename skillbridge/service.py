"""Request/response facade used by the CLI and the HTTP API.

Every operation takes and returns plain values or model dataclasses so
the presentation layers never touch the store or the engines directly.
"""

from __future__ import annotations

import logging
from pathlib import Path, PurePosixPath

from skillbridge.config import SKILL_FILENAME
from skillbridge.context import SkillContext
from skillbridge.errors import InvalidSkillSource, NotFoundError
from skillbridge.fingerprint import lexical_path
from skillbridge.git_cache import GitSource, parse_git_source, resolve_subpath
from skillbridge.models import (
    BulkSyncResult,
    GitSkillCandidate,
    ImportResolution,
    InstallResult,
    ManagedSkill,
    OnboardingPlan,
    SourceType,
    SyncMode,
    SyncResult,
    ToolStatus,
    UpdateResult,
)
from skillbridge.skill_md import infer_skill_name, parse_skill_frontmatter, validate_skill_name
from skillbridge.utils import CancelToken

logger = logging.getLogger(__name__)


def _install_result(skill: ManagedSkill) -> InstallResult:
    return InstallResult(
        skill_id=skill.id,
        name=skill.name,
        central_path=skill.central_path,
        content_hash=skill.content_hash,
    )


class SkillService:
    """High-level skill operations over a SkillContext."""

    def __init__(self, context: SkillContext) -> None:
        self.ctx = context

    # ── install ──────────────────────────────────────────────

    def _check_name_free(self, name: str) -> str:
        name = validate_skill_name(name)
        if self.ctx.db.find_by_name(name):
            raise InvalidSkillSource(f"A skill named '{name}' is already managed")
        return name

    def install_local(self, path: str | Path, name: str | None = None) -> InstallResult:
        """Copy a local skill directory (or single file) into the store."""
        source = Path(path).expanduser()
        if not source.exists():
            raise InvalidSkillSource(f"Skill source not found: {source}")
        name = self._check_name_free(name or infer_skill_name(source))
        skill = self.ctx.repo.create(
            name, source, SourceType.LOCAL, source_ref=lexical_path(source)
        )
        return _install_result(skill)

    def list_git_candidates(
        self, ref: str, cancel: CancelToken | None = None
    ) -> list[GitSkillCandidate]:
        """Skills available in a git source, with subpaths relative to the repo."""
        source = parse_git_source(ref)
        working = self.ctx.git_cache.fetch(source, cancel=cancel)
        base = resolve_subpath(working, source.subpath)
        candidates = self.ctx.git_cache.list_candidates(
            base, default_name=self._default_git_name(source)
        )
        if source.subpath:
            for candidate in candidates:
                candidate.subpath = str(
                    PurePosixPath(source.subpath, candidate.subpath)
                ).rstrip("/")
        return candidates

    @staticmethod
    def _default_git_name(source: GitSource) -> str:
        if source.subpath:
            return PurePosixPath(source.subpath).name
        tail = source.url.rstrip("/").rsplit("/", 1)[-1].rsplit(":", 1)[-1]
        return tail[: -len(".git")] if tail.endswith(".git") else tail

    def install_git(
        self,
        ref: str,
        subpath: str | None = None,
        name: str | None = None,
        cancel: CancelToken | None = None,
    ) -> InstallResult:
        """Install one skill from a git source.

        When the referenced location is not itself a skill and holds
        exactly one skill, that skill is installed; several skills require
        choosing a ``subpath`` (see :meth:`list_git_candidates`).
        """
        source = parse_git_source(ref)
        if subpath:
            source = source.with_subpath(str(PurePosixPath(source.subpath, subpath)))

        working = self.ctx.git_cache.fetch(source, cancel=cancel)
        content = resolve_subpath(working, source.subpath)
        if content.is_dir() and not (content / SKILL_FILENAME).is_file():
            candidates = self.ctx.git_cache.list_candidates(content)
            if not candidates:
                raise InvalidSkillSource(f"No {SKILL_FILENAME} found in {ref}")
            if len(candidates) > 1:
                names = ", ".join(c.subpath for c in candidates)
                raise InvalidSkillSource(
                    f"{ref} contains {len(candidates)} skills, choose a subpath: {names}"
                )
            source = source.with_subpath(
                str(PurePosixPath(source.subpath, candidates[0].subpath))
            )
            content = resolve_subpath(working, source.subpath)

        if name is None:
            meta = parse_skill_frontmatter(content / SKILL_FILENAME) if content.is_dir() else None
            name = (meta or {}).get("name") or self._default_git_name(source)
        name = self._check_name_free(name)

        skill = self.ctx.repo.create(
            name,
            content,
            SourceType.GIT,
            source_ref=source.to_ref(),
            source_revision=self.ctx.git_cache.revision_of(source),
            cancel=cancel,
        )
        return _install_result(skill)

    # ── catalog ──────────────────────────────────────────────

    def list_skills(self) -> list[ManagedSkill]:
        return self.ctx.db.list_skills()

    def get_skill(self, skill_id: str) -> ManagedSkill:
        return self.ctx.repo.require(skill_id)

    def resolve_skill(self, id_or_name: str) -> ManagedSkill:
        """Look a skill up by id, falling back to a case-insensitive name."""
        skill = self.ctx.db.get_skill(id_or_name)
        if skill is not None:
            return skill
        matches = self.ctx.db.find_by_name(id_or_name)
        if not matches:
            raise NotFoundError("skill", id_or_name)
        return matches[0]

    def delete_skill(self, skill_id: str) -> ManagedSkill:
        """Delete a skill after removing it from every tool."""
        return self.ctx.repo.delete(skill_id, self.ctx.engine.detach)

    def update_skill(
        self, skill_id: str, cancel: CancelToken | None = None
    ) -> UpdateResult:
        return self.ctx.engine.update(self.ctx.repo.require(skill_id), cancel=cancel)

    # ── sync ─────────────────────────────────────────────────

    def set_sync(
        self,
        skill_id: str,
        tool: str,
        enabled: bool,
        mode: SyncMode | None = None,
        overwrite: bool = False,
    ) -> SyncResult | None:
        """Toggle a skill in a tool. Returns the SyncResult when enabling."""
        skill = self.ctx.repo.require(skill_id)
        if enabled:
            return self.ctx.engine.sync(skill, tool, mode=mode, overwrite=overwrite)
        self.ctx.engine.unsync(skill, tool)
        return None

    def preferred_sync_tools(self) -> list[str]:
        """Tools new skills go to: the preference, or every installed tool."""
        installed = self.ctx.registry.installed_keys()
        preferred = self.ctx.preferences.get_preferred_tools()
        if preferred is None:
            return installed
        return [key for key in preferred if key in installed]

    def sync_to_preferred(
        self, skill_id: str, cancel: CancelToken | None = None
    ) -> BulkSyncResult:
        skill = self.ctx.repo.require(skill_id)
        pairs = [(skill, tool) for tool in self.preferred_sync_tools()]
        return self.ctx.engine.sync_many(pairs, cancel=cancel)

    def sync_all_new_tools(
        self,
        tools: list[str] | None = None,
        cancel: CancelToken | None = None,
    ) -> BulkSyncResult:
        """Sync every managed skill into newly installed tools.

        Skills that already have a target in a tool are left alone. Every
        other pair is attempted, so a pair whose target path already holds
        foreign content comes back in ``failed`` as a TargetPathConflict.
        The tools are acknowledged afterwards so they no longer count as
        newly installed.
        """
        if tools is None:
            tools = self.ctx.registry.status(
                self.ctx.preferences.get_known_tools()
            ).newly_installed

        pairs = [
            (skill, tool)
            for skill in self.ctx.db.list_skills()
            for tool in tools
            if skill.target_for(tool) is None
        ]

        result = self.ctx.engine.sync_many(pairs, cancel=cancel)
        if not result.cancelled:
            self._record_known_tools()
        return result

    # ── tools ────────────────────────────────────────────────

    def _record_known_tools(self) -> None:
        self.ctx.preferences.set_known_tools(self.ctx.registry.installed_keys())

    def tool_status(self, record: bool = True) -> ToolStatus:
        """Installed tools and the ones that appeared since the last record.

        The first observation is recorded unconditionally so later calls
        have a baseline.
        """
        known = self.ctx.preferences.get_known_tools()
        status = self.ctx.registry.status(known)
        if known is None or (record and status.newly_installed):
            self.ctx.preferences.set_known_tools(status.installed)
        return status

    # ── onboarding ───────────────────────────────────────────

    def onboarding_scan(self, tools: list[str] | None = None) -> OnboardingPlan:
        return self.ctx.onboarding.scan(tools)

    def onboarding_import(
        self, group_name: str, resolution: ImportResolution
    ) -> InstallResult | None:
        """Import one group of a freshly recomputed plan."""
        plan = self.ctx.onboarding.scan()
        wanted = group_name.casefold()
        for group in plan.groups:
            if group.name.casefold() == wanted:
                return self.ctx.onboarding.import_group(group, resolution)
        raise NotFoundError("onboarding group", group_name)

    # ── git cache ────────────────────────────────────────────

    def get_cache_cleanup_days(self) -> int:
        return self.ctx.preferences.get_git_cache_cleanup_days()

    def set_cache_cleanup_days(self, days: int) -> int:
        return self.ctx.preferences.set_git_cache_cleanup_days(days)

    def get_cache_ttl_secs(self) -> int:
        return self.ctx.preferences.get_git_cache_ttl_secs()

    def set_cache_ttl_secs(self, secs: int) -> int:
        secs = self.ctx.preferences.set_git_cache_ttl_secs(secs)
        self.ctx.git_cache.ttl_secs = secs
        return secs

    def get_cache_path(self) -> Path:
        return self.ctx.git_cache.path

    def clear_cache(self) -> int:
        return self.ctx.git_cache.clear()

    def cleanup_cache(self, days: int | None = None) -> int:
        if days is None:
            days = self.get_cache_cleanup_days()
        return self.ctx.git_cache.cleanup(days)

    # ── preferences ──────────────────────────────────────────

    def get_preferred_tools(self) -> list[str] | None:
        return self.ctx.preferences.get_preferred_tools()

    def set_preferred_tools(self, tools: list[str] | None) -> list[str] | None:
        if tools is not None:
            for key in tools:
                self.ctx.registry.get(key)
        self.ctx.preferences.set_preferred_tools(tools)
        return tools

    def get_central_path(self) -> Path:
        return self.ctx.repo.root

    def relocate_central(self, new_path: str | Path) -> BulkSyncResult:
        """Move the central store, then re-point every target at it.

        Returns:
            Combined outcome of re-syncing the targets.
        """
        new_root = Path(lexical_path(new_path))
        mapping = self.ctx.repo.move(new_root)
        self.ctx.preferences.set_central_repo_path(new_root)

        result = BulkSyncResult()
        for skill_id in mapping:
            relinked = self.ctx.engine.relink(self.ctx.repo.require(skill_id))
            result.succeeded.extend(relinked.succeeded)
            result.failed.extend(relinked.failed)
        logger.info(
            f"Central store now at {new_root}; {len(result.failed)} target(s) failed"
        )
        return result
