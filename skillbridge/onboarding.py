"""Onboarding: find skills already living in tool directories and import them.

A scan never changes anything on disk. It groups unmanaged, skill-like
directories by case-insensitive name across every installed tool and
flags a group as conflicting when its variants carry different content.
Importing a group copies the chosen variant into the central store and
registers every variant as an existing target at its current path.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from pathlib import Path

from skillbridge.errors import InvalidSkillSource
from skillbridge.fingerprint import (
    detect_link,
    fingerprint_path_or_none,
    is_under,
    lexical_path,
    normalize_path,
    path_key,
)
from skillbridge.models import (
    ImportResolution,
    InstallResult,
    OnboardingGroup,
    OnboardingPlan,
    OnboardingVariant,
    SkillTarget,
    SourceType,
    SyncMode,
    TargetStatus,
)
from skillbridge.skill_md import validate_skill_name
from skillbridge.store import CentralRepository
from skillbridge.tools import ToolRegistry
from skillbridge.utils import MonotonicClock

logger = logging.getLogger(__name__)

# Tool-owned directories that are never user skills
_SYSTEM_DIRS = {"codex": {".system"}}


def _identity(variant: OnboardingVariant) -> str | None:
    """Content identity used for conflict detection.

    Unreadable links still identify by where they point; unreadable
    plain directories carry no identity.
    """
    if variant.fingerprint:
        return variant.fingerprint
    if variant.is_link and variant.link_target:
        return f"link:{normalize_path(variant.link_target)}"
    return None


class OnboardingReconciler:
    """Scans tool directories and imports discovered skills."""

    def __init__(
        self,
        repo: CentralRepository,
        registry: ToolRegistry,
        clock: MonotonicClock | None = None,
    ) -> None:
        self.repo = repo
        self.registry = registry
        self.clock = clock or MonotonicClock()

    # ── scan ─────────────────────────────────────────────────

    def scan(self, tools: list[str] | None = None) -> OnboardingPlan:
        """Build an import plan from the current state of tool directories.

        Args:
            tools: Tool keys to scan; defaults to every installed tool.
        """
        keys = tools if tools is not None else self.registry.installed_keys()
        managed_keys = {
            path_key(tool, path) for tool, path in self.repo.db.list_target_paths()
        }
        managed_names = {s.name.casefold() for s in self.repo.db.list_skills()}
        central_root = self.repo.root

        variants: list[OnboardingVariant] = []
        scanned = 0
        for key in keys:
            definition = self.registry.get(key)
            scanned += 1
            variants.extend(
                self._scan_dir(key, definition.label, self.registry.skills_dir(key))
            )
        for source, path in self.registry.extra_sources():
            scanned += 1
            variants.extend(self._scan_dir(source.key, source.label, path))

        variants = [
            v
            for v in variants
            if path_key(v.tool, v.path) not in managed_keys
            and v.name.casefold() not in managed_names
            and not self._inside_central(v, central_root)
        ]
        groups = self._group(variants)

        logger.info(
            f"Onboarding scan: {scanned} tool(s), {len(groups)} skill(s), "
            f"{sum(1 for g in groups if g.has_conflict)} conflict(s)"
        )
        return OnboardingPlan(
            total_tools_scanned=scanned,
            total_skills_found=len(groups),
            groups=groups,
        )

    def _scan_dir(self, tool: str, label: str, directory: Path) -> list[OnboardingVariant]:
        if not directory.is_dir():
            return []

        skipped = _SYSTEM_DIRS.get(tool, set())
        found = []
        try:
            children = sorted(directory.iterdir())
        except OSError as e:
            logger.warning(f"Cannot read skills directory {directory}: {e}")
            return []

        for child in children:
            if child.name.startswith(".") or child.name in skipped:
                continue
            is_link, link_target = detect_link(child)
            if not is_link and not child.is_dir():
                continue
            if is_link and child.exists() and not child.is_dir():
                continue
            found.append(
                OnboardingVariant(
                    tool=tool,
                    name=child.name,
                    path=lexical_path(child),
                    fingerprint=fingerprint_path_or_none(child),
                    is_link=is_link,
                    link_target=link_target,
                    tool_label=label,
                )
            )
        return found

    @staticmethod
    def _inside_central(variant: OnboardingVariant, central_root: Path) -> bool:
        if is_under(variant.path, central_root):
            return True
        if variant.link_target and is_under(variant.link_target, central_root):
            return True
        try:
            return is_under(normalize_path(variant.path), normalize_path(central_root))
        except OSError:
            return False

    @staticmethod
    def _group(variants: list[OnboardingVariant]) -> list[OnboardingGroup]:
        by_name: dict[str, list[OnboardingVariant]] = defaultdict(list)
        for variant in variants:
            by_name[variant.name.casefold()].append(variant)

        groups = []
        for key in sorted(by_name):
            members = sorted(by_name[key], key=lambda v: (v.tool, v.path))
            identities = {_identity(v) for v in members} - {None}
            for variant in members:
                mine = _identity(variant)
                if mine is None:
                    continue
                variant.conflicting_tools = sorted(
                    {
                        other.tool
                        for other in members
                        if _identity(other) is not None and _identity(other) != mine
                    }
                )
            groups.append(
                OnboardingGroup(
                    name=members[0].name,
                    variants=members,
                    has_conflict=len(identities) > 1,
                )
            )
        return groups

    # ── import ───────────────────────────────────────────────

    def import_group(
        self, group: OnboardingGroup, resolution: ImportResolution
    ) -> InstallResult | None:
        """Import a group using the variant of the chosen tool.

        Returns:
            None when the resolution is a skip.

        Raises:
            InvalidSkillSource: No variant for the chosen tool, unreadable
                content, or the name is already managed.
        """
        if resolution.skip:
            logger.info(f"Skipped onboarding of '{group.name}'")
            return None

        chosen = next((v for v in group.variants if v.tool == resolution.tool), None)
        if chosen is None:
            raise InvalidSkillSource(
                f"No variant of '{group.name}' in tool {resolution.tool}"
            )
        if chosen.fingerprint is None:
            raise InvalidSkillSource(f"Cannot read skill content at {chosen.path}")

        name = validate_skill_name(chosen.name)
        if self.repo.db.find_by_name(name):
            raise InvalidSkillSource(f"A skill named '{name}' is already managed")

        skill = self.repo.create(
            name, Path(chosen.path), SourceType.IMPORT, source_ref=chosen.path
        )
        self._register_variants(skill.id, skill.content_hash, group.variants)

        logger.info(
            f"Imported '{name}' from {chosen.tool} with {len(group.variants)} variant(s)"
        )
        return InstallResult(
            skill_id=skill.id,
            name=skill.name,
            central_path=skill.central_path,
            content_hash=skill.content_hash,
        )

    def _register_variants(
        self,
        skill_id: str,
        content_hash: str | None,
        variants: list[OnboardingVariant],
    ) -> None:
        known_tools = {d.key for d in self.registry.definitions()}
        registered: set[str] = set()
        last_synced = None
        for variant in variants:
            # extra skill stores are read-only sources, not sync targets
            if variant.tool not in known_tools or variant.tool in registered:
                continue
            owner = self.repo.db.owner_of_path(variant.path)
            if owner is not None and owner != skill_id:
                logger.warning(f"{variant.path} already belongs to skill {owner}")
                continue

            in_sync = variant.fingerprint is not None and variant.fingerprint == content_hash
            synced_at = self.clock.now() if in_sync else None
            self.repo.db.upsert_target(
                SkillTarget(
                    tool=variant.tool,
                    mode=SyncMode.LINK if variant.is_link else SyncMode.COPY,
                    status=TargetStatus.SYNCED if in_sync else TargetStatus.STALE,
                    target_path=variant.path,
                    synced_at=synced_at,
                    skill_id=skill_id,
                )
            )
            registered.add(variant.tool)
            if synced_at is not None:
                last_synced = synced_at

        if last_synced is not None:
            self.repo.db.touch_last_sync(skill_id, last_synced)
