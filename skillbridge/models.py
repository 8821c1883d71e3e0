"""Data model for the skill catalog and its reconciliation results."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


class SourceType(str, Enum):
    """Where a managed skill's content came from."""

    LOCAL = "local"
    GIT = "git"
    IMPORT = "import"


class SyncMode(str, Enum):
    """How a skill is projected into a tool directory."""

    COPY = "copy"
    LINK = "link"


class TargetStatus(str, Enum):
    """State of a single (skill, tool) projection."""

    SYNCED = "synced"
    STALE = "stale"
    ERROR = "error"


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value


class _Serializable:
    def to_dict(self) -> dict[str, Any]:
        return _plain(asdict(self))  # type: ignore[call-overload]


@dataclass
class SkillTarget(_Serializable):
    """A skill projected into one tool's directory."""

    tool: str
    mode: SyncMode
    status: TargetStatus
    target_path: str
    synced_at: int | None = None
    skill_id: str = ""
    error_message: str | None = None


@dataclass
class ManagedSkill(_Serializable):
    """A skill tracked in the central store.

    ``central_path`` is the only writable copy; every target is derived
    from it.
    """

    id: str
    name: str
    source_type: SourceType
    source_ref: str | None
    central_path: str
    created_at: int
    updated_at: int
    last_sync_at: int | None = None
    status: str = "active"
    targets: list[SkillTarget] = field(default_factory=list)
    content_hash: str | None = None
    source_revision: str | None = None

    def target_for(self, tool: str) -> SkillTarget | None:
        for target in self.targets:
            if target.tool == tool:
                return target
        return None


@dataclass
class ToolInfo(_Serializable):
    """A known external tool and whether it is installed on this host."""

    key: str
    label: str
    installed: bool
    skills_dir: str = ""
    force_copy: bool = False
    is_custom: bool = False


@dataclass
class ToolStatus(_Serializable):
    """Installed tools, including the ones that appeared since last check."""

    tools: list[ToolInfo]
    installed: list[str]
    newly_installed: list[str]


@dataclass
class OnboardingVariant(_Serializable):
    """One skill-like artifact found in a tool directory."""

    tool: str
    name: str
    path: str
    fingerprint: str | None
    is_link: bool
    link_target: str | None = None
    tool_label: str = ""
    conflicting_tools: list[str] = field(default_factory=list)


@dataclass
class OnboardingGroup(_Serializable):
    """All variants sharing a (case-insensitive) name across tools."""

    name: str
    variants: list[OnboardingVariant]
    has_conflict: bool


@dataclass
class OnboardingPlan(_Serializable):
    """Point-in-time import proposal; recomputed on every scan."""

    total_tools_scanned: int
    total_skills_found: int
    groups: list[OnboardingGroup]


@dataclass
class ImportResolution:
    """User decision for an onboarding group: a canonical tool, or skip."""

    tool: str | None = None
    skip: bool = False


@dataclass
class GitSkillCandidate(_Serializable):
    """A selectable skill inside a fetched git source."""

    name: str
    description: str | None
    subpath: str


@dataclass
class InstallResult(_Serializable):
    skill_id: str
    name: str
    central_path: str
    content_hash: str | None


@dataclass
class SyncResult(_Serializable):
    """Outcome of projecting one skill into one tool.

    ``mode_used`` may differ from the requested mode when linking is not
    possible. ``unchanged`` is set when the target already matched.
    """

    tool: str
    mode_used: SyncMode
    target_path: str
    replaced: bool = False
    unchanged: bool = False


@dataclass
class TargetFailure(_Serializable):
    tool: str
    error: str
    skill_id: str = ""


@dataclass
class UpdateResult(_Serializable):
    skill_id: str
    name: str
    content_hash: str | None
    source_revision: str | None
    updated_targets: list[str] = field(default_factory=list)
    failed_targets: list[TargetFailure] = field(default_factory=list)
    content_changed: bool = False

    def raise_for_failures(self) -> None:
        """Raise PartialUpdateFailure if any target failed."""
        if self.failed_targets:
            from skillbridge.errors import PartialUpdateFailure

            raise PartialUpdateFailure(
                self.skill_id, list(self.updated_targets), list(self.failed_targets)
            )


@dataclass
class BulkSyncResult(_Serializable):
    """Complete outcome summary of a bulk sync."""

    succeeded: list[SyncResult] = field(default_factory=list)
    failed: list[TargetFailure] = field(default_factory=list)
    cancelled: bool = False


@dataclass
class CacheEntry(_Serializable):
    """One fetched git source in the cache index."""

    key: str
    ref: str
    path: str
    fetched_at: float
    last_access_at: float
    revision: str | None = None
