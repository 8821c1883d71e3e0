"""Exception taxonomy for SkillBridge.

Every error raised by the reconciliation engine derives from
``SkillBridgeError`` and carries enough context (skill id, tool key,
path) for the caller to render an actionable message.

There is no error for link-mode degradation: when a symlink cannot be
created the engine copies instead and reports it via
``SyncResult.mode_used``.
"""

from __future__ import annotations

from typing import Any


class SkillBridgeError(Exception):
    """Base class for all SkillBridge errors."""

    pass


class NotFoundError(SkillBridgeError):
    """A skill, tool or target does not exist."""

    def __init__(self, kind: str, key: str) -> None:
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} not found: {key}")


class TargetPathConflict(SkillBridgeError):
    """The computed target path already holds content that is not ours.

    ``owner_id`` is the id of the skill owning the path, or ``None`` when
    the path holds unmanaged content.
    """

    def __init__(self, path: str, skill_id: str, owner_id: str | None = None) -> None:
        self.path = path
        self.skill_id = skill_id
        self.owner_id = owner_id
        if owner_id:
            detail = f"owned by skill {owner_id}"
        else:
            detail = "holds unmanaged content"
        super().__init__(
            f"Target path {path} {detail}; refusing to sync skill {skill_id}"
        )


class FetchFailure(SkillBridgeError):
    """Fetching a remote source failed. Retryable by the caller."""

    def __init__(self, ref: str, detail: str) -> None:
        self.ref = ref
        self.detail = detail
        super().__init__(f"Failed to fetch {ref}: {detail}")


class PartialUpdateFailure(SkillBridgeError):
    """Some targets of a bulk operation failed while others succeeded."""

    def __init__(
        self,
        skill_id: str,
        succeeded: list[str],
        failures: list[Any],
    ) -> None:
        self.skill_id = skill_id
        self.succeeded = succeeded
        self.failures = failures
        failed_tools = ", ".join(f.tool for f in failures)
        super().__init__(
            f"Skill {skill_id}: {len(failures)} target(s) failed ({failed_tools}), "
            f"{len(succeeded)} succeeded"
        )


class StoreRelocationFailure(SkillBridgeError):
    """Moving the central store was aborted; the original state is intact."""

    def __init__(self, old_root: str, new_root: str, detail: str) -> None:
        self.old_root = old_root
        self.new_root = new_root
        self.detail = detail
        super().__init__(f"Failed to move store {old_root} -> {new_root}: {detail}")


class OperationCancelled(SkillBridgeError):
    """The caller cancelled a long-running operation."""

    pass


class InvalidSkillSource(SkillBridgeError):
    """A source path or git ref does not contain a usable skill."""

    pass
