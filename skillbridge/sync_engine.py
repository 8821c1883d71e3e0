"""Sync engine: project skills from the central store into tool directories.

Every write to a target path happens under a per-path lock and goes
through a hidden staging sibling that is swapped in with a rename, so a
crash or cancellation never leaves a half-written target behind.

Flow of ``sync(skill, tool)``:
1. Compute the deterministic target path for the tool
2. Refuse if the reverse index says another skill owns the path
3. Skip the write if the target already matches the central copy
4. Otherwise stage (symlink or copy) and swap into place
5. Record the SkillTarget with a completion timestamp
"""

from __future__ import annotations

import logging
import os
import sqlite3
import threading
from collections.abc import Iterable, Iterator
from concurrent.futures import ThreadPoolExecutor, wait
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from skillbridge.config import BULK_SYNC_MAX_WORKERS
from skillbridge.errors import (
    InvalidSkillSource,
    NotFoundError,
    OperationCancelled,
    SkillBridgeError,
    TargetPathConflict,
)
from skillbridge.fingerprint import (
    fingerprint_path,
    fingerprint_path_or_none,
    lexical_path,
    normalize_path,
)
from skillbridge.models import (
    BulkSyncResult,
    ManagedSkill,
    SkillTarget,
    SourceType,
    SyncMode,
    SyncResult,
    TargetFailure,
    TargetStatus,
    UpdateResult,
)
from skillbridge.store import CentralRepository
from skillbridge.tools import ToolRegistry
from skillbridge.utils import (
    CancelToken,
    MonotonicClock,
    atomic_replace,
    check_cancel,
    copy_tree,
    remove_path,
    staging_path_for,
    try_symlink,
)

if TYPE_CHECKING:
    from skillbridge.git_cache import GitSourceCache

logger = logging.getLogger(__name__)


@dataclass
class _PathLock:
    lock: threading.Lock = field(default_factory=threading.Lock)
    users: int = 0


class SyncEngine:
    """Projects skills into tools and records the resulting targets."""

    def __init__(
        self,
        repo: CentralRepository,
        registry: ToolRegistry,
        git_cache: GitSourceCache | None = None,
        clock: MonotonicClock | None = None,
    ) -> None:
        self.repo = repo
        self.registry = registry
        self.git_cache = git_cache
        self.clock = clock or MonotonicClock()
        self._locks: dict[str, _PathLock] = {}
        self._locks_guard = threading.Lock()
        # None until the host is first asked for a symlink
        self._link_supported: bool | None = None

    @contextmanager
    def _path_lock(self, path: Path) -> Iterator[None]:
        """Hold the lock for ``path``; the entry is dropped once unused."""
        key = lexical_path(path)
        with self._locks_guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = _PathLock()
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._locks_guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._locks[key]

    # ── sync ─────────────────────────────────────────────────

    def sync(
        self,
        skill: ManagedSkill,
        tool: str,
        mode: SyncMode | None = None,
        overwrite: bool = False,
        cancel: CancelToken | None = None,
    ) -> SyncResult:
        """Project ``skill`` into ``tool``.

        Args:
            skill: Skill to project (re-read from the store).
            tool: Tool registry key.
            mode: Requested mode; defaults to the tool's preferred mode.
            overwrite: Replace unmanaged content found at the target path.
            cancel: Optional cancellation token.

        Raises:
            NotFoundError: Unknown skill or tool.
            TargetPathConflict: The path belongs to another skill, or holds
                unmanaged content and ``overwrite`` is False.
        """
        skill = self.repo.require(skill.id)
        tool_def = self.registry.get(tool)
        target = self.registry.target_path_for(tool, skill.name)
        central = self.repo.get(skill.id)
        requested = mode or self.registry.preferred_mode(tool)
        effective = requested
        if effective == SyncMode.LINK and (
            tool_def.force_copy or self._link_supported is False
        ):
            effective = SyncMode.COPY

        previous = skill.target_for(tool)

        with self._path_lock(target):
            check_cancel(cancel)
            owner = self.repo.db.owner_of_path(target)
            if owner is not None and owner != skill.id:
                raise TargetPathConflict(str(target), skill.id, owner)

            if os.path.lexists(target) and owner is None:
                if not self._links_to(target, central) and not overwrite:
                    raise TargetPathConflict(str(target), skill.id, None)

            if self._matches(target, central, effective):
                mode_used, replaced, unchanged = effective, False, True
            else:
                mode_used, replaced = self._write(central, target, effective, cancel)
                unchanged = False

            timestamp = self.clock.now()
            self.repo.db.upsert_target(
                SkillTarget(
                    tool=tool,
                    mode=mode_used,
                    status=TargetStatus.SYNCED,
                    target_path=str(target),
                    synced_at=timestamp,
                    skill_id=skill.id,
                )
            )
            self.repo.db.touch_last_sync(skill.id, timestamp)

        if previous is not None and lexical_path(previous.target_path) != lexical_path(
            target
        ):
            self._remove_artifact(Path(previous.target_path))

        if unchanged:
            logger.debug(f"Skill '{skill.name}' already in sync with {tool}")
        else:
            logger.info(f"Synced '{skill.name}' to {tool} ({mode_used.value}) at {target}")
        return SyncResult(
            tool=tool,
            mode_used=mode_used,
            target_path=str(target),
            replaced=replaced,
            unchanged=unchanged,
        )

    @staticmethod
    def _links_to(target: Path, central: Path) -> bool:
        return target.is_symlink() and normalize_path(target) == normalize_path(central)

    def _matches(self, target: Path, central: Path, mode: SyncMode) -> bool:
        if not os.path.lexists(target):
            return False
        if mode == SyncMode.LINK:
            return self._links_to(target, central)
        if target.is_symlink() or not target.is_dir():
            return False
        return fingerprint_path_or_none(target) == fingerprint_path(central)

    def _write(
        self,
        central: Path,
        target: Path,
        mode: SyncMode,
        cancel: CancelToken | None,
    ) -> tuple[SyncMode, bool]:
        target.parent.mkdir(parents=True, exist_ok=True)
        staged = staging_path_for(target)
        try:
            if mode == SyncMode.LINK:
                if try_symlink(central, staged):
                    self._link_supported = True
                    return SyncMode.LINK, atomic_replace(staged, target)
                self._link_supported = False
                logger.warning(
                    f"Symlinks unavailable for {target}, falling back to copy"
                )
            copy_tree(central, staged, cancel)
            check_cancel(cancel)
            return SyncMode.COPY, atomic_replace(staged, target)
        except BaseException:
            remove_path(staged)
            raise

    def _remove_artifact(self, path: Path) -> None:
        with self._path_lock(path):
            try:
                remove_path(path)
            except FileNotFoundError:
                pass

    # ── unsync ───────────────────────────────────────────────

    def unsync(self, skill: ManagedSkill, tool: str) -> bool:
        """Remove a skill from a tool.

        An artifact that was already deleted externally is not an error.

        Returns:
            True if an artifact was removed from disk.

        Raises:
            NotFoundError: The skill has no target for this tool.
        """
        target = self.repo.db.get_target(skill.id, tool)
        if target is None:
            raise NotFoundError("target", f"{skill.id}/{tool}")

        path = Path(target.target_path)
        with self._path_lock(path):
            try:
                removed = remove_path(path)
            except FileNotFoundError:
                removed = False
            self.repo.db.delete_target(skill.id, tool)

        if removed:
            logger.info(f"Removed '{skill.name}' from {tool} ({path})")
        else:
            logger.info(f"Target {path} for {tool} was already gone")
        return removed

    def detach(self, skill: ManagedSkill, target: SkillTarget) -> None:
        """Unsync callback used by CentralRepository.delete."""
        try:
            self.unsync(skill, target.tool)
        except NotFoundError:
            pass

    # ── update ───────────────────────────────────────────────

    def update(
        self,
        skill: ManagedSkill,
        cancel: CancelToken | None = None,
    ) -> UpdateResult:
        """Refresh a skill's content and re-sync every existing target.

        Git skills are re-fetched; other skills are re-fingerprinted in
        place. Each target is synced independently and failures are
        collected instead of aborting the remaining targets.
        """
        skill = self.repo.require(skill.id)
        old_hash = skill.content_hash

        if skill.source_type == SourceType.GIT:
            self._refresh_git_content(skill, cancel)
        else:
            self.repo.rehash(skill.id)

        skill = self.repo.require(skill.id)
        result = UpdateResult(
            skill_id=skill.id,
            name=skill.name,
            content_hash=skill.content_hash,
            source_revision=skill.source_revision,
            content_changed=skill.content_hash != old_hash,
        )

        for target in skill.targets:
            try:
                self.sync(skill, target.tool, mode=target.mode, cancel=cancel)
                result.updated_targets.append(target.tool)
            except (SkillBridgeError, OSError) as e:
                logger.warning(f"Failed to update {skill.name} in {target.tool}: {e}")
                result.failed_targets.append(
                    TargetFailure(tool=target.tool, error=str(e), skill_id=skill.id)
                )
                self._mark_error(target, str(e))

        return result

    def _refresh_git_content(
        self, skill: ManagedSkill, cancel: CancelToken | None
    ) -> None:
        from skillbridge.git_cache import parse_git_source, resolve_subpath

        if self.git_cache is None or not skill.source_ref:
            raise InvalidSkillSource(f"Skill {skill.id} has no usable git source")
        source = parse_git_source(skill.source_ref)
        working = self.git_cache.fetch(skill.source_ref, force=True, cancel=cancel)
        content = resolve_subpath(working, source.subpath)
        self.repo.put(skill.id, content, cancel)
        revision = self.git_cache.revision_of(skill.source_ref)
        if revision and revision != skill.source_revision:
            self.repo.db.update_fields(skill.id, source_revision=revision)

    def _mark_error(self, target: SkillTarget, message: str) -> None:
        target.status = TargetStatus.ERROR
        target.error_message = message
        target.synced_at = None
        try:
            self.repo.db.upsert_target(target)
        except (sqlite3.Error, OSError) as e:
            logger.warning(f"Could not record failure for {target.target_path}: {e}")

    # ── bulk ─────────────────────────────────────────────────

    def sync_many(
        self,
        pairs: Iterable[tuple[ManagedSkill, str]],
        mode: SyncMode | None = None,
        cancel: CancelToken | None = None,
        max_workers: int = BULK_SYNC_MAX_WORKERS,
    ) -> BulkSyncResult:
        """Sync many (skill, tool) pairs concurrently.

        Failures never stop the batch; the result lists every success and
        every failure with its reason. Pairs not yet started when
        ``cancel`` fires are reported as cancelled. A KeyboardInterrupt
        while waiting cancels the batch the same way: queued pairs never
        start, running ones finish, and the summary is returned.
        """
        pairs = list(pairs)
        result = BulkSyncResult()
        if not pairs:
            return result
        if cancel is None:
            cancel = CancelToken()

        def _run(pair: tuple[ManagedSkill, str]) -> SyncResult:
            check_cancel(cancel)
            return self.sync(pair[0], pair[1], mode=mode, cancel=cancel)

        with ThreadPoolExecutor(max_workers=max(1, max_workers)) as pool:
            futures = [pool.submit(_run, pair) for pair in pairs]
            try:
                wait(futures)
            except KeyboardInterrupt:
                logger.warning("Bulk sync interrupted, cancelling pairs not yet started")
                cancel.cancel()
                pool.shutdown(wait=True, cancel_futures=True)

        for (skill, tool), future in zip(pairs, futures):
            if future.cancelled():
                result.cancelled = True
                result.failed.append(
                    TargetFailure(tool=tool, error="cancelled", skill_id=skill.id)
                )
                continue
            try:
                result.succeeded.append(future.result())
            except OperationCancelled:
                result.cancelled = True
                result.failed.append(
                    TargetFailure(tool=tool, error="cancelled", skill_id=skill.id)
                )
            except (SkillBridgeError, OSError) as e:
                logger.warning(f"Bulk sync of {skill.name} to {tool} failed: {e}")
                result.failed.append(
                    TargetFailure(tool=tool, error=str(e), skill_id=skill.id)
                )

        logger.info(
            f"Bulk sync finished: {len(result.succeeded)} succeeded, "
            f"{len(result.failed)} failed"
        )
        return result

    def relink(
        self, skill: ManagedSkill, cancel: CancelToken | None = None
    ) -> BulkSyncResult:
        """Re-sync every existing target of a skill with its recorded mode.

        Used after the central store moves so link targets point at the
        new location.
        """
        skill = self.repo.require(skill.id)
        result = BulkSyncResult()
        for target in skill.targets:
            try:
                result.succeeded.append(
                    self.sync(skill, target.tool, mode=target.mode, cancel=cancel)
                )
            except (SkillBridgeError, OSError) as e:
                result.failed.append(
                    TargetFailure(tool=target.tool, error=str(e), skill_id=skill.id)
                )
        return result
