"""Central repository store for managed skills.

Skill records and their targets live in a SQLite database (WAL mode);
skill content lives in one directory per skill under the central root.
The central copy is the only writable source: targets in tool
directories are always derived from it.

Storage: ~/.skillbridge/skills.db, ~/.skillbridge/skills/<name>/
"""

from __future__ import annotations

import logging
import os
import sqlite3
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any
from uuid import uuid4

from skillbridge.config import DB_TIMEOUT, DEFAULT_SKILL_STATUS
from skillbridge.errors import (
    InvalidSkillSource,
    NotFoundError,
    StoreRelocationFailure,
)
from skillbridge.fingerprint import fingerprint_path, is_under, lexical_path
from skillbridge.models import (
    ManagedSkill,
    SkillTarget,
    SourceType,
    SyncMode,
    TargetStatus,
)
from skillbridge.utils import (
    CancelToken,
    atomic_replace,
    copy_tree,
    now_ms,
    remove_path,
    staging_path_for,
)

logger = logging.getLogger(__name__)


class SkillDatabase:
    """SQLite persistence for skills and their targets.

    ``skill_targets.target_path`` is unique across all skills and serves
    as the reverse index from a tool path to its owning skill.
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = os.path.abspath(os.path.expanduser(db_path))
        self._lock = threading.RLock()
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Get a SQLite connection with WAL mode."""
        conn = sqlite3.connect(self.db_path, timeout=DB_TIMEOUT)
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        """Initialize database schema."""
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        with self._lock:
            conn = self._get_connection()
            try:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS skills (
                        id              TEXT PRIMARY KEY,
                        name            TEXT NOT NULL,
                        source_type     TEXT NOT NULL,
                        source_ref      TEXT,
                        source_revision TEXT,
                        central_path    TEXT NOT NULL UNIQUE,
                        content_hash    TEXT,
                        created_at      INTEGER NOT NULL,
                        updated_at      INTEGER NOT NULL,
                        last_sync_at    INTEGER,
                        status          TEXT NOT NULL DEFAULT 'active'
                    )
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS skill_targets (
                        id            INTEGER PRIMARY KEY AUTOINCREMENT,
                        skill_id      TEXT NOT NULL
                                      REFERENCES skills(id) ON DELETE CASCADE,
                        tool          TEXT NOT NULL,
                        target_path   TEXT NOT NULL UNIQUE,
                        mode          TEXT NOT NULL,
                        status        TEXT NOT NULL,
                        synced_at     INTEGER,
                        error_message TEXT,
                        UNIQUE(skill_id, tool)
                    )
                    """
                )
                conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_skills_name ON skills(name)"
                )
                conn.commit()
            finally:
                conn.close()

    @staticmethod
    def _row_to_target(row: sqlite3.Row) -> SkillTarget:
        return SkillTarget(
            tool=row["tool"],
            mode=SyncMode(row["mode"]),
            status=TargetStatus(row["status"]),
            target_path=row["target_path"],
            synced_at=row["synced_at"],
            skill_id=row["skill_id"],
            error_message=row["error_message"],
        )

    def _row_to_skill(
        self, conn: sqlite3.Connection, row: sqlite3.Row
    ) -> ManagedSkill:
        target_rows = conn.execute(
            "SELECT * FROM skill_targets WHERE skill_id = ? ORDER BY tool",
            (row["id"],),
        ).fetchall()
        return ManagedSkill(
            id=row["id"],
            name=row["name"],
            source_type=SourceType(row["source_type"]),
            source_ref=row["source_ref"],
            central_path=row["central_path"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            last_sync_at=row["last_sync_at"],
            status=row["status"],
            targets=[self._row_to_target(r) for r in target_rows],
            content_hash=row["content_hash"],
            source_revision=row["source_revision"],
        )

    # ── Skills ───────────────────────────────────────────────

    def insert_skill(self, skill: ManagedSkill) -> None:
        with self._lock:
            conn = self._get_connection()
            try:
                conn.execute(
                    """
                    INSERT INTO skills (id, name, source_type, source_ref,
                        source_revision, central_path, content_hash,
                        created_at, updated_at, last_sync_at, status)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        skill.id,
                        skill.name,
                        skill.source_type.value,
                        skill.source_ref,
                        skill.source_revision,
                        skill.central_path,
                        skill.content_hash,
                        skill.created_at,
                        skill.updated_at,
                        skill.last_sync_at,
                        skill.status,
                    ),
                )
                conn.commit()
            finally:
                conn.close()

    def update_fields(self, skill_id: str, **fields: Any) -> None:
        """Update selected columns of a skill row."""
        allowed = {
            "name",
            "source_ref",
            "source_revision",
            "central_path",
            "content_hash",
            "updated_at",
            "status",
        }
        unknown = set(fields) - allowed
        if unknown:
            raise ValueError(f"Unknown skill fields: {sorted(unknown)}")
        if not fields:
            return
        assignments = ", ".join(f"{key} = ?" for key in fields)
        with self._lock:
            conn = self._get_connection()
            try:
                conn.execute(
                    f"UPDATE skills SET {assignments} WHERE id = ?",
                    (*fields.values(), skill_id),
                )
                conn.commit()
            finally:
                conn.close()

    def touch_last_sync(self, skill_id: str, timestamp: int) -> None:
        """Advance last_sync_at; never moves it backwards."""
        with self._lock:
            conn = self._get_connection()
            try:
                conn.execute(
                    "UPDATE skills SET last_sync_at = MAX(COALESCE(last_sync_at, 0), ?) "
                    "WHERE id = ?",
                    (timestamp, skill_id),
                )
                conn.commit()
            finally:
                conn.close()

    def get_skill(self, skill_id: str) -> ManagedSkill | None:
        with self._lock:
            conn = self._get_connection()
            try:
                row = conn.execute(
                    "SELECT * FROM skills WHERE id = ?", (skill_id,)
                ).fetchone()
                return self._row_to_skill(conn, row) if row else None
            finally:
                conn.close()

    def find_by_name(self, name: str) -> list[ManagedSkill]:
        with self._lock:
            conn = self._get_connection()
            try:
                rows = conn.execute(
                    "SELECT * FROM skills WHERE name = ? COLLATE NOCASE "
                    "ORDER BY created_at",
                    (name,),
                ).fetchall()
                return [self._row_to_skill(conn, r) for r in rows]
            finally:
                conn.close()

    def list_skills(self) -> list[ManagedSkill]:
        with self._lock:
            conn = self._get_connection()
            try:
                rows = conn.execute(
                    "SELECT * FROM skills ORDER BY name COLLATE NOCASE, created_at"
                ).fetchall()
                return [self._row_to_skill(conn, r) for r in rows]
            finally:
                conn.close()

    def delete_skill(self, skill_id: str) -> bool:
        with self._lock:
            conn = self._get_connection()
            try:
                cursor = conn.execute("DELETE FROM skills WHERE id = ?", (skill_id,))
                conn.commit()
                return cursor.rowcount > 0
            finally:
                conn.close()

    def relocate(self, new_paths: dict[str, str]) -> None:
        """Rewrite central_path for many skills in a single transaction."""
        with self._lock:
            conn = self._get_connection()
            try:
                for skill_id, central_path in new_paths.items():
                    conn.execute(
                        "UPDATE skills SET central_path = ? WHERE id = ?",
                        (central_path, skill_id),
                    )
                conn.commit()
            except sqlite3.Error:
                conn.rollback()
                raise
            finally:
                conn.close()

    # ── Targets ──────────────────────────────────────────────

    def upsert_target(self, target: SkillTarget) -> None:
        """Insert or replace the target of a (skill, tool) pair."""
        with self._lock:
            conn = self._get_connection()
            try:
                conn.execute(
                    """
                    INSERT INTO skill_targets (skill_id, tool, target_path, mode,
                        status, synced_at, error_message)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(skill_id, tool) DO UPDATE SET
                        target_path = excluded.target_path,
                        mode = excluded.mode,
                        status = excluded.status,
                        synced_at = CASE
                            WHEN excluded.synced_at IS NULL THEN skill_targets.synced_at
                            ELSE MAX(COALESCE(skill_targets.synced_at, 0),
                                     excluded.synced_at)
                        END,
                        error_message = excluded.error_message
                    """,
                    (
                        target.skill_id,
                        target.tool,
                        lexical_path(target.target_path),
                        target.mode.value,
                        target.status.value,
                        target.synced_at,
                        target.error_message,
                    ),
                )
                conn.commit()
            finally:
                conn.close()

    def get_target(self, skill_id: str, tool: str) -> SkillTarget | None:
        with self._lock:
            conn = self._get_connection()
            try:
                row = conn.execute(
                    "SELECT * FROM skill_targets WHERE skill_id = ? AND tool = ?",
                    (skill_id, tool),
                ).fetchone()
                return self._row_to_target(row) if row else None
            finally:
                conn.close()

    def delete_target(self, skill_id: str, tool: str) -> bool:
        with self._lock:
            conn = self._get_connection()
            try:
                cursor = conn.execute(
                    "DELETE FROM skill_targets WHERE skill_id = ? AND tool = ?",
                    (skill_id, tool),
                )
                conn.commit()
                return cursor.rowcount > 0
            finally:
                conn.close()

    def owner_of_path(self, target_path: str | Path) -> str | None:
        """Skill id owning a target path, via the reverse index."""
        with self._lock:
            conn = self._get_connection()
            try:
                row = conn.execute(
                    "SELECT skill_id FROM skill_targets WHERE target_path = ?",
                    (lexical_path(target_path),),
                ).fetchone()
                return row["skill_id"] if row else None
            finally:
                conn.close()

    def list_target_paths(self) -> list[tuple[str, str]]:
        """All (tool, target_path) pairs currently managed."""
        with self._lock:
            conn = self._get_connection()
            try:
                rows = conn.execute(
                    "SELECT tool, target_path FROM skill_targets"
                ).fetchall()
                return [(r["tool"], r["target_path"]) for r in rows]
            finally:
                conn.close()


class CentralRepository:
    """Canonical on-disk home of every managed skill."""

    def __init__(self, root: Path, db: SkillDatabase) -> None:
        self._root = Path(lexical_path(root))
        self.db = db
        self._lock = threading.RLock()

    @property
    def root(self) -> Path:
        return self._root

    def require(self, skill_id: str) -> ManagedSkill:
        """Load a skill record or raise NotFoundError."""
        skill = self.db.get_skill(skill_id)
        if skill is None:
            raise NotFoundError("skill", skill_id)
        return skill

    def allocate_path(self, name: str, skill_id: str) -> Path:
        """Unique directory for a new skill under the root.

        Uses the skill name, falling back to ``<name>-<id prefix>`` when
        another skill already holds that directory.
        """
        candidate = self._root / name
        if not os.path.lexists(candidate):
            return candidate
        candidate = self._root / f"{name}-{skill_id[:8]}"
        if not os.path.lexists(candidate):
            return candidate
        return self._root / f"{name}-{skill_id}"

    def create(
        self,
        name: str,
        source: Path,
        source_type: SourceType,
        source_ref: str | None,
        source_revision: str | None = None,
        cancel: CancelToken | None = None,
    ) -> ManagedSkill:
        """Copy a skill bundle into the store and register it."""
        if not source.exists():
            raise InvalidSkillSource(f"Skill source not found: {source}")

        skill_id = uuid4().hex
        with self._lock:
            self._root.mkdir(parents=True, exist_ok=True)
            central = self.allocate_path(name, skill_id)
            staged = staging_path_for(central)
            try:
                copy_tree(source, staged, cancel)
                content_hash = fingerprint_path(staged)
                os.replace(staged, central)
            except BaseException:
                remove_path(staged)
                raise

            timestamp = now_ms()
            skill = ManagedSkill(
                id=skill_id,
                name=name,
                source_type=source_type,
                source_ref=source_ref,
                central_path=str(central),
                created_at=timestamp,
                updated_at=timestamp,
                status=DEFAULT_SKILL_STATUS,
                content_hash=content_hash,
                source_revision=source_revision,
            )
            try:
                self.db.insert_skill(skill)
            except sqlite3.Error:
                remove_path(central)
                raise

        logger.info(f"Stored skill '{name}' ({skill_id}) at {central}")
        return skill

    def put(
        self,
        skill_id: str,
        source: Path,
        cancel: CancelToken | None = None,
    ) -> Path:
        """Replace a skill's canonical content with ``source``.

        Writing identical content is a no-op on disk and leaves
        ``updated_at`` untouched; changed content is swapped in atomically.

        Returns:
            The skill's central path.
        """
        with self._lock:
            skill = self.require(skill_id)
            central = Path(skill.central_path)
            staged = staging_path_for(central)
            try:
                copy_tree(source, staged, cancel)
                new_hash = fingerprint_path(staged)
                current_hash = skill.content_hash
                if central.exists() and current_hash is None:
                    current_hash = fingerprint_path(central)
                if central.exists() and new_hash == current_hash:
                    remove_path(staged)
                    logger.debug(f"Skill {skill_id} content unchanged, put skipped")
                    return central
                central.parent.mkdir(parents=True, exist_ok=True)
                atomic_replace(staged, central)
            except BaseException:
                remove_path(staged)
                raise

            self.db.update_fields(skill_id, content_hash=new_hash, updated_at=now_ms())
            logger.info(f"Updated content of skill {skill_id} ({new_hash[:19]})")
            return central

    def rehash(self, skill_id: str) -> bool:
        """Re-fingerprint the canonical copy after an in-place edit.

        Returns:
            True if the fingerprint changed (``updated_at`` is bumped).
        """
        with self._lock:
            skill = self.require(skill_id)
            new_hash = fingerprint_path(self.get(skill_id))
            if new_hash == skill.content_hash:
                return False
            self.db.update_fields(skill_id, content_hash=new_hash, updated_at=now_ms())
            return True

    def get(self, skill_id: str) -> Path:
        """Path of the canonical copy."""
        skill = self.require(skill_id)
        central = Path(skill.central_path)
        if not central.exists():
            raise NotFoundError("skill content", skill.central_path)
        return central

    def read_files(self, skill_id: str) -> dict[str, bytes]:
        """Byte content of every file of a skill, keyed by relative path."""
        central = self.get(skill_id)
        files: dict[str, bytes] = {}
        for path in sorted(central.rglob("*")):
            if path.is_file():
                files[path.relative_to(central).as_posix()] = path.read_bytes()
        return files

    def delete(
        self,
        skill_id: str,
        detach: Callable[[ManagedSkill, SkillTarget], None],
    ) -> ManagedSkill:
        """Delete a skill, removing every tool target before its content.

        ``detach`` is invoked for each target (normally the sync engine's
        unsync) so no target is left pointing at deleted content.
        """
        with self._lock:
            skill = self.require(skill_id)
            for target in skill.targets:
                detach(skill, target)
            remove_path(Path(skill.central_path))
            self.db.delete_skill(skill_id)

        logger.info(f"Deleted skill '{skill.name}' ({skill_id})")
        return skill

    def move(self, new_root: Path) -> dict[str, str]:
        """Relocate every skill to ``new_root``.

        Either every skill's central_path is updated or none is: content
        is copied first, the database is rewritten in one transaction,
        and only then are the old copies removed.

        Returns:
            Mapping of skill id to new central path.

        Raises:
            StoreRelocationFailure: If anything fails before the commit.
        """
        new_root = Path(lexical_path(new_root))
        old_root = self._root
        if new_root == old_root:
            return {}
        if is_under(new_root, old_root):
            raise StoreRelocationFailure(
                str(old_root), str(new_root), "target is inside the current store"
            )

        with self._lock:
            skills = self.db.list_skills()
            created: list[Path] = []
            mapping: dict[str, str] = {}
            try:
                new_root.mkdir(parents=True, exist_ok=True)
                for skill in skills:
                    source = Path(skill.central_path)
                    dest = new_root / source.name
                    if os.path.lexists(dest):
                        raise FileExistsError(f"{dest} already exists")
                    staged = staging_path_for(dest)
                    created.append(staged)
                    copy_tree(source, staged)
                    os.replace(staged, dest)
                    created[-1] = dest
                    mapping[skill.id] = str(dest)
                self.db.relocate(mapping)
            except (OSError, sqlite3.Error) as e:
                for path in created:
                    try:
                        remove_path(path)
                    except OSError as cleanup_error:
                        logger.warning(
                            f"Could not remove partial copy {path}: {cleanup_error}"
                        )
                raise StoreRelocationFailure(str(old_root), str(new_root), str(e)) from e

            self._root = new_root
            for skill in skills:
                try:
                    remove_path(Path(skill.central_path))
                except OSError as e:
                    logger.warning(
                        f"Could not remove old copy {skill.central_path}: {e}"
                    )

        logger.info(f"Moved {len(mapping)} skill(s) from {old_root} to {new_root}")
        return mapping
