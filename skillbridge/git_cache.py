"""Fetch-once cache of git skill sources.

Each fetched source lives in its own versioned directory under the cache
root; ``index.json`` maps the normalized ``url#branch`` key to the
current directory. A re-fetch builds a new directory and swaps the index
entry only when it is complete, then removes the previous copy.

Source references accepted by :func:`parse_git_source`::

    https://github.com/org/repo
    https://github.com/org/repo/tree/main/skills/foo
    https://github.com/org/repo/blob/main/skills/foo/SKILL.md
    https://example.com/repo.git#main
    https://example.com/repo.git#main:skills/foo
    git@example.com:org/repo.git#:skills/foo
"""

from __future__ import annotations

import json
import logging
import os
import re
import subprocess
import threading
import time
from collections.abc import Callable
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from urllib.parse import urlparse
from uuid import uuid4

from skillbridge.config import (
    DEFAULT_GIT_CACHE_TTL_SECS,
    GIT_COMMAND_TIMEOUT,
    INFLIGHT_WAIT_SLICE_SECS,
    SECONDS_PER_DAY,
    SKILL_FILENAME,
    STAGING_PREFIX,
)
from skillbridge.errors import FetchFailure, InvalidSkillSource, OperationCancelled
from skillbridge.fingerprint import is_under
from skillbridge.models import CacheEntry, GitSkillCandidate
from skillbridge.skill_md import find_skill_dirs, parse_skill_frontmatter
from skillbridge.utils import CancelToken, check_cancel, remove_path

logger = logging.getLogger(__name__)

INDEX_FILENAME = "index.json"

_SLUG_RE = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass(frozen=True)
class GitSource:
    """A git repository, optional branch, and skill subpath within it."""

    url: str
    branch: str | None = None
    subpath: str = ""

    @property
    def cache_key(self) -> str:
        """Normalized ``url#branch`` key; the subpath does not affect it."""
        url = self.url.strip().rstrip("/")
        if url.endswith(".git"):
            url = url[: -len(".git")]
        parsed = urlparse(url)
        if parsed.scheme and parsed.netloc:
            url = f"{parsed.scheme.lower()}://{parsed.netloc.lower()}{parsed.path}"
        return f"{url}#{self.branch or ''}"

    def to_ref(self) -> str:
        ref = self.url
        if self.branch or self.subpath:
            ref += f"#{self.branch or ''}"
        if self.subpath:
            ref += f":{self.subpath}"
        return ref

    def with_subpath(self, subpath: str) -> GitSource:
        return GitSource(self.url, self.branch, _clean_subpath(subpath))


def _clean_subpath(subpath: str) -> str:
    cleaned = subpath.strip().strip("/")
    if not cleaned:
        return ""
    parts = PurePosixPath(cleaned).parts
    if any(part == ".." for part in parts):
        raise InvalidSkillSource(f"Subpath escapes the repository: {subpath}")
    return "/".join(parts)


def _parse_github_url(url: str) -> GitSource | None:
    parsed = urlparse(url)
    if parsed.netloc not in {"github.com", "www.github.com"}:
        return None
    parts = parsed.path.strip("/").split("/")
    if len(parts) < 4 or parts[2] not in {"tree", "blob"}:
        return None
    org, repo, kind, branch = parts[:4]
    path = "/".join(parts[4:])
    if kind == "blob" and path:
        # a blob link points at a file inside the skill directory
        path = str(PurePosixPath(path).parent)
        if path == ".":
            path = ""
    return GitSource(f"https://github.com/{org}/{repo}", branch, _clean_subpath(path))


def parse_git_source(ref: str) -> GitSource:
    """Parse a user-supplied git reference.

    Raises:
        InvalidSkillSource: Empty or malformed reference.
    """
    ref = (ref or "").strip()
    if not ref:
        raise InvalidSkillSource("Empty git source reference")

    github = _parse_github_url(ref)
    if github is not None:
        return github

    url, sep, fragment = ref.partition("#")
    url = url.strip()
    if not url:
        raise InvalidSkillSource(f"Missing repository URL in {ref!r}")
    if not sep:
        return GitSource(url)
    branch, _, subpath = fragment.partition(":")
    return GitSource(url, branch.strip() or None, _clean_subpath(subpath))


def resolve_subpath(working_copy: Path, subpath: str) -> Path:
    """Locate a skill inside a working copy, refusing paths that escape it."""
    target = (working_copy / subpath).resolve() if subpath else working_copy.resolve()
    if not is_under(target, working_copy.resolve()):
        raise InvalidSkillSource(f"Subpath escapes the repository: {subpath}")
    if not target.exists():
        raise InvalidSkillSource(f"Subpath not found in repository: {subpath or '/'}")
    return target


class GitFetcher:
    """Shallow-clones repositories with the ``git`` executable."""

    def __init__(self, git: str = "git", timeout: int = GIT_COMMAND_TIMEOUT) -> None:
        self.git = git
        self.timeout = timeout

    def _run(self, args: list[str], ref: str, cwd: Path | None = None) -> str:
        env = dict(os.environ, GIT_TERMINAL_PROMPT="0")
        try:
            result = subprocess.run(
                [self.git, *args],
                cwd=cwd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                env=env,
                check=False,
            )
        except FileNotFoundError:
            raise FetchFailure(ref, f"git executable not found: {self.git}") from None
        except subprocess.TimeoutExpired:
            raise FetchFailure(
                ref, f"git {args[0]} timed out after {self.timeout}s"
            ) from None
        if result.returncode != 0:
            detail = result.stderr.strip() or result.stdout.strip() or "unknown error"
            raise FetchFailure(ref, f"git {args[0]} failed: {detail}")
        return result.stdout.strip()

    def fetch(self, source: GitSource, dest: Path) -> str | None:
        """Clone ``source`` into ``dest`` and return the checked-out revision."""
        ref = source.to_ref()
        args = ["clone", "--depth", "1"]
        if source.branch:
            args.extend(["--branch", source.branch])
        args.extend([source.url, str(dest)])
        self._run(args, ref)
        try:
            return self._run(["rev-parse", "HEAD"], ref, cwd=dest) or None
        except FetchFailure as e:
            logger.debug(f"Could not read revision of {ref}: {e}")
            return None


class GitSourceCache:
    """TTL-bounded, single-flight cache of fetched git sources."""

    def __init__(
        self,
        root: Path,
        ttl_secs: int = DEFAULT_GIT_CACHE_TTL_SECS,
        fetcher: GitFetcher | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._root = Path(root)
        self.ttl_secs = ttl_secs
        self.fetcher = fetcher or GitFetcher()
        self.clock = clock
        self._lock = threading.RLock()
        self._inflight: dict[str, Future] = {}
        self._inflight_staging: set[str] = set()

    @property
    def path(self) -> Path:
        return self._root

    # ── index ────────────────────────────────────────────────

    @property
    def _index_path(self) -> Path:
        return self._root / INDEX_FILENAME

    def _load_index(self) -> dict[str, CacheEntry]:
        if not self._index_path.exists():
            return {}
        try:
            with open(self._index_path, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Failed to load git cache index: {e}")
            return {}

        entries: dict[str, CacheEntry] = {}
        for raw in data.get("entries", []) if isinstance(data, dict) else []:
            try:
                entry = CacheEntry(**raw)
            except TypeError:
                logger.warning(f"Skipping malformed cache entry: {raw!r}")
                continue
            entries[entry.key] = entry
        return entries

    def _save_index(self, entries: dict[str, CacheEntry]) -> None:
        self._root.mkdir(parents=True, exist_ok=True)
        tmp = self._index_path.with_name(f"{INDEX_FILENAME}.{uuid4().hex[:8]}.tmp")
        payload = {"entries": [e.to_dict() for e in entries.values()]}
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2)
        os.replace(tmp, self._index_path)

    def entries(self) -> list[CacheEntry]:
        with self._lock:
            return sorted(self._load_index().values(), key=lambda e: e.key)

    def entry_for(self, ref: str | GitSource) -> CacheEntry | None:
        source = ref if isinstance(ref, GitSource) else parse_git_source(ref)
        with self._lock:
            return self._load_index().get(source.cache_key)

    def revision_of(self, ref: str | GitSource) -> str | None:
        entry = self.entry_for(ref)
        return entry.revision if entry else None

    # ── fetch ────────────────────────────────────────────────

    def fetch(
        self,
        ref: str | GitSource,
        force: bool = False,
        cancel: CancelToken | None = None,
    ) -> Path:
        """Working copy for ``ref``, fetching it if absent or stale.

        Concurrent calls for the same key share one fetch; late callers
        wait for its result instead of starting another. If the caller
        running the shared fetch cancels, one of the waiters takes over.
        A waiter's own ``cancel`` token is honoured while it waits.

        Raises:
            FetchFailure: The fetch failed after one retry.
            OperationCancelled: ``cancel`` fired.
        """
        source = ref if isinstance(ref, GitSource) else parse_git_source(ref)
        key = source.cache_key

        while True:
            with self._lock:
                if not force:
                    cached = self._fresh_path(key)
                    if cached is not None:
                        logger.debug(f"Git cache hit for {key}")
                        return cached
                future = self._inflight.get(key)
                if future is None:
                    future = Future()
                    self._inflight[key] = future
                    break

            logger.debug(f"Waiting for in-flight fetch of {key}")
            path = self._wait_for(future, cancel)
            if path is not None:
                return path
            logger.debug(f"In-flight fetch of {key} was cancelled, taking over")

        try:
            path = self._fetch_new(source, key, cancel)
        except BaseException as e:
            self._settle(key, future, error=e)
            raise
        self._settle(key, future, result=str(path))
        return path

    @staticmethod
    def _wait_for(future: Future, cancel: CancelToken | None) -> Path | None:
        """Result of another caller's fetch, or None if that caller cancelled."""
        while True:
            check_cancel(cancel)
            try:
                return Path(future.result(timeout=INFLIGHT_WAIT_SLICE_SECS))
            except FutureTimeout:
                continue
            except OperationCancelled:
                return None

    def _settle(
        self,
        key: str,
        future: Future,
        result: str | None = None,
        error: BaseException | None = None,
    ) -> None:
        # unregister first so a woken waiter never finds the settled future
        with self._lock:
            self._inflight.pop(key, None)
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(result)

    def _fresh_path(self, key: str) -> Path | None:
        entries = self._load_index()
        entry = entries.get(key)
        if entry is None or not Path(entry.path).is_dir():
            return None
        now = self.clock()
        if now - entry.fetched_at >= self.ttl_secs:
            return None
        entry.last_access_at = now
        self._save_index(entries)
        return Path(entry.path)

    def _slug(self, source: GitSource) -> str:
        tail = source.url.rstrip("/").rsplit("/", 1)[-1].rsplit(":", 1)[-1]
        if tail.endswith(".git"):
            tail = tail[: -len(".git")]
        return _SLUG_RE.sub("-", tail).strip("-.") or "repo"

    def _fetch_new(
        self, source: GitSource, key: str, cancel: CancelToken | None
    ) -> Path:
        self._root.mkdir(parents=True, exist_ok=True)
        dest = self._root / f"{self._slug(source)}-{uuid4().hex[:12]}"
        staging = self._root / f"{STAGING_PREFIX}{dest.name}"
        with self._lock:
            self._inflight_staging.add(staging.name)

        try:
            try:
                revision = self._fetch_with_retry(source, staging, cancel)
                check_cancel(cancel)
                os.replace(staging, dest)
            except BaseException:
                remove_path(staging)
                raise

            now = self.clock()
            with self._lock:
                entries = self._load_index()
                previous = entries.get(key)
                entries[key] = CacheEntry(
                    key=key,
                    ref=source.with_subpath("").to_ref(),
                    path=str(dest),
                    fetched_at=now,
                    last_access_at=now,
                    revision=revision,
                )
                self._save_index(entries)
        finally:
            with self._lock:
                self._inflight_staging.discard(staging.name)

        if previous is not None and previous.path != str(dest):
            self._remove_copy(Path(previous.path))
        logger.info(f"Fetched {key} into {dest}")
        return dest

    def _fetch_with_retry(
        self, source: GitSource, staging: Path, cancel: CancelToken | None
    ) -> str | None:
        check_cancel(cancel)
        try:
            return self.fetcher.fetch(source, staging)
        except FetchFailure as e:
            logger.warning(f"Fetch of {source.url} failed, retrying once: {e}")
            remove_path(staging)
        check_cancel(cancel)
        return self.fetcher.fetch(source, staging)

    def _remove_copy(self, path: Path) -> None:
        try:
            remove_path(path)
        except OSError as e:
            logger.warning(f"Could not remove cached copy {path}: {e}")

    # ── discovery ────────────────────────────────────────────

    def list_candidates(
        self, working_copy: Path, default_name: str | None = None
    ) -> list[GitSkillCandidate]:
        """Skill-shaped directories (holding a SKILL.md) inside a working copy.

        Args:
            working_copy: Path returned by :meth:`fetch`.
            default_name: Name for a skill at the repository root without
                a frontmatter name.
        """
        root = Path(working_copy)
        candidates = []
        for skill_dir in find_skill_dirs(root):
            meta = parse_skill_frontmatter(skill_dir / SKILL_FILENAME) or {}
            subpath = skill_dir.relative_to(root).as_posix()
            if subpath == ".":
                subpath = ""
            fallback = skill_dir.name if subpath else (default_name or root.name)
            candidates.append(
                GitSkillCandidate(
                    name=meta.get("name") or fallback,
                    description=meta.get("description") or None,
                    subpath=subpath,
                )
            )
        return sorted(candidates, key=lambda c: c.subpath)

    # ── eviction ─────────────────────────────────────────────

    def cleanup(self, cleanup_days: int) -> int:
        """Remove entries fetched more than ``cleanup_days`` ago.

        An entry aged exactly ``cleanup_days`` is kept. Entries with a
        fetch in flight are skipped. Abandoned staging directories and
        copies no longer in the index are removed too.

        Returns:
            Number of index entries removed.
        """
        max_age = cleanup_days * SECONDS_PER_DAY
        with self._lock:
            entries = self._load_index()
            now = self.clock()
            expired = [
                key
                for key, entry in entries.items()
                if key not in self._inflight and now - entry.fetched_at > max_age
            ]
            removed = [entries.pop(key) for key in expired]
            if removed:
                self._save_index(entries)

        for entry in removed:
            self._remove_copy(Path(entry.path))
        self._remove_orphans()
        if removed:
            logger.info(f"Git cache cleanup removed {len(removed)} entr(ies)")
        return len(removed)

    def clear(self) -> int:
        """Remove every entry except those with a fetch in flight."""
        with self._lock:
            entries = self._load_index()
            removed = [
                entries.pop(key) for key in list(entries) if key not in self._inflight
            ]
            self._save_index(entries)

        for entry in removed:
            self._remove_copy(Path(entry.path))
        self._remove_orphans()
        logger.info(f"Git cache cleared ({len(removed)} entr(ies))")
        return len(removed)

    def _remove_orphans(self) -> None:
        if not self._root.is_dir():
            return
        with self._lock:
            keep = {Path(e.path).name for e in self._load_index().values()}
            keep.update(self._inflight_staging)
            # final directory names of fetches that are still running
            keep.update(name[len(STAGING_PREFIX) :] for name in self._inflight_staging)
            for child in self._root.iterdir():
                if child.name.startswith(INDEX_FILENAME) or child.name in keep:
                    continue
                if not child.is_dir() or child.is_symlink():
                    continue
                logger.debug(f"Removing orphaned cache directory {child}")
                self._remove_copy(child)
