"""Explicitly constructed application context.

Owns every long-lived component (preferences, database, central store,
tool registry, git cache, engines) so callers pass one object around
instead of reaching for module-level singletons.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from skillbridge.git_cache import GitFetcher, GitSourceCache
from skillbridge.onboarding import OnboardingReconciler
from skillbridge.paths import (
    get_custom_tools_path,
    get_data_dir,
    get_db_path,
    get_default_central_repo_dir,
    get_git_cache_dir,
    get_settings_path,
)
from skillbridge.preferences import PreferenceStore
from skillbridge.store import CentralRepository, SkillDatabase
from skillbridge.sync_engine import SyncEngine
from skillbridge.tools import ToolDefinition, ToolRegistry
from skillbridge.utils import MonotonicClock


@dataclass
class SkillContext:
    data_dir: Path
    preferences: PreferenceStore
    db: SkillDatabase
    repo: CentralRepository
    registry: ToolRegistry
    git_cache: GitSourceCache
    engine: SyncEngine
    onboarding: OnboardingReconciler

    @classmethod
    def create(
        cls,
        home: Path | None = None,
        data_dir: Path | None = None,
        tools: list[ToolDefinition] | None = None,
        fetcher: GitFetcher | None = None,
        cache_clock: Callable[[], float] | None = None,
    ) -> SkillContext:
        """Wire up a context.

        Args:
            home: Home directory tool paths are resolved against.
            data_dir: Data directory; when given, every storage path lives
                under it and environment overrides are ignored.
            tools: Replace the tool registry contents (mainly for tests).
            fetcher: Git fetcher used by the cache.
            cache_clock: Clock (epoch seconds) used by the cache.
        """
        if data_dir is not None:
            data_dir = Path(data_dir)
            db_path = data_dir / "skills.db"
            central_default = data_dir / "skills"
            cache_dir = data_dir / "git-cache"
            settings_path = data_dir / "settings.json"
            tools_path = data_dir / "tools.yaml"
        else:
            data_dir = Path(get_data_dir())
            db_path = Path(get_db_path())
            central_default = Path(get_default_central_repo_dir())
            cache_dir = Path(get_git_cache_dir())
            settings_path = Path(get_settings_path())
            tools_path = Path(get_custom_tools_path())

        preferences = PreferenceStore(settings_path, central_default)
        db = SkillDatabase(str(db_path))
        repo = CentralRepository(preferences.get_central_repo_path(), db)
        registry = ToolRegistry(home=home, custom_tools_path=tools_path, tools=tools)
        cache_kwargs = {"clock": cache_clock} if cache_clock is not None else {}
        git_cache = GitSourceCache(
            cache_dir,
            ttl_secs=preferences.get_git_cache_ttl_secs(),
            fetcher=fetcher,
            **cache_kwargs,
        )
        clock = MonotonicClock()
        engine = SyncEngine(repo, registry, git_cache=git_cache, clock=clock)
        onboarding = OnboardingReconciler(repo, registry, clock=clock)

        return cls(
            data_dir=data_dir,
            preferences=preferences,
            db=db,
            repo=repo,
            registry=registry,
            git_cache=git_cache,
            engine=engine,
            onboarding=onboarding,
        )
