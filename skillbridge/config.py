"""
SkillBridge Configuration Constants

This module centralizes the magic numbers and configuration values
used throughout the codebase.
"""

# ============================================================
# Git Cache Defaults
# ============================================================

# Entries older than this many days are removed by the cleanup sweep
DEFAULT_GIT_CACHE_CLEANUP_DAYS: int = 30

# A cached working copy younger than this is reused without re-fetching
DEFAULT_GIT_CACHE_TTL_SECS: int = 60

# Timeout for a single git command (clone / rev-parse)
GIT_COMMAND_TIMEOUT: int = 120

SECONDS_PER_DAY: int = 86400

# How often a caller waiting on another caller's fetch checks its own cancel token
INFLIGHT_WAIT_SLICE_SECS: float = 0.1

# ============================================================
# Sync Engine
# ============================================================

# Worker threads used by bulk sync operations
BULK_SYNC_MAX_WORKERS: int = 4

# Prefix of hidden staging paths created next to a target before the swap
STAGING_PREFIX: str = ".skillbridge-staging-"

# Prefix of hidden backup paths used while swapping a directory
BACKUP_PREFIX: str = ".skillbridge-backup-"

# ============================================================
# Storage
# ============================================================

# SQLite busy timeout (seconds)
DB_TIMEOUT: float = 10.0

# Skill definition file expected inside every skill bundle
SKILL_FILENAME: str = "SKILL.md"

# Directory names never copied into or hashed from a skill bundle
IGNORED_DIR_NAMES: frozenset[str] = frozenset({".git"})

# Default lifecycle tag for a newly installed skill
DEFAULT_SKILL_STATUS: str = "active"
