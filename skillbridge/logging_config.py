"""Logging setup for the skillbridge CLI and HTTP server.

Console output goes to stderr. With file logging on, every command
writes to its own daily file under ``<data dir>/logs``, for example
``sync-new-20261017.log`` or ``serve-20261017.log``, so a long-running
server never interleaves with one-shot commands. ``--data-dir`` moves
the logs together with the database and the central store.

Environment variables:
    SKILLBRIDGE_LOG_LEVEL: DEBUG, INFO, WARNING or ERROR (default INFO)
    SKILLBRIDGE_LOG_FILE: true/1 writes the per-command log file
"""

import logging
import os
import re
import sys
from datetime import date
from pathlib import Path

from skillbridge.paths import get_data_dir

PACKAGE_LOGGER = "skillbridge"
LOG_DIRNAME = "logs"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_FORMAT_DEBUG = "%(asctime)s [%(levelname)s] %(name)s:%(lineno)d: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}

_COMMAND_RE = re.compile(r"[^A-Za-z0-9_-]+")


def level_from_env() -> int:
    return _LEVELS.get(
        os.environ.get("SKILLBRIDGE_LOG_LEVEL", "INFO").upper(), logging.INFO
    )


def file_logging_from_env() -> bool:
    return os.environ.get("SKILLBRIDGE_LOG_FILE", "false").lower() in ("true", "1")


def log_file_for(command: str | None, data_dir: str | Path | None = None) -> Path:
    """Daily log file of one command inside the data directory's ``logs``."""
    log_dir = Path(data_dir or get_data_dir()) / LOG_DIRNAME
    slug = _COMMAND_RE.sub("-", command or "").strip("-") or "skillbridge"
    return log_dir / f"{slug}-{date.today():%Y%m%d}.log"


def setup_logging(
    command: str | None = None,
    data_dir: str | Path | None = None,
    level: int | None = None,
    log_file: bool | None = None,
) -> Path | None:
    """Configure the ``skillbridge`` logger for one invocation.

    Args:
        command: CLI subcommand; names the log file.
        data_dir: Data directory the ``logs`` folder lives in.
        level: Log level (SKILLBRIDGE_LOG_LEVEL if not given).
        log_file: Write a log file (SKILLBRIDGE_LOG_FILE if not given).

    Returns:
        The log file path, or None when only the console is used.
    """
    if level is None:
        level = level_from_env()
    if log_file is None:
        log_file = file_logging_from_env()

    logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()
    logger.setLevel(level)
    logger.propagate = False

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    path = None
    if log_file:
        path = log_file_for(command, data_dir)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))

    formatter = logging.Formatter(
        LOG_FORMAT_DEBUG if level == logging.DEBUG else LOG_FORMAT, DATE_FORMAT
    )
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    return path


def set_debug_mode(enabled: bool = True) -> None:
    """Switch the package logger and its handlers to DEBUG (or back to INFO)."""
    level = logging.DEBUG if enabled else logging.INFO
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level)
    for handler in logger.handlers:
        handler.setLevel(level)
        if enabled:
            handler.setFormatter(logging.Formatter(LOG_FORMAT_DEBUG, DATE_FORMAT))
