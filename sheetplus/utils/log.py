"""Logging helpers for the sheetplus package."""

# Module responsibilities:
# - Centralize logging configuration with console + optional rotating file handlers.
# - Provide get_logger() that ensures configuration occurs once per process.

from __future__ import annotations

import logging
import logging.handlers
import os
from pathlib import Path
from typing import Optional

LOG_DIR_ENV = "SHEETPLUS_LOG_DIR"
LOG_LEVEL_ENV = "SHEETPLUS_LOG_LEVEL"
_LOG_CONFIGURED = False


def _resolve_log_dir(log_dir: Optional[Path] = None) -> Optional[Path]:
    """Resolve the log directory from the argument or environment, ensuring existence."""
    if log_dir is None:
        env = os.getenv(LOG_DIR_ENV)
        if not env:
            return None
        log_dir = Path(env).expanduser()
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir


def _resolve_level() -> int:
    name = os.getenv(LOG_LEVEL_ENV, "INFO").upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def _configure_logging(log_dir: Optional[Path] = None) -> None:
    """Configure the package logger once with console + optional file handlers."""
    global _LOG_CONFIGURED
    if _LOG_CONFIGURED:
        return

    level = _resolve_level()
    formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    root_logger = logging.getLogger("sheetplus")
    root_logger.setLevel(level)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    console_handler.setLevel(level)
    root_logger.addHandler(console_handler)

    directory = _resolve_log_dir(log_dir)
    if directory is not None:
        file_handler = logging.handlers.RotatingFileHandler(
            directory / "sheetplus.log", maxBytes=2_000_000, backupCount=3, encoding="utf-8"
        )
        file_handler.setFormatter(formatter)
        file_handler.setLevel(level)
        root_logger.addHandler(file_handler)

    root_logger.propagate = False
    _LOG_CONFIGURED = True


def get_logger(name: str, log_dir: Optional[Path] = None) -> logging.Logger:
    """Return a package-scoped logger.

    Args:
        name: Logger name suffix appended to the package root logger namespace.
        log_dir: Optional override for the logging directory; falls back to
            ``SHEETPLUS_LOG_DIR`` and to console-only logging when neither is set.

    Returns:
        Configured logger scoped under ``sheetplus``.
    """

    _configure_logging(log_dir)
    return logging.getLogger(f"sheetplus.{name}")
