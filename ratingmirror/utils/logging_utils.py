# ==============================================================================
# logging_utils.py  –  Consistent dual-destination logging
#
# Features:
#   ✔ Console + size-rotated file output
#   ✔ LOG_DIR / LOG_LEVEL overridable from the environment
#   ✔ Idempotent: clears handlers before re-adding
# ==============================================================================

from __future__ import annotations

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

# ------------------------------------------------------------------------------
# Constants
# ------------------------------------------------------------------------------

_FMT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"
_MAX_BYTES = 5 * 1024 * 1024
_BACKUP_COUNT = 3


# ------------------------------------------------------------------------------
# Internal helpers
# ------------------------------------------------------------------------------


def _default_level() -> int:
    """Resolve LOG_LEVEL (name or number) to a logging level, INFO on junk."""
    raw = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    if raw.isdigit():
        return int(raw)
    level = logging.getLevelName(raw)
    return level if isinstance(level, int) else logging.INFO


def _detect_logs_dir() -> Path:
    """
    Detect where logs should be stored.

    • LOG_DIR set  → that directory
    • otherwise    → <repo>/logs
    """
    env_dir = os.getenv("LOG_DIR")
    if env_dir:
        return Path(env_dir)
    return Path(__file__).resolve().parents[2] / "logs"


def _init_file_handler(
    logs_dir: Path, logger_name: str, fmt: logging.Formatter
) -> Optional[logging.Handler]:
    """
    Create a RotatingFileHandler if the directory is writable.
    Falls back to console logging if not.
    """
    try:
        logs_dir.mkdir(parents=True, exist_ok=True)
        file_path = logs_dir / f"{logger_name}.log"

        fh = RotatingFileHandler(
            file_path,
            maxBytes=_MAX_BYTES,
            backupCount=_BACKUP_COUNT,
            encoding="utf-8",
        )
        fh.setFormatter(fmt)
        return fh
    except OSError:
        logging.getLogger().warning("Cannot write logs to %s", logs_dir)
        return None


# ------------------------------------------------------------------------------
# Public factory
# ------------------------------------------------------------------------------


def setup_logger(
    name: str,
    level: Optional[int] = None,
    logs_dir: Union[str, Path, None] = None,
) -> logging.Logger:
    """
    Return a configured `logging.Logger`.

    Parameters
    ----------
    name : str
        Logger name (also used as the log file stem).
    level : int | None
        Logging level (LOG_LEVEL env var, INFO by default).
    logs_dir : str | Path | None
        Override log directory (default: auto-detect).
    """
    logger = logging.getLogger(name)
    logger.setLevel(level if level is not None else _default_level())
    logger.propagate = False

    # Clear existing handlers for idempotency
    if logger.hasHandlers():
        for handler in list(logger.handlers):
            handler.close()
        logger.handlers.clear()

    formatter = logging.Formatter(_FMT, datefmt=_DATEFMT)

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)
    logger.addHandler(console)

    target_dir = Path(logs_dir) if logs_dir else _detect_logs_dir()
    file_handler = _init_file_handler(target_dir, name, formatter)
    if file_handler:
        logger.addHandler(file_handler)

    return logger
