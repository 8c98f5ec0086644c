# === FILE: speed_scout/logger.py ===
"""Logging setup for **SpeedScout**.

All modules log through children of one project logger::

      from speed_scout.logger import get_logger
      log = get_logger("scheduler")      # -> "SpeedScout.scheduler"
      log.info("Batch started: %d URLs", total)

The console handler writes to stderr: ``speed-scout analyze`` prints its JSON
result on stdout. :func:`configure` is called again by the CLI once the
``--log-*`` options are known.
"""
from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Final, Iterable, List, Union

# --------------------------------------------------------------------------- #
# Constants                                                                   #
# --------------------------------------------------------------------------- #

DEFAULT_FORMAT: Final[str] = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOGGER_NAME: Final[str] = "SpeedScout"

# chatty third-party loggers; kept at WARNING unless DEBUG is requested
LIBRARY_LOGGERS: Final[tuple] = ("aiohttp.access", "aiohttp.client", "aiohttp.server", "redis")

LOG_FILE_MAX_BYTES: Final[int] = 5 * 1024 * 1024
LOG_FILE_BACKUPS: Final[int] = 3

_LevelT = Union[int, str]


# --------------------------------------------------------------------------- #
# Handlers                                                                    #
# --------------------------------------------------------------------------- #


def _build_handlers(fmt: str, log_file: Path | str | None) -> List[logging.Handler]:
    formatter = logging.Formatter(fmt)
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file is not None:
        Path(log_file).expanduser().parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                filename=str(log_file),
                maxBytes=LOG_FILE_MAX_BYTES,
                backupCount=LOG_FILE_BACKUPS,
                encoding="utf-8",
            )
        )
    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def _tune_libraries(level: int, names: Iterable[str] = LIBRARY_LOGGERS) -> None:
    lib_level = logging.DEBUG if level <= logging.DEBUG else logging.WARNING
    for name in names:
        logging.getLogger(name).setLevel(lib_level)


# --------------------------------------------------------------------------- #
# Public API                                                                  #
# --------------------------------------------------------------------------- #


def configure(
    *,
    level: _LevelT = "INFO",
    log_file: str | Path | None = None,
    log_format: str = DEFAULT_FORMAT,
    replace_handlers: bool = True,
) -> logging.Logger:
    """(Re)configure the ``SpeedScout`` logger tree.

    Parameters
    ----------
    level
        Numeric or textual level (``"DEBUG"``, ``logging.INFO`` ...).
    log_file
        Optional path of a rotating log file (5 MiB, 3 backups).
    log_format
        :class:`logging.Formatter` format string, shared by all handlers.
    replace_handlers
        Drop previously installed handlers first; the CLI reconfigures on
        every invocation and must not stack them.
    """
    root = logging.getLogger(LOGGER_NAME)
    root.setLevel(level)
    if replace_handlers:
        for old in list(root.handlers):
            root.removeHandler(old)
            old.close()
    for handler in _build_handlers(log_format, log_file):
        root.addHandler(handler)
    root.propagate = False
    _tune_libraries(root.level)
    return root


def get_logger(suffix: str | None = None) -> logging.Logger:
    """``SpeedScout`` itself, or its child ``SpeedScout.<suffix>``."""
    if not suffix:
        return logging.getLogger(LOGGER_NAME)
    return logging.getLogger(LOGGER_NAME).getChild(suffix)


# quiet by default for library use; the CLI raises or lowers this
logger: logging.Logger = configure(level="WARNING")

__all__ = ["logger", "configure", "get_logger", "DEFAULT_FORMAT", "LOGGER_NAME", "LIBRARY_LOGGERS"]
