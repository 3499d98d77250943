"""
Logging configuration — set up once by the CLI before any step runs.

Every module logs through ``logging.getLogger(__name__)``; this module
only decides where the records go and how they look.

Console level, in precedence order:
    --debug / --verbose / --quiet  >  HOSTPREP_LOG_LEVEL  >  INFO

A log file is added when HOSTPREP_LOG_FILE is set; its level comes
from HOSTPREP_LOG_FILE_LEVEL (default: DEBUG, so the file keeps the
full command trail even when the console is quiet).
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Mapping

LEVEL_ENV = "HOSTPREP_LOG_LEVEL"
FILE_ENV = "HOSTPREP_LOG_FILE"
FILE_LEVEL_ENV = "HOSTPREP_LOG_FILE_LEVEL"

# ── Format strings ──────────────────────────────────────────────

# Default console: the operator reads a plain progress narrative
_FMT_PLAIN = "%(message)s"

# --verbose: timestamps and the emitting module
_FMT_VERBOSE = "%(asctime)s [%(name)s] %(message)s"

# --debug: level and source line as well
_FMT_DEBUG = "%(asctime)s %(levelname)-7s %(name)s:%(lineno)d %(message)s"

_FMT_FILE = "%(asctime)s %(levelname)-7s %(name)s:%(lineno)d %(message)s"
_DATEFMT_CONSOLE = "%H:%M:%S"
_DATEFMT_FILE = "%Y-%m-%d %H:%M:%S"

# urllib is chatty at DEBUG when downloading keys and packages
_NOISY_LOGGERS = ("urllib3", "charset_normalizer")


def level_from_flags(
    debug: bool = False,
    verbose: bool = False,
    quiet: bool = False,
    environ: Mapping[str, str] | None = None,
) -> str:
    """Resolve the console level name from CLI flags and the environment."""
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    if quiet:
        return "ERROR"
    environ = os.environ if environ is None else environ
    return environ.get(LEVEL_ENV, "INFO")


def setup_logging(
    level: str = "INFO",
    *,
    verbose: bool = False,
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> None:
    """Configure the root logger for the whole process.

    Args:
        level: Console level name.
        verbose: Timestamped console lines instead of plain messages.
        log_file: Optional path of a log file to append to.
        log_file_level: Level for the file (default DEBUG).
    """
    console_level = _parse_level(level)

    if console_level <= logging.DEBUG:
        fmt = _FMT_DEBUG
    elif verbose:
        fmt = _FMT_VERBOSE
    else:
        fmt = _FMT_PLAIN

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(logging.Formatter(fmt, datefmt=_DATEFMT_CONSOLE))

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.addHandler(console)

    root_level = console_level
    if log_file:
        file_level = _parse_level(log_file_level, default=logging.DEBUG)
        root_level = min(root_level, file_level)

        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(file_level)
        fh.setFormatter(logging.Formatter(_FMT_FILE, datefmt=_DATEFMT_FILE))
        root.addHandler(fh)

    root.setLevel(root_level)

    if console_level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    # A closed stderr must never abort a half-finished provisioning run
    logging.raiseExceptions = False


def setup_from_env(
    level: str,
    *,
    verbose: bool = False,
    environ: Mapping[str, str] | None = None,
) -> None:
    """``setup_logging`` with the file settings taken from the environment."""
    environ = os.environ if environ is None else environ
    setup_logging(
        level,
        verbose=verbose,
        log_file=environ.get(FILE_ENV) or None,
        log_file_level=environ.get(FILE_LEVEL_ENV) or None,
    )


def _parse_level(level: str | None, default: int = logging.INFO) -> int:
    if not level:
        return default
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        return default
    return numeric
