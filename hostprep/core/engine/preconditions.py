"""
Preconditions — checked once before any Step runs.

Each check raises PreconditionFailure; the Orchestrator aborts the
run without touching the host.
"""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from hostprep.core.engine.errors import PreconditionFailure

logger = logging.getLogger(__name__)

_GIB = 1024 ** 3


@dataclass(frozen=True)
class Precondition:
    """A named host check."""

    name: str
    check: Callable[[], None]


def require_root(geteuid: Callable[[], int] = os.geteuid) -> Precondition:
    def _check() -> None:
        if geteuid() != 0:
            raise PreconditionFailure(
                "Must run as root (use sudo): package installs and /etc changes need it"
            )

    return Precondition("root", _check)


def require_free_space(
    path: Path,
    min_gb: int,
    disk_usage: Callable[[str], Any] = shutil.disk_usage,
) -> Precondition:
    """At least ``min_gb`` GiB free on the filesystem holding ``path``."""

    def _check() -> None:
        logger.info("Checking available disk space...")
        try:
            free_gb = disk_usage(str(path)).free // _GIB
        except OSError as e:
            raise PreconditionFailure(f"Cannot read free space on {path}: {e}") from e

        if free_gb < min_gb:
            raise PreconditionFailure(
                f"Not enough disk space. At least {min_gb}GB required, "
                f"but only {free_gb}GB available."
            )
        logger.info("Sufficient disk space available: %dGB", free_gb)

    return Precondition("disk-space", _check)
