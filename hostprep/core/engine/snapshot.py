"""
Snapshotter — timestamped backups taken before any source is rewritten.

A backup is ``<file>.backup.<YYYYmmddHHMMSS>`` next to the original
(``-2``, ``-3`` … appended on a same-second collision). It is flushed
to stable storage and read back before ``backup`` returns, so the
mutation that follows is always recoverable. Backups are never
deleted or reused.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Callable

from hostprep.adapters.base import Filesystem
from hostprep.core.engine.errors import ConfigMutationFailure
from hostprep.core.models.source import Backup, ConfigSource

logger = logging.getLogger(__name__)

BACKUP_MARKER = ".backup."
_TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"
_MAX_COLLISIONS = 100


def backup_name(path: Path, stamp: str, attempt: int = 1) -> Path:
    suffix = stamp if attempt == 1 else f"{stamp}-{attempt}"
    return path.with_name(f"{path.name}{BACKUP_MARKER}{suffix}")


class Snapshotter:
    """Creates at most one backup per source per run.

    Args:
        fs: Filesystem to copy on.
        clock: Returns the current local time (injected for tests).
    """

    def __init__(
        self,
        fs: Filesystem,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._fs = fs
        self._clock = clock
        self._taken: dict[Path, Backup] = {}
        self._created: set[Path] = set()

    @property
    def taken(self) -> list[Backup]:
        """Backups created by this snapshotter, in creation order."""
        return list(self._taken.values())

    def record_created(self, path: Path) -> None:
        """``path`` did not exist before this run; it has no pre-run content."""
        self._created.add(path)

    def created_this_run(self, path: Path) -> bool:
        return path in self._created

    def backup(self, source: ConfigSource | Path) -> Backup:
        """Copy ``source`` aside; raise ConfigMutationFailure on any failure.

        Calling it again for the same source in the same run returns
        the first backup, which holds the true pre-run content.
        """
        path = source.path if isinstance(source, ConfigSource) else source
        if path in self._taken:
            return self._taken[path]

        try:
            original = self._fs.read_text(path)
        except (OSError, UnicodeError) as e:
            raise ConfigMutationFailure(f"Cannot read {path} for backup: {e}") from e

        now = self._clock()
        stamp = now.strftime(_TIMESTAMP_FORMAT)
        target = None
        for attempt in range(1, _MAX_COLLISIONS + 1):
            candidate = backup_name(path, stamp, attempt)
            if not self._fs.exists(candidate):
                target = candidate
                break
        if target is None:
            raise ConfigMutationFailure(f"No free backup name for {path} at {stamp}")

        try:
            self._fs.copy_durable(path, target)
            copied = self._fs.read_text(target)
        except OSError as e:
            raise ConfigMutationFailure(f"Backup of {path} to {target} failed: {e}") from e

        if copied != original:
            raise ConfigMutationFailure(f"Backup {target} does not match {path}")

        handle = Backup(
            source=path,
            path=target,
            created_at=now.isoformat(timespec="seconds"),
            size=len(original),
        )
        self._taken[path] = handle
        logger.info("Backed up %s → %s", path, target)
        return handle


def list_backups(fs: Filesystem, source: Path) -> list[Path]:
    """Backups of ``source`` that exist on disk, oldest first."""
    parent = source.parent
    if not fs.is_dir(parent):
        return []
    prefix = f"{source.name}{BACKUP_MARKER}"
    return [p for p in fs.list_dir(parent) if p.name.startswith(prefix)]
