"""
Backups use case — list the backups kept next to configuration sources.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from hostprep.adapters.base import Filesystem
from hostprep.adapters.shell.filesystem import LocalFilesystem
from hostprep.core.config.loader import ConfigError, load_config
from hostprep.core.engine.locator import ConfigLocator
from hostprep.core.engine.snapshot import list_backups


@dataclass
class BackupsResult:
    """Backups per configuration source, oldest first."""

    sources: dict[str, list[str]] = field(default_factory=dict)
    error: str | None = None

    @property
    def total(self) -> int:
        return sum(len(v) for v in self.sources.values())

    def to_dict(self) -> dict:
        return {"error": self.error, "total": self.total, "sources": self.sources}


def list_source_backups(
    config_path: Path | None = None,
    fs: Filesystem | None = None,
) -> BackupsResult:
    result = BackupsResult()
    try:
        config = load_config(config_path)
    except ConfigError as e:
        result.error = str(e)
        return result

    fs = fs or LocalFilesystem()
    for source in ConfigLocator(fs).sources(config.ssh.layout()):
        found = list_backups(fs, source.path)
        if found or source.exists:
            result.sources[str(source.path)] = [str(p) for p in found]
    return result
