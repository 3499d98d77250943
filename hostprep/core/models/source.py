"""
Configuration source models — where a service's directives can live.

A service such as sshd reads a primary file plus every matching file
in a drop-in directory. These models describe that layout, the
concrete sources found on the host, the declarations inside them,
and the backups taken before any of them is rewritten.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

SourceKind = Literal["primary", "dropin", "fallback"]


class SourceLayout(BaseModel):
    """Where a service's configuration sources live.

    Precedence is fixed: primary file, then drop-in entries sorted by
    file name, then the fallback file (created only when nothing
    declares a directive).
    """

    model_config = ConfigDict(frozen=True)

    service: str
    primary: Path
    dropin_dir: Path | None = None
    include_pattern: str = "*.conf"
    fallback_name: str = "99-hostprep.conf"
    test_command: tuple[str, ...] = ()

    @property
    def fallback_path(self) -> Path | None:
        """Path of the fallback source, if a drop-in directory is configured."""
        if self.dropin_dir is None:
            return None
        return self.dropin_dir / self.fallback_name


class ConfigSource(BaseModel):
    """One file that may declare directives for a service."""

    model_config = ConfigDict(frozen=True)

    path: Path
    rank: int
    kind: SourceKind
    exists: bool = True


class Directive(BaseModel):
    """A (name, desired value) pair to enforce across a layout."""

    model_config = ConfigDict(frozen=True)

    name: str
    value: str

    def render(self) -> str:
        """The canonical declaration line (without newline)."""
        return f"{self.name} {self.value}"


class Declaration(BaseModel):
    """A directive declaration found in a source.

    ``line_no`` is 1-based; ``line`` is the raw text without its
    line ending.
    """

    model_config = ConfigDict(frozen=True)

    source: ConfigSource
    line_no: int
    line: str
    value: str


class Backup(BaseModel):
    """An immutable copy of a source's content taken before mutation."""

    model_config = ConfigDict(frozen=True)

    source: Path
    path: Path
    created_at: str
    size: int = 0


class MutationReport(BaseModel):
    """What one ``enforce`` call changed."""

    directive: Directive
    changed: list[Path] = Field(default_factory=list)
    created: list[Path] = Field(default_factory=list)
    backups: list[Backup] = Field(default_factory=list)

    @property
    def mutated(self) -> bool:
        return bool(self.changed or self.created)
