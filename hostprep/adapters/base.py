"""
Adapter base — the protocol contract between engine and host.

The engine only talks to the host through these interfaces, never
directly through subprocess or os calls. That is what lets the
engine run against an in-memory filesystem and recording doubles
in tests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path


class Adapter(ABC):
    """Abstract base class for all host adapters.

    Adapters perform external side effects and return receipts.
    They NEVER raise exceptions — failures are captured in the Receipt.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """The adapter identifier (e.g., 'apt', 'systemd', 'git')."""

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this adapter's underlying tool is available.

        Should be fast and never raise.
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"


class Filesystem(ABC):
    """Read/write/exists contract over plain-text configuration files.

    Unlike the other adapters this one raises ``OSError`` on failure:
    the engine maps those to ``ConfigMutationFailure`` because the
    caller must know exactly which write did not happen.
    """

    @abstractmethod
    def exists(self, path: Path) -> bool:
        ...

    @abstractmethod
    def is_dir(self, path: Path) -> bool:
        ...

    @abstractmethod
    def is_file(self, path: Path) -> bool:
        ...

    @abstractmethod
    def read_text(self, path: Path) -> str:
        ...

    @abstractmethod
    def mtime(self, path: Path) -> float:
        """Last modification time, seconds since the epoch."""

    @abstractmethod
    def write_text_atomic(self, path: Path, content: str) -> None:
        """Replace ``path`` with ``content`` without a half-written window."""

    @abstractmethod
    def copy_durable(self, src: Path, dst: Path) -> None:
        """Copy ``src`` to ``dst`` and flush it to stable storage.

        Must fail if ``dst`` already exists.
        """

    @abstractmethod
    def list_dir(self, path: Path) -> list[Path]:
        """Entries of a directory, sorted by name."""

    @abstractmethod
    def remove_tree(self, path: Path) -> None:
        """Remove a file or directory tree. Missing path is a no-op."""
