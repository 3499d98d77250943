"""
Git adapter — working-copy materialization and user identity.

Uses the git CLI — never raw API calls.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from hostprep.adapters.base import Adapter, Filesystem
from hostprep.adapters.shell.command import CommandRunner
from hostprep.adapters.shell.filesystem import LocalFilesystem
from hostprep.core.models.action import Receipt

logger = logging.getLogger(__name__)


class GitAdapter(Adapter):
    """Git operations run on behalf of a target user."""

    def __init__(
        self,
        runner: CommandRunner | None = None,
        fs: Filesystem | None = None,
    ):
        self._runner = runner or CommandRunner()
        self._fs = fs or LocalFilesystem()

    @property
    def name(self) -> str:
        return "git"

    def is_available(self) -> bool:
        return shutil.which("git") is not None

    def materialize(self, url: str, target: Path, as_user: str | None = None) -> Receipt:
        """Fresh clone of ``url`` at ``target``.

        Destructive: an existing ``target`` is removed entirely first.
        """
        operation = f"clone {url}"
        try:
            if self._fs.exists(target):
                logger.info("Directory %s already exists. Removing it before cloning...", target)
                self._fs.remove_tree(target)
        except OSError as e:
            return Receipt.failure(
                adapter=self.name,
                operation=operation,
                error=f"Cannot remove {target}: {e}",
            )

        r = self._runner.run(["git", "clone", url, str(target)], timeout=600, as_user=as_user)
        if r.failed:
            return Receipt.failure(
                adapter=self.name,
                operation=operation,
                error=r.error or "git clone failed",
            )
        return Receipt.success(
            adapter=self.name,
            operation=operation,
            output=f"Cloned into {target}",
            duration_ms=r.duration_ms,
            metadata={"target": str(target)},
        )

    def set_global_config(self, key: str, value: str, as_user: str | None = None) -> Receipt:
        r = self._runner.run(["git", "config", "--global", key, value], timeout=10, as_user=as_user)
        if r.failed:
            return Receipt.failure(
                adapter=self.name,
                operation=f"git config {key}",
                error=r.error or "git config failed",
            )
        return Receipt.success(adapter=self.name, operation=f"git config {key}", output=value)

    def get_global_config(self, key: str, as_user: str | None = None) -> Receipt:
        """Current global value of ``key``; failed when it is unset."""
        r = self._runner.run(["git", "config", "--global", "--get", key], timeout=10, as_user=as_user)
        if r.failed:
            return Receipt.failure(
                adapter=self.name,
                operation=f"git config --get {key}",
                error=r.error or f"{key} is not set",
            )
        return Receipt.success(adapter=self.name, operation=f"git config --get {key}", output=r.output.strip())
