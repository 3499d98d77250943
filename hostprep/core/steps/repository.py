"""
Repository step — a fresh working copy on every run.
"""

from __future__ import annotations

import logging
from pathlib import Path

from hostprep.adapters.base import Filesystem
from hostprep.adapters.vcs.git import GitAdapter
from hostprep.core.engine.errors import AcquisitionFailure
from hostprep.core.engine.step import Step

logger = logging.getLogger(__name__)


class RepositoryStep(Step):
    """Re-clone ``url`` into ``target`` (destructive refresh).

    Never satisfied by probe: any existing working copy, with local
    changes, is replaced.
    """

    unsatisfied_error = AcquisitionFailure

    def __init__(
        self,
        name: str,
        *,
        url: str,
        target: Path,
        vcs: GitAdapter,
        fs: Filesystem,
        as_user: str | None = None,
        description: str = "",
    ):
        super().__init__(name, description or f"Repository {url}")
        self.url = url
        self.target = target
        self._vcs = vcs
        self._fs = fs
        self._as_user = as_user

    def probe(self) -> bool:
        return False

    def apply(self) -> None:
        logger.info("Cloning %s into %s...", self.url, self.target)
        receipt = self._vcs.materialize(self.url, self.target, as_user=self._as_user)
        if receipt.failed:
            raise AcquisitionFailure(f"Failed to clone repository: {receipt.error}")

    def verify(self) -> list[str]:
        if not self._fs.is_dir(self.target / ".git"):
            raise AcquisitionFailure(f"{self.target} is not a git working copy after cloning")
        return []
