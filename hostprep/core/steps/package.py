"""
Package step — make a tool's binary available.

Apply runs, in order: prerequisite packages, the signed apt source,
the tool's own packages (or a release .deb), then post-install hooks.
Any failed Receipt along the way is an AcquisitionFailure.

The step is only satisfied when the binary is present and every hook
with a check reports done. When the binary is there but a hook is not
done (a previous run failed half-way), apply skips the install and
runs just the unfinished hooks.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Sequence

from hostprep.adapters.packages.apt import AptAdapter
from hostprep.core.engine.errors import AcquisitionFailure
from hostprep.core.engine.probe import Probe
from hostprep.core.engine.step import Step
from hostprep.core.models.action import Receipt
from hostprep.core.models.capability import Capability

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Hook:
    """A post-install action; ``action`` returns the adapter's Receipt.

    ``check`` is the read-only post-condition. Hooks without one run
    only as part of a fresh install.
    """

    label: str
    action: Callable[[], Receipt]
    check: Callable[[], bool] | None = None

    def pending(self) -> bool:
        return self.check is not None and not self.check()


def _require(receipt: Receipt, what: str) -> Receipt:
    if receipt.failed:
        raise AcquisitionFailure(f"{what} failed: {receipt.error}")
    return receipt


class PackageStep(Step):
    """Install a tool whose presence is a binary on PATH.

    Args:
        name: Step name (the tool id).
        capability: The ``binary`` capability to probe.
        probe: Shared Probe.
        packages: Apt adapter.
        prerequisites: Packages needed before the source can be added.
        apt_source: Keyword arguments for ``AptAdapter.ensure_apt_source``.
        install: Packages providing the tool.
        deb_url: Release .deb to install instead of ``install``.
        hooks: Post-install actions, run in order.
        service: A service expected active afterwards (warning only).
    """

    unsatisfied_error = AcquisitionFailure

    def __init__(
        self,
        name: str,
        *,
        capability: Capability,
        probe: Probe,
        packages: AptAdapter,
        prerequisites: Sequence[str] = (),
        apt_source: dict[str, Any] | None = None,
        install: Sequence[str] = (),
        deb_url: str | None = None,
        hooks: Sequence[Hook] = (),
        service: str | None = None,
        description: str = "",
    ):
        super().__init__(name, description)
        self.capability = capability
        self._probe = probe
        self._packages = packages
        self._prerequisites = list(prerequisites)
        self._apt_source = dict(apt_source) if apt_source else None
        self._install = list(install)
        self._deb_url = deb_url
        self._hooks = list(hooks)
        self._service = service

    def probe(self) -> bool:
        if not self._probe.satisfied(self.capability):
            return False
        unfinished = self._pending_hooks()
        if unfinished:
            logger.info(
                "%s is installed but not set up: %s",
                self.description,
                ", ".join(h.label for h in unfinished),
            )
            return False
        return True

    def _pending_hooks(self) -> list[Hook]:
        return [h for h in self._hooks if h.pending()]

    def apply(self) -> None:
        if self._probe.satisfied(self.capability):
            logger.info("%s is already installed. Finishing setup...", self.description)
            self._run_hooks(self._pending_hooks())
            return

        if self._prerequisites:
            logger.info("Installing prerequisites for %s...", self.description)
            _require(self._packages.ensure_package(*self._prerequisites), "Prerequisite install")

        if self._apt_source:
            source = dict(self._apt_source)
            name = source.pop("name", self.name)
            source["keyring"] = Path(source["keyring"])
            source["list_path"] = Path(source["list_path"])
            _require(self._packages.ensure_apt_source(name, **source), f"Adding {name} repository")

        if self._install:
            _require(self._packages.ensure_package(*self._install), f"Installing {self.description}")

        if self._deb_url:
            _require(self._packages.install_deb(self._deb_url), f"Installing {self.description} package")

        self._run_hooks(self._hooks)

    def _run_hooks(self, hooks: list[Hook]) -> None:
        for hook in hooks:
            logger.info("%s...", hook.label)
            _require(hook.action(), hook.label)

    def verify(self) -> list[str]:
        warnings = super().verify()
        if self._service and not self._probe.satisfied(Capability.service(self._service)):
            warnings.append(f"{self._service} service is not active")
        return warnings
