"""
Adapter registry — the single bundle of host adapters a run uses.

The engine never constructs adapters itself; it receives a registry.
Production code builds it with ``AdapterRegistry.for_host()``, tests
build it from in-memory and scripted doubles.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from hostprep.adapters.base import Adapter, Filesystem
from hostprep.adapters.packages.apt import AptAdapter
from hostprep.adapters.services.systemd import SystemdAdapter
from hostprep.adapters.shell.command import CommandRunner
from hostprep.adapters.shell.filesystem import LocalFilesystem
from hostprep.adapters.vcs.git import GitAdapter

logger = logging.getLogger(__name__)


@dataclass
class AdapterRegistry:
    """Every external collaborator the engine talks to."""

    fs: Filesystem
    runner: CommandRunner
    packages: AptAdapter
    services: SystemdAdapter
    vcs: GitAdapter

    @classmethod
    def for_host(cls) -> AdapterRegistry:
        """Adapters bound to the real host."""
        fs = LocalFilesystem()
        runner = CommandRunner()
        return cls(
            fs=fs,
            runner=runner,
            packages=AptAdapter(runner),
            services=SystemdAdapter(runner),
            vcs=GitAdapter(runner, fs),
        )

    def adapters(self) -> list[Adapter]:
        return [self.runner, self.packages, self.services, self.vcs]

    def adapter_status(self) -> dict[str, dict[str, Any]]:
        """Availability of each adapter's underlying tool."""
        status: dict[str, dict[str, Any]] = {}
        for adapter in self.adapters():
            try:
                available = adapter.is_available()
            except Exception as e:
                logger.warning("Availability check failed for %s: %s", adapter.name, e)
                available = False
            status[adapter.name] = {
                "available": available,
                "type": adapter.__class__.__name__,
            }
        return status
