"""
Provision use case — converge the host in one pass.
"""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Mapping

from hostprep.adapters.registry import AdapterRegistry
from hostprep.core.config.loader import ConfigError, load_config, resolve_user
from hostprep.core.engine.orchestrator import Orchestrator
from hostprep.core.engine.preconditions import Precondition, require_free_space, require_root
from hostprep.core.engine.probe import Probe
from hostprep.core.models.host import HostConfig, TargetUser
from hostprep.core.models.outcome import RunOutcome
from hostprep.core.steps.catalog import build_steps

logger = logging.getLogger(__name__)


@dataclass
class HostContext:
    """Host hooks a run depends on; real ones unless a test swaps them."""

    environ: Mapping[str, str] | None = None
    getpwnam: Callable[[str], Any] | None = None
    hostname: Callable[[], str] | None = None
    geteuid: Callable[[], int] = os.geteuid
    disk_usage: Callable[[str], Any] = shutil.disk_usage
    which: Callable[[str], str | None] = shutil.which
    clock: Callable[[], datetime] = datetime.now

    def target_user(self, config: HostConfig) -> TargetUser:
        kwargs: dict[str, Any] = {"environ": self.environ}
        if self.getpwnam is not None:
            kwargs["getpwnam"] = self.getpwnam
        if self.hostname is not None:
            kwargs["hostname"] = self.hostname
        return resolve_user(config, **kwargs)


def preconditions_for(config: HostConfig, host: HostContext) -> list[Precondition]:
    checks = []
    if config.require_root:
        checks.append(require_root(host.geteuid))
    checks.append(require_free_space(config.disk_path, config.min_free_gb, host.disk_usage))
    return checks


@dataclass
class ProvisionResult:
    """Result of a provisioning run."""

    outcome: RunOutcome | None = None
    user: str | None = None
    error: str | None = None
    steps: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None and self.outcome is not None and self.outcome.converged

    def to_dict(self) -> dict:
        data: dict[str, Any] = {
            "ok": self.ok,
            "user": self.user,
            "error": self.error,
            "steps": list(self.steps),
        }
        if self.outcome is not None:
            data.update(self.outcome.to_dict())
        return data


def run_provision(
    config_path: Path | None = None,
    registry: AdapterRegistry | None = None,
    host: HostContext | None = None,
) -> ProvisionResult:
    """Load settings, then run every step in order.

    Args:
        config_path: Explicit hostprep.yml (default: auto-detect).
        registry: Adapters to act through (default: the real host).
        host: Host hooks (default: the real host).

    Returns:
        ProvisionResult; ``error`` is set when configuration could
        not be loaded, otherwise ``outcome`` holds the run.
    """
    result = ProvisionResult()
    host = host or HostContext()

    try:
        config = load_config(config_path, environ=host.environ)
        user = host.target_user(config)
    except ConfigError as e:
        result.error = str(e)
        return result

    result.user = user.name
    registry = registry or AdapterRegistry.for_host()
    probe = Probe(registry.fs, registry.services, host.which)
    steps = build_steps(config, registry, user, probe=probe, clock=host.clock)
    result.steps = [s.name for s in steps]

    logger.info("Provisioning %d steps for user %s", len(steps), user.name)
    orchestrator = Orchestrator(steps, preconditions_for(config, host))
    result.outcome = orchestrator.run()
    return result
