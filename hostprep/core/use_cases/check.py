"""
Check use case — probe every step without changing the host.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from hostprep.adapters.registry import AdapterRegistry
from hostprep.core.config.loader import ConfigError, load_config
from hostprep.core.engine.probe import Probe
from hostprep.core.engine.step import STEP_ERRORS
from hostprep.core.steps.catalog import build_steps
from hostprep.core.steps.repository import RepositoryStep
from hostprep.core.use_cases.provision import HostContext

logger = logging.getLogger(__name__)


@dataclass
class StepCheck:
    name: str
    description: str
    status: str  # satisfied | pending | always | error
    detail: str = ""


@dataclass
class CheckResult:
    """What a provisioning run would do right now."""

    checks: list[StepCheck] = field(default_factory=list)
    adapters: dict[str, dict] = field(default_factory=dict)
    error: str | None = None

    @property
    def converged(self) -> bool:
        return self.error is None and all(c.status in ("satisfied", "always") for c in self.checks)

    def to_dict(self) -> dict:
        return {
            "converged": self.converged,
            "error": self.error,
            "adapters": self.adapters,
            "steps": [
                {
                    "name": c.name,
                    "description": c.description,
                    "status": c.status,
                    "detail": c.detail,
                }
                for c in self.checks
            ],
        }


def run_check(
    config_path: Path | None = None,
    registry: AdapterRegistry | None = None,
    host: HostContext | None = None,
) -> CheckResult:
    """Probe each step; nothing is installed, written or reloaded."""
    result = CheckResult()
    host = host or HostContext()

    try:
        config = load_config(config_path, environ=host.environ)
        user = host.target_user(config)
    except ConfigError as e:
        result.error = str(e)
        return result

    registry = registry or AdapterRegistry.for_host()
    result.adapters = registry.adapter_status()
    probe = Probe(registry.fs, registry.services, host.which)

    for step in build_steps(config, registry, user, probe=probe, clock=host.clock):
        if isinstance(step, RepositoryStep):
            result.checks.append(
                StepCheck(step.name, step.description, "always", f"re-cloned into {step.target}")
            )
            continue
        try:
            status = "satisfied" if step.probe() else "pending"
            detail = ""
        except STEP_ERRORS as e:
            status, detail = "error", str(e)
        logger.debug("check %s → %s", step.name, status)
        result.checks.append(StepCheck(step.name, step.description, status, detail))

    return result
