"""
Domain models — Pydantic types for the provisioning engine.

All models are re-exported here for convenient access:

    from hostprep.core.models import Capability, Directive, StepResult, RunOutcome
"""

from hostprep.core.models.action import Receipt
from hostprep.core.models.capability import Capability
from hostprep.core.models.host import HostConfig, RepositorySettings, SshSettings, TargetUser
from hostprep.core.models.outcome import RunOutcome, StepResult, StepState
from hostprep.core.models.source import (
    Backup,
    ConfigSource,
    Declaration,
    Directive,
    MutationReport,
    SourceLayout,
)

__all__ = [
    "Backup",
    "Capability",
    "ConfigSource",
    "Declaration",
    "Directive",
    "HostConfig",
    "MutationReport",
    "Receipt",
    "RepositorySettings",
    "RunOutcome",
    "SourceLayout",
    "SshSettings",
    "StepResult",
    "StepState",
    "TargetUser",
]
