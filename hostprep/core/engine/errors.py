"""
Engine error taxonomy.

Raised inside a Step and converted into a failed StepResult at the
Step boundary; the Orchestrator never sees these as exceptions.
"""

from __future__ import annotations


class ProvisionError(Exception):
    """Base class for provisioning failures."""

    kind = "provision"


class PreconditionFailure(ProvisionError):
    """The host is not fit to start (privileges, free disk space)."""

    kind = "precondition"


class AcquisitionFailure(ProvisionError):
    """A package, repository source, download or clone failed."""

    kind = "acquisition"


class ConfigMutationFailure(ProvisionError):
    """A backup or rewrite of a configuration source failed."""

    kind = "config-mutation"


class VerificationWarning(ProvisionError):
    """A post-apply live check was inconclusive. Non-fatal."""

    kind = "verification"
