"""
Step — the detect / apply / verify unit of work.

    unstarted → probing → satisfied → done
                        → applying → verifying → done
                                               → failed
                        (any active state)     → failed

A Step never lets a ProvisionError escape: ``run`` always returns a
StepResult, and the Orchestrator decides what to do with it.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod

from hostprep.core.engine.errors import ProvisionError, VerificationWarning
from hostprep.core.models.outcome import STEP_TRANSITIONS, StepResult, StepState

logger = logging.getLogger(__name__)

# Raised by probe/apply/verify and turned into a failed StepResult
STEP_ERRORS = (ProvisionError, OSError, UnicodeError)


class IllegalTransition(RuntimeError):
    """A Step was driven through an edge its state machine does not have."""


class Step(ABC):
    """Base class for provisioning steps.

    Subclasses implement ``probe`` and ``apply``; ``verify`` defaults
    to re-probing and may be extended with live checks. Live checks
    report inconclusive results by returning warnings (or raising
    VerificationWarning), never by failing the step.
    """

    #: Error raised by the default ``verify`` when the probe still fails.
    unsatisfied_error: type[ProvisionError] = ProvisionError

    def __init__(self, name: str, description: str = ""):
        self.name = name
        self.description = description or name
        self.state = StepState.UNSTARTED

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r} state={self.state.value}>"

    # ── Hooks for subclasses ────────────────────────────────────

    @abstractmethod
    def probe(self) -> bool:
        """Whether the step's capability is already satisfied. No side effects."""

    @abstractmethod
    def apply(self) -> None:
        """Establish the capability. Raise a ProvisionError on failure."""

    def verify(self) -> list[str]:
        """Post-condition check after ``apply``; returns warnings."""
        if not self.probe():
            raise self.unsatisfied_error(f"{self.description} is still not in place after applying")
        return []

    def backups(self) -> list[str]:
        """Backup files this step created (for reporting)."""
        return []

    # ── State machine ───────────────────────────────────────────

    def _transition(self, new: StepState) -> None:
        if new not in STEP_TRANSITIONS[self.state]:
            raise IllegalTransition(f"{self.name}: {self.state.value} → {new.value}")
        logger.debug("%s: %s → %s", self.name, self.state.value, new.value)
        self.state = new

    def _fail(self, error: Exception, started: float) -> StepResult:
        self._transition(StepState.FAILED)
        kind = error.kind if isinstance(error, ProvisionError) else "os"
        logger.error("%s failed: %s", self.description, error)
        return StepResult.failure(
            self.name,
            str(error),
            error_type=kind,
            backups=self.backups(),
            duration_ms=int((time.monotonic() - started) * 1000),
        )

    def run(self) -> StepResult:
        """Drive the step through its state machine once."""
        started = time.monotonic()
        self._transition(StepState.PROBING)

        try:
            already = self.probe()
        except STEP_ERRORS as e:
            return self._fail(e, started)

        if already:
            self._transition(StepState.SATISFIED)
            self._transition(StepState.DONE)
            logger.info("%s is already in place.", self.description)
            return StepResult.satisfied(
                self.name,
                duration_ms=int((time.monotonic() - started) * 1000),
            )

        self._transition(StepState.APPLYING)
        logger.info("%s not found. Applying...", self.description)
        try:
            self.apply()
        except STEP_ERRORS as e:
            return self._fail(e, started)

        self._transition(StepState.VERIFYING)
        try:
            warnings = self.verify()
        except VerificationWarning as w:
            warnings = [str(w)]
        except STEP_ERRORS as e:
            return self._fail(e, started)

        for warning in warnings:
            logger.warning("WARNING: %s", warning)

        self._transition(StepState.DONE)
        logger.info("%s applied successfully.", self.description)
        return StepResult.applied(
            self.name,
            warnings=warnings,
            backups=self.backups(),
            duration_ms=int((time.monotonic() - started) * 1000),
        )
