"""
Step and run outcome models.

StepResult is what one Step hands back to the Orchestrator;
RunOutcome aggregates them for the whole invocation. Neither is
persisted — they exist for reporting and the process exit code.
"""

from __future__ import annotations

from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field


class StepState(str, Enum):
    """Lifecycle of a single Step."""

    UNSTARTED = "unstarted"
    PROBING = "probing"
    SATISFIED = "satisfied"
    APPLYING = "applying"
    VERIFYING = "verifying"
    DONE = "done"
    FAILED = "failed"


# Allowed transitions; DONE and FAILED are terminal.
STEP_TRANSITIONS: dict[StepState, frozenset[StepState]] = {
    StepState.UNSTARTED: frozenset({StepState.PROBING}),
    StepState.PROBING: frozenset({StepState.SATISFIED, StepState.APPLYING, StepState.FAILED}),
    StepState.SATISFIED: frozenset({StepState.DONE}),
    StepState.APPLYING: frozenset({StepState.VERIFYING, StepState.FAILED}),
    StepState.VERIFYING: frozenset({StepState.DONE, StepState.FAILED}),
    StepState.DONE: frozenset(),
    StepState.FAILED: frozenset(),
}


class StepResult(BaseModel):
    """Outcome of one Step."""

    step: str
    status: Literal["satisfied", "applied", "failed"]
    reason: str = ""
    error_type: str = ""
    warnings: list[str] = Field(default_factory=list)
    backups: list[str] = Field(default_factory=list)
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.status != "failed"

    @classmethod
    def satisfied(cls, step: str, **kwargs) -> StepResult:
        return cls(step=step, status="satisfied", **kwargs)

    @classmethod
    def applied(cls, step: str, **kwargs) -> StepResult:
        return cls(step=step, status="applied", **kwargs)

    @classmethod
    def failure(cls, step: str, reason: str, **kwargs) -> StepResult:
        return cls(step=step, status="failed", reason=reason, **kwargs)


class RunOutcome(BaseModel):
    """Aggregate of all StepResults for one invocation."""

    status: Literal["converged", "aborted"] = "converged"
    results: list[StepResult] = Field(default_factory=list)
    failed_step: str | None = None
    reason: str = ""
    pending: list[str] = Field(default_factory=list)

    @property
    def converged(self) -> bool:
        return self.status == "converged"

    @property
    def warnings(self) -> list[str]:
        return [f"{r.step}: {w}" for r in self.results for w in r.warnings]

    @property
    def unconfirmed(self) -> bool:
        """Converged, but at least one live verification was inconclusive."""
        return self.converged and bool(self.warnings)

    @property
    def backups(self) -> list[str]:
        return [b for r in self.results for b in r.backups]

    def count(self, status: str) -> int:
        return sum(1 for r in self.results if r.status == status)

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "unconfirmed": self.unconfirmed,
            "failed_step": self.failed_step,
            "reason": self.reason,
            "satisfied": self.count("satisfied"),
            "applied": self.count("applied"),
            "pending": list(self.pending),
            "warnings": self.warnings,
            "backups": self.backups,
            "results": [r.model_dump(mode="json") for r in self.results],
        }
