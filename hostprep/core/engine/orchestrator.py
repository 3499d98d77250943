"""
Orchestrator — run preconditions, then Steps in order, fail-fast.

Strictly sequential: later steps depend on host state left by
earlier ones (package sources, group membership, the git binary).
The first failed Step aborts the run; the remaining Steps stay
unstarted and are listed as pending in the outcome. Nothing is
retried — the operator fixes the cause and re-runs everything,
relying on each Step's probe to skip finished work.
"""

from __future__ import annotations

import logging
from typing import Sequence

from hostprep.core.engine.errors import PreconditionFailure
from hostprep.core.engine.preconditions import Precondition
from hostprep.core.engine.step import Step
from hostprep.core.models.outcome import RunOutcome

logger = logging.getLogger(__name__)


class Orchestrator:
    """Drives an ordered list of Steps to a single RunOutcome."""

    def __init__(
        self,
        steps: Sequence[Step],
        preconditions: Sequence[Precondition] = (),
    ):
        names = [s.name for s in steps]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate step names: {names}")
        self._steps = list(steps)
        self._preconditions = list(preconditions)

    @property
    def steps(self) -> list[Step]:
        return list(self._steps)

    def run(self) -> RunOutcome:
        outcome = RunOutcome()

        for pre in self._preconditions:
            try:
                pre.check()
            except PreconditionFailure as e:
                logger.error("ERROR: %s", e)
                outcome.status = "aborted"
                outcome.failed_step = f"precondition:{pre.name}"
                outcome.reason = str(e)
                outcome.pending = [s.name for s in self._steps]
                return outcome

        total = len(self._steps)
        for index, step in enumerate(self._steps, start=1):
            logger.info("[%d/%d] %s", index, total, step.description)
            result = step.run()
            outcome.results.append(result)

            if not result.ok:
                outcome.status = "aborted"
                outcome.failed_step = step.name
                outcome.reason = result.reason
                outcome.pending = [s.name for s in self._steps[index:]]
                logger.error(
                    "Aborting at step %d/%d (%s): %s", index, total, step.name, result.reason
                )
                return outcome

        logger.info(
            "All tasks completed: %d already in place, %d applied.",
            outcome.count("satisfied"),
            outcome.count("applied"),
        )
        return outcome
