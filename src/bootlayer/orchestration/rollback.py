"""Best-effort compensation of partially applied work."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence

import structlog

from bootlayer.orchestration.results import RollbackReport
from bootlayer.retry import ROLLBACK_POLICY, RetryExecutor

logger = structlog.get_logger()


@dataclass
class RollbackStep:
    """An applied step and, if it has one, the callable that undoes it."""

    name: str
    compensate: Optional[Callable[[], Any]] = None


class RollbackCoordinator:
    """Reverts steps in reverse application order.

    Compensations run under a short fixed retry policy; a compensation that
    still fails is recorded and the walk continues.
    """

    def __init__(self, executor: RetryExecutor | None = None) -> None:
        self.executor = (executor or RetryExecutor()).with_policy(ROLLBACK_POLICY)

    def rollback(self, steps: Sequence[RollbackStep]) -> RollbackReport:
        report = RollbackReport()
        ordered = list(reversed(steps))
        logger.info("rollback_started", steps=[s.name for s in ordered])

        for step in ordered:
            if step.compensate is None:
                logger.warning("rollback_step_irreversible", step=step.name)
                report.irreversible.append(step.name)
                continue

            try:
                self.executor.run(step.compensate, f"rollback {step.name}")
            except Exception as e:
                logger.error(
                    "rollback_step_failed",
                    step=step.name,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                report.failed[step.name] = str(e)
            else:
                logger.info("rollback_step_reverted", step=step.name)
                report.reverted.append(step.name)

        if report.manual_intervention_required:
            logger.error(
                "manual_intervention_required",
                failed=sorted(report.failed),
                irreversible=report.irreversible,
            )
        else:
            logger.info("rollback_completed", reverted=report.reverted)
        return report
