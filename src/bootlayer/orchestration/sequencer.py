"""
Resumable, ordered execution of provisioning phases.

Each phase leaves a durable marker behind: completed phases are skipped on
the next invocation, failed phases are cleared and retried from scratch, and
once every phase has completed a global marker short-circuits later runs.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import structlog

from bootlayer.config.loader import ProvisionConfig
from bootlayer.core.errors import ConfigurationError, PhaseFailedError
from bootlayer.logging import log_success
from bootlayer.orchestration.markers import MarkerStore, PhaseState
from bootlayer.orchestration.phases import Phase, PhaseContext
from bootlayer.orchestration.results import RollbackReport, SequenceResult, SequenceStatus
from bootlayer.orchestration.rollback import RollbackCoordinator, RollbackStep
from bootlayer.retry import RetryExecutor

logger = structlog.get_logger()

ROLLBACK_SCOPES = ("failed", "run")


@dataclass
class PreparedEnvironment:
    """Output of the preflight step.

    ``secret_files`` maps an environment variable name to the materialized
    file holding the same value; phases that declare the variable also
    receive ``<NAME>_FILE`` pointing at it.
    """

    env: Dict[str, str] = field(default_factory=dict)
    work_dir: Optional[Path] = None
    secret_files: Dict[str, Path] = field(default_factory=dict)


class PhaseSequencer:
    """Runs phases in declared order, at most once each across invocations."""

    def __init__(
        self,
        phases: Sequence[Phase],
        markers: MarkerStore,
        executor: RetryExecutor | None = None,
        rollback: RollbackCoordinator | None = None,
        skip: Iterable[str] = (),
        rollback_scope: str = "failed",
        config: ProvisionConfig | None = None,
    ) -> None:
        names = [p.name for p in phases]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ConfigurationError(
                f"Duplicate phase name(s): {', '.join(duplicates)}",
                details={"phases": ", ".join(duplicates)},
            )
        skip = set(skip)
        unknown = sorted(skip - set(names))
        if unknown:
            raise ConfigurationError(
                f"Cannot skip unknown phase(s): {', '.join(unknown)}",
                details={"skip": ", ".join(unknown)},
            )
        if rollback_scope not in ROLLBACK_SCOPES:
            raise ConfigurationError(
                f"Unknown rollback scope '{rollback_scope}'",
                details={"rollback_scope": rollback_scope},
            )

        self.phases = list(phases)
        self.markers = markers
        self.executor = executor or RetryExecutor()
        self.rollback = rollback or RollbackCoordinator(self.executor)
        self.skip = skip
        self.rollback_scope = rollback_scope
        self.config = config

    def _context(self, phase: Phase, prepared: PreparedEnvironment) -> PhaseContext:
        missing = [name for name in phase.required_env if not prepared.env.get(name)]
        if missing:
            raise ConfigurationError(
                f"Phase '{phase.name}' needs unset value(s): {', '.join(missing)}",
                details={"phase": phase.name},
            )
        declared = (*phase.required_env, *phase.optional_env)
        env = {name: prepared.env[name] for name in declared if prepared.env.get(name)}
        env.update(
            {
                f"{name}_FILE": str(prepared.secret_files[name])
                for name in declared
                if name in prepared.secret_files
            }
        )
        return PhaseContext(
            phase=phase.name,
            env=env,
            work_dir=prepared.work_dir,
            config=self.config,
        )

    def run(
        self, preflight: Callable[[], PreparedEnvironment] | None = None
    ) -> SequenceResult:
        """Bring the host to the fully provisioned state.

        Raises:
            PhaseFailedError: a phase failed; later phases were not run
        """
        started = time.monotonic()

        if self.markers.is_complete():
            logger.info("sequence_already_complete")
            return SequenceResult(status=SequenceStatus.ALREADY_COMPLETE)

        total = len(self.phases)
        logger.info("sequence_started", phases=[p.name for p in self.phases])

        try:
            prepared = preflight() if preflight else PreparedEnvironment()
        except Exception as e:
            logger.error("preflight_failed", error_type=type(e).__name__, error=str(e))
            raise

        result = SequenceResult(status=SequenceStatus.ALL_COMPLETE)
        applied: List[Tuple[Phase, PhaseContext]] = []

        for index, phase in enumerate(self.phases, 1):
            if phase.name in self.skip:
                logger.info("phase_skipped", phase=phase.name, reason="excluded")
                result.excluded.append(phase.name)
                continue

            state = self.markers.state(phase.name)
            if state == PhaseState.FAILED:
                logger.info("phase_failure_marker_cleared", phase=phase.name)
                self.markers.clear(phase.name)
            elif state == PhaseState.COMPLETED:
                logger.info("phase_skipped", phase=phase.name, reason="completed")
                result.skipped.append(phase.name)
                continue

            ctx = self._context(phase, prepared)

            if phase.is_applied is not None and phase.is_applied(ctx):
                self.markers.mark_completed(phase.name)
                logger.info("phase_skipped", phase=phase.name, reason="already_applied")
                result.skipped.append(phase.name)
                continue

            logger.info("phase_started", phase=phase.name, index=index, total=total)
            try:
                self.executor.run(
                    lambda phase=phase, ctx=ctx: phase.action(ctx), f"phase {phase.name}"
                )
            except Exception as e:
                self.markers.mark_failed(phase.name)
                logger.error(
                    "phase_failed",
                    phase=phase.name,
                    index=index,
                    total=total,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                report = self._roll_back(phase, ctx, applied)
                result.failed_phase = phase.name
                result.rollback = report
                result.duration_seconds = time.monotonic() - started
                raise PhaseFailedError(phase.name, e, rollback=report) from e

            self.markers.mark_completed(phase.name)
            applied.append((phase, ctx))
            result.completed.append(phase.name)
            log_success(logger, "phase_completed", phase=phase.name, index=index, total=total)

        result.duration_seconds = time.monotonic() - started

        if result.excluded:
            result.status = SequenceStatus.PARTIAL
            logger.warning("sequence_incomplete", excluded=result.excluded)
            return result

        self.markers.mark_complete()
        log_success(
            logger,
            "sequence_completed",
            completed=len(result.completed),
            skipped=len(result.skipped),
            duration_seconds=round(result.duration_seconds, 2),
        )
        return result

    def _roll_back(
        self,
        failed: Phase,
        ctx: PhaseContext,
        applied: List[Tuple[Phase, PhaseContext]],
    ) -> RollbackReport:
        steps = []
        if self.rollback_scope == "run":
            steps.extend(_step(p, c) for p, c in applied)
        steps.append(_step(failed, ctx))

        report = self.rollback.rollback(steps)

        if self.rollback_scope == "run":
            for phase, _ in applied:
                if phase.name in report.reverted:
                    self.markers.clear(phase.name)
        return report


def _step(phase: Phase, ctx: PhaseContext) -> RollbackStep:
    compensate = phase.compensate
    if compensate is None:
        return RollbackStep(phase.name)
    return RollbackStep(phase.name, lambda: compensate(ctx))
