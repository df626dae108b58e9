"""Plan, apply and destroy reconciliation of named cloud resources."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import List, Protocol, Sequence, runtime_checkable

import structlog

from bootlayer.core.errors import ReconcileError, ResourceCreationError
from bootlayer.logging import log_success
from bootlayer.orchestration.results import ApplyResult, DestroyResult
from bootlayer.orchestration.rollback import RollbackCoordinator, RollbackStep
from bootlayer.retry import RetryExecutor

logger = structlog.get_logger()


@runtime_checkable
class Resource(Protocol):
    """A named cloud resource that can be probed, created and deleted."""

    kind: str
    name: str

    def exists(self) -> bool:
        """True if present, False if absent; raise if it cannot tell."""
        ...

    def create(self) -> None: ...

    def delete(self) -> None: ...


def label(resource: Resource) -> str:
    return f"{resource.kind}/{resource.name}"


@dataclass
class ResourcePlan:
    """Existence classification computed fresh for one run."""

    to_create: List[Resource] = field(default_factory=list)
    to_skip: List[Resource] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.to_create)

    @property
    def total(self) -> int:
        return len(self.to_create) + len(self.to_skip)


class ResourceReconciler:
    """Creates only the resources that do not exist yet."""

    def __init__(
        self,
        resources: Sequence[Resource],
        executor: RetryExecutor | None = None,
        rollback: RollbackCoordinator | None = None,
    ) -> None:
        self.resources = list(resources)
        self.executor = executor or RetryExecutor()
        self.rollback = rollback or RollbackCoordinator(self.executor)

    def plan(self) -> ResourcePlan:
        """Probe every resource once.

        Raises:
            ReconcileError: a resource's existence could not be determined
        """
        plan = ResourcePlan()
        for resource in self.resources:
            try:
                present = resource.exists()
            except ReconcileError:
                raise
            except Exception as e:
                raise ReconcileError(
                    f"Could not determine whether {label(resource)} exists: {e}",
                    details={"resource": label(resource)},
                ) from e

            if present:
                logger.info("resource_exists", resource=label(resource))
                plan.to_skip.append(resource)
            else:
                logger.info("resource_missing", resource=label(resource))
                plan.to_create.append(resource)

        logger.info("resource_plan", to_create=len(plan.to_create), to_skip=len(plan.to_skip))
        return plan

    def apply(self, plan: ResourcePlan) -> ApplyResult:
        """Create each missing resource once, rolling back this run's creations on failure."""
        started = time.monotonic()
        result = ApplyResult(skipped=[label(r) for r in plan.to_skip])
        created: List[Resource] = []

        for resource in plan.to_create:
            name = label(resource)
            logger.info("resource_create_started", resource=name)
            try:
                self.executor.run(resource.create, f"create {name}")
            except Exception as e:
                result.errors.append(f"{name}: {e}")
                logger.error("resource_create_failed", resource=name, error=str(e))
                result.rollback = self.rollback.rollback(
                    [RollbackStep(label(r), getattr(r, "delete", None)) for r in created]
                )
                result.duration_seconds = time.monotonic() - started
                raise ResourceCreationError(name, e, rollback=result.rollback) from e

            created.append(resource)
            result.created.append(name)
            log_success(logger, "resource_created", resource=name)

        result.duration_seconds = time.monotonic() - started
        return result

    def destroy(self) -> DestroyResult:
        """Delete every declared resource, last declared first.

        Resources that are already gone count as deleted. A failed delete is
        recorded and the remaining resources are still attempted.
        """
        started = time.monotonic()
        result = DestroyResult()

        for resource in reversed(self.resources):
            name = label(resource)
            logger.info("resource_delete_started", resource=name)
            try:
                self.executor.run(resource.delete, f"delete {name}")
            except Exception as e:
                result.failed[name] = str(e)
                logger.error("resource_delete_failed", resource=name, error=str(e))
                continue

            result.deleted.append(name)
            log_success(logger, "resource_deleted", resource=name)

        result.duration_seconds = time.monotonic() - started
        logger.info(
            "resource_destroy_finished", deleted=len(result.deleted), failed=len(result.failed)
        )
        return result
