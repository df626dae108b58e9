"""Result types for provisioning runs."""

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Dict, List, Optional


class SequenceStatus(StrEnum):
    ALREADY_COMPLETE = "already_complete"
    ALL_COMPLETE = "all_complete"
    PARTIAL = "partial"


@dataclass
class RollbackReport:
    """Outcome of walking applied steps in reverse."""

    reverted: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    irreversible: List[str] = field(default_factory=list)

    @property
    def manual_intervention_required(self) -> bool:
        """Whether anything was left behind for an operator to clean up."""
        return bool(self.failed or self.irreversible)


@dataclass
class SequenceResult:
    """Result of one phase sequencer invocation."""

    status: SequenceStatus
    completed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    excluded: List[str] = field(default_factory=list)
    failed_phase: Optional[str] = None
    rollback: Optional[RollbackReport] = None
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return self.failed_phase is None


@dataclass
class ApplyResult:
    """Result of applying a resource plan."""

    created: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    rollback: Optional[RollbackReport] = None
    duration_seconds: float = 0.0

    @property
    def total_resources(self) -> int:
        """Total number of resources created."""
        return len(self.created)

    @property
    def success(self) -> bool:
        """Whether apply succeeded without errors."""
        return len(self.errors) == 0


@dataclass
class DestroyResult:
    """Result of tearing down declared resources."""

    deleted: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return not self.failed
