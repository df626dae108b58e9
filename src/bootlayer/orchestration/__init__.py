"""Orchestration package: phased, resumable host provisioning."""

from bootlayer.orchestration.markers import (
    FileMarkerStore,
    MarkerStore,
    MemoryMarkerStore,
    PhaseState,
    states,
)
from bootlayer.orchestration.phases import Phase, PhaseContext, ScriptPhase, build_phases
from bootlayer.orchestration.results import (
    ApplyResult,
    DestroyResult,
    RollbackReport,
    SequenceResult,
    SequenceStatus,
)
from bootlayer.orchestration.rollback import RollbackCoordinator, RollbackStep
from bootlayer.orchestration.sequencer import PhaseSequencer, PreparedEnvironment

__all__ = [
    "ApplyResult",
    "DestroyResult",
    "FileMarkerStore",
    "MarkerStore",
    "MemoryMarkerStore",
    "Phase",
    "PhaseContext",
    "PhaseSequencer",
    "PhaseState",
    "PreparedEnvironment",
    "RollbackCoordinator",
    "RollbackReport",
    "RollbackStep",
    "ScriptPhase",
    "SequenceResult",
    "SequenceStatus",
    "build_phases",
    "states",
]
