"""Durable per-phase state markers."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import StrEnum
from pathlib import Path
from typing import Dict, Iterable, Protocol, runtime_checkable

import structlog

from bootlayer.core.errors import ConfigurationError

logger = structlog.get_logger()


class PhaseState(StrEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


@runtime_checkable
class MarkerStore(Protocol):
    """Phase name -> ``PhaseState`` plus the global completion flag."""

    def state(self, phase: str) -> PhaseState: ...

    def mark_completed(self, phase: str) -> None: ...

    def mark_failed(self, phase: str) -> None: ...

    def clear(self, phase: str) -> None: ...

    def is_complete(self) -> bool: ...

    def mark_complete(self) -> None: ...

    def clear_complete(self) -> None: ...


def states(store: MarkerStore, phases: Iterable[str]) -> Dict[str, PhaseState]:
    """Snapshot of ``phases`` in declared order."""
    return {name: store.state(name) for name in phases}


class FileMarkerStore:
    """Markers as empty-ish files under ``state_dir``.

    ``<state_dir>/<namespace>-<phase>-complete`` and ``-failed`` per phase,
    ``<state_dir>/<namespace>-complete`` for the whole sequence.
    """

    def __init__(self, state_dir: Path, namespace: str):
        if not namespace:
            raise ConfigurationError("Marker namespace cannot be empty")
        self.state_dir = Path(state_dir)
        self.namespace = namespace

    def completion_path(self, phase: str) -> Path:
        return self.state_dir / f"{self.namespace}-{phase}-complete"

    def failure_path(self, phase: str) -> Path:
        return self.state_dir / f"{self.namespace}-{phase}-failed"

    @property
    def global_path(self) -> Path:
        return self.state_dir / f"{self.namespace}-complete"

    def _touch(self, path: Path) -> None:
        self.state_dir.mkdir(parents=True, exist_ok=True)
        path.write_text(datetime.now(timezone.utc).isoformat() + "\n")

    def state(self, phase: str) -> PhaseState:
        # A failure marker wins over a stale completion marker
        if self.failure_path(phase).exists():
            return PhaseState.FAILED
        if self.completion_path(phase).exists():
            return PhaseState.COMPLETED
        return PhaseState.PENDING

    def mark_completed(self, phase: str) -> None:
        self._touch(self.completion_path(phase))

    def mark_failed(self, phase: str) -> None:
        self._touch(self.failure_path(phase))

    def clear(self, phase: str) -> None:
        self.completion_path(phase).unlink(missing_ok=True)
        self.failure_path(phase).unlink(missing_ok=True)

    def is_complete(self) -> bool:
        return self.global_path.exists()

    def mark_complete(self) -> None:
        self._touch(self.global_path)

    def clear_complete(self) -> None:
        self.global_path.unlink(missing_ok=True)


class MemoryMarkerStore:
    """In-process marker store."""

    def __init__(self) -> None:
        self._states: Dict[str, PhaseState] = {}
        self._complete = False

    def state(self, phase: str) -> PhaseState:
        return self._states.get(phase, PhaseState.PENDING)

    def mark_completed(self, phase: str) -> None:
        self._states[phase] = PhaseState.COMPLETED

    def mark_failed(self, phase: str) -> None:
        self._states[phase] = PhaseState.FAILED

    def clear(self, phase: str) -> None:
        self._states.pop(phase, None)

    def is_complete(self) -> bool:
        return self._complete

    def mark_complete(self) -> None:
        self._complete = True

    def clear_complete(self) -> None:
        self._complete = False
