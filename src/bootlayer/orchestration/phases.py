"""Phase definitions and the script-backed phase builder."""

from __future__ import annotations

import os
import shlex
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Sequence

import structlog

from bootlayer.config.loader import PhaseConfig, ProvisionConfig
from bootlayer.core.errors import ConfigurationError, ProviderError

logger = structlog.get_logger()

BASE_ENV_KEYS = ("PATH", "HOME", "LANG")
OUTPUT_TAIL_LINES = 20


@dataclass
class PhaseContext:
    """What a phase action gets to see.

    ``env`` holds only the secret values the phase declared it needs.
    """

    phase: str
    env: Dict[str, str] = field(default_factory=dict)
    work_dir: Optional[Path] = None
    config: Optional[ProvisionConfig] = None
    logger: Any = None

    def __post_init__(self) -> None:
        if self.logger is None:
            self.logger = structlog.get_logger().bind(phase=self.phase)


@dataclass
class Phase:
    """One ordered unit of host configuration."""

    name: str
    action: Callable[[PhaseContext], Any]
    is_applied: Optional[Callable[[PhaseContext], bool]] = None
    required_env: Sequence[str] = ()
    optional_env: Sequence[str] = ()
    compensate: Optional[Callable[[PhaseContext], Any]] = None

    @property
    def reversible(self) -> bool:
        return self.compensate is not None


def _tail(output: str | None) -> str:
    if not output:
        return ""
    return "\n".join(output.strip().splitlines()[-OUTPUT_TAIL_LINES:])


class ScriptPhase:
    """Runs a script from the extracted bundle as a phase.

    The optional ``check`` command exits 0 when the phase is already applied;
    the optional ``rollback`` script undoes it.
    """

    def __init__(
        self,
        config: PhaseConfig,
        required_env: Sequence[str] = (),
        optional_env: Sequence[str] = (),
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
        base_env: Mapping[str, str] | None = None,
    ):
        self.config = config
        self.required_env = tuple(required_env)
        self.optional_env = tuple(optional_env)
        self._runner = runner
        self._base_env = os.environ if base_env is None else base_env

    @classmethod
    def from_config(
        cls, phase: PhaseConfig, provision: ProvisionConfig, **kwargs: Any
    ) -> ScriptPhase:
        """Resolve the phase's secret names to the env variables it will receive."""
        specs = [provision.secret(name) for name in phase.secrets]
        return cls(
            phase,
            required_env=[s.env_name for s in specs if s.required],
            optional_env=[s.env_name for s in specs if not s.required],
            **kwargs,
        )

    def _environment(self, ctx: PhaseContext) -> Dict[str, str]:
        env = {k: self._base_env[k] for k in BASE_ENV_KEYS if k in self._base_env}
        env.update(ctx.env)
        return env

    def _script_path(self, ctx: PhaseContext, script: str) -> Path:
        if ctx.work_dir is None:
            raise ConfigurationError(
                f"Phase '{self.config.name}' has no bundle work directory",
                details={"phase": self.config.name},
            )
        path = ctx.work_dir / script
        if not path.is_file():
            raise ConfigurationError(
                f"Script '{script}' not found in bundle",
                details={"phase": self.config.name, "path": str(path)},
            )
        return path

    def _run_script(self, ctx: PhaseContext, script: str) -> None:
        path = self._script_path(ctx, script)
        ctx.logger.info("script_started", script=script)
        try:
            completed = self._runner(
                [str(path)],
                cwd=ctx.work_dir,
                env=self._environment(ctx),
                check=True,
                capture_output=True,
                text=True,
                timeout=self.config.timeout,
            )
        except subprocess.CalledProcessError as e:
            ctx.logger.warning(
                "script_failed",
                script=script,
                returncode=e.returncode,
                stderr=_tail(e.stderr),
            )
            raise ProviderError(
                f"{script} exited with status {e.returncode}",
                details={"phase": self.config.name},
            ) from e
        except subprocess.TimeoutExpired as e:
            raise ProviderError(
                f"{script} timed out after {e.timeout}s",
                details={"phase": self.config.name},
            ) from e

        ctx.logger.debug("script_output", script=script, stdout=_tail(completed.stdout))

    def action(self, ctx: PhaseContext) -> None:
        self._run_script(ctx, self.config.script)

    def is_applied(self, ctx: PhaseContext) -> bool:
        try:
            completed = self._runner(
                shlex.split(self.config.check),
                cwd=ctx.work_dir,
                env=self._environment(ctx),
                capture_output=True,
                text=True,
                timeout=self.config.timeout,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            ctx.logger.warning("phase_check_unavailable", check=self.config.check, error=str(e))
            return False
        return completed.returncode == 0

    def compensate(self, ctx: PhaseContext) -> None:
        self._run_script(ctx, self.config.rollback)

    def as_phase(self) -> Phase:
        return Phase(
            name=self.config.name,
            action=self.action,
            is_applied=self.is_applied if self.config.check else None,
            required_env=self.required_env,
            optional_env=self.optional_env,
            compensate=self.compensate if self.config.rollback else None,
        )


def build_phases(provision: ProvisionConfig, **kwargs: Any) -> list[Phase]:
    """Phases declared in a provisioning file, in order."""
    return [ScriptPhase.from_config(p, provision, **kwargs).as_phase() for p in provision.phases]
