"""Write resolved secrets to an owner-only directory for child processes."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from bootlayer.config.secrets import SecretResolver, SecretSpec, _sanitize_path
from bootlayer.core.errors import ConfigurationError, SecretNotFoundError

logger = structlog.get_logger()

DIR_MODE = 0o700
FILE_MODE = 0o600


@dataclass
class MaterializedSecrets:
    """Files written by the materializer and the matching environment."""

    directory: Path
    files: dict[str, Path] = field(default_factory=dict)
    env: dict[str, str] = field(default_factory=dict)


class SecretMaterializer:
    """Resolves every required secret, then persists all of them or none."""

    def __init__(self, resolver: SecretResolver, directory: Path):
        self.resolver = resolver
        self.directory = directory

    def materialize(
        self,
        specs: list[SecretSpec],
        explicit: dict[str, str] | None = None,
    ) -> MaterializedSecrets:
        explicit = explicit or {}
        resolved: dict[str, tuple[SecretSpec, str]] = {}
        missing: list[str] = []

        for spec in specs:
            value = self.resolver.resolve_optional(
                spec.name, spec.env_name, explicit=explicit.get(spec.name)
            )
            if value:
                resolved[spec.name] = (spec, value)
            elif spec.required:
                missing.append(spec.name)

        if missing:
            sources = ["explicit argument", *self.resolver.source_names()]
            logger.error("secret_materialization_failed", missing=missing)
            raise SecretNotFoundError(missing, sources)

        result = MaterializedSecrets(directory=self.directory)
        self._prepare_directory()

        try:
            for name, (spec, value) in resolved.items():
                path = self.directory / name
                result.files[name] = path
                _write_private(path, value)
                result.env[spec.env_name] = value
        except OSError as e:
            for path in result.files.values():
                path.unlink(missing_ok=True)
            raise ConfigurationError(
                f"Could not write secret files to {self.directory}: {e}",
                details={"directory": str(self.directory)},
            ) from e

        logger.info(
            "secrets_materialized",
            count=len(result.files),
            names=[_sanitize_path(n) for n in result.files],
            directory=str(self.directory),
        )
        return result

    def _prepare_directory(self) -> None:
        try:
            self.directory.mkdir(parents=True, exist_ok=True, mode=DIR_MODE)
            os.chmod(self.directory, DIR_MODE)
        except OSError as e:
            raise ConfigurationError(
                f"Could not create secrets directory {self.directory}: {e}",
                details={"directory": str(self.directory)},
            ) from e


def _write_private(path: Path, value: str) -> None:
    """Create ``path`` with owner-only permissions before any byte is written."""
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, FILE_MODE)
    try:
        os.fchmod(fd, FILE_MODE)
        os.write(fd, value.encode("utf-8"))
    finally:
        os.close(fd)
