"""
Secret resolution through an ordered chain of sources.

Resolution order (first non-empty value wins):
1. Explicit argument (CLI flag or constructor value)
2. Remote secret store (Google Cloud Secret Manager, loaded on demand)
3. Environment variable
4. Local fallback config file (KEY=VALUE lines, parsed, never executed)
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Mapping

import structlog
from dotenv import dotenv_values

from bootlayer.core.errors import SecretNotFoundError

logger = structlog.get_logger()


class SecretBackend(StrEnum):
    """Supported secret sources."""

    ARG = "arg"
    GCP = "gcp"
    ENV = "env"
    FILE = "file"


DEFAULT_ORDER = [SecretBackend.GCP, SecretBackend.ENV, SecretBackend.FILE]


def default_env_name(name: str) -> str:
    """Environment variable conventionally holding secret ``name``."""
    return name.replace("-", "_").replace("/", "_").upper()


def _sanitize_path(path: str) -> str:
    """Mask a secret name for logging."""
    if len(path) <= 2:
        return "***"
    if "/" in path:
        return f"{path.split('/')[0]}/***"
    return f"{path[:2]}***"


@dataclass(frozen=True)
class SecretSpec:
    """A secret the host bootstrap needs."""

    name: str
    env: str | None = None
    required: bool = True

    @property
    def env_name(self) -> str:
        return self.env or default_env_name(self.name)


@dataclass
class SecretConfig:
    """Configuration for secrets resolution."""

    order: list[SecretBackend] = field(default_factory=lambda: list(DEFAULT_ORDER))

    # GCP config
    gcp_project_id: str | None = None
    gcp_secret_prefix: str = ""

    # File config
    fallback_file: Path | None = None


class BaseSecretBackend(ABC):
    """Base class for secret sources.

    ``keyed_by_env`` backends are looked up with the environment variable
    name, the others with the secret name.
    """

    source: SecretBackend
    keyed_by_env: bool = False

    @abstractmethod
    def get_secret(self, key: str) -> str | None:
        """Return the value for ``key`` or None when unavailable."""

    @abstractmethod
    def describe(self, key: str) -> str:
        """Human-readable location of ``key`` for diagnostics."""


class EnvSecretBackend(BaseSecretBackend):
    """Environment variable secret backend."""

    source = SecretBackend.ENV
    keyed_by_env = True

    def __init__(self, environ: Mapping[str, str] | None = None):
        self._environ = environ

    def get_secret(self, key: str) -> str | None:
        environ = self._environ if self._environ is not None else os.environ
        return environ.get(key) or None

    def describe(self, key: str) -> str:
        return f"environment variable {key}"


class FileSecretBackend(BaseSecretBackend):
    """KEY=VALUE fallback file, parsed without evaluating any of it."""

    source = SecretBackend.FILE
    keyed_by_env = True

    def __init__(self, path: Path):
        self.path = path
        self._cache: dict[str, str | None] | None = None

    def _load(self) -> dict[str, str | None]:
        if self._cache is not None:
            return self._cache

        if not self.path.exists():
            self._cache = {}
            return self._cache

        try:
            self._cache = dict(dotenv_values(self.path, interpolate=False))
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(
                "failed_to_load_fallback_file",
                file=str(self.path),
                error=type(e).__name__,
            )
            self._cache = {}

        return self._cache

    def get_secret(self, key: str) -> str | None:
        return self._load().get(key) or None

    def describe(self, key: str) -> str:
        return f"{key} in {self.path}"


def _load_cloud_backend(
    backend_type: SecretBackend, config: SecretConfig
) -> BaseSecretBackend | None:
    """Lazy-load a cloud backend. Returns None if dependencies not available."""
    try:
        if backend_type == SecretBackend.GCP:
            from bootlayer.config.secrets.backends import GCPSecretBackend

            return GCPSecretBackend(config)
    except ImportError as e:
        logger.debug(f"{backend_type}_backend_unavailable", reason=str(e))
    return None


class SecretResolver:
    """Resolves secrets from multiple sources in a fixed order."""

    def __init__(
        self,
        config: SecretConfig | None = None,
        backends: dict[SecretBackend, BaseSecretBackend] | None = None,
    ):
        self.config = config or SecretConfig()
        self._backends: dict[SecretBackend, BaseSecretBackend] = {}
        if backends is not None:
            self._backends.update(backends)
        else:
            self._init_backends()

    def _init_backends(self) -> None:
        """Initialize configured backends."""
        self._backends[SecretBackend.ENV] = EnvSecretBackend()

        if self.config.fallback_file is not None:
            self._backends[SecretBackend.FILE] = FileSecretBackend(self.config.fallback_file)

        if self.config.gcp_project_id:
            backend = _load_cloud_backend(SecretBackend.GCP, self.config)
            if backend:
                self._backends[SecretBackend.GCP] = backend

    def source_names(self) -> list[str]:
        """Names of the configured sources, in resolution order."""
        return [str(b) for b in self.config.order if b in self._backends]

    def _chain(self) -> list[BaseSecretBackend]:
        return [self._backends[b] for b in self.config.order if b in self._backends]

    def _sources(self, name: str, env_name: str, explicit: bool) -> list[str]:
        sources = ["explicit argument"] if explicit else []
        for source in self.config.order:
            backend = self._backends.get(source)
            if backend is None:
                sources.append(f"{source} (not configured)")
                continue
            key = env_name if backend.keyed_by_env else name
            sources.append(backend.describe(key))
        return sources

    def lookup(
        self,
        name: str,
        env_fallback_name: str | None = None,
        explicit: str | None = None,
    ) -> tuple[str, SecretBackend] | None:
        """Return ``(value, source)`` for the first source holding ``name``."""
        if explicit:
            return explicit, SecretBackend.ARG

        env_name = env_fallback_name or default_env_name(name)
        for backend in self._chain():
            key = env_name if backend.keyed_by_env else name
            value = backend.get_secret(key)
            if value:
                logger.debug(
                    "secret_resolved", secret=_sanitize_path(name), source=str(backend.source)
                )
                return value, backend.source
        return None

    def resolve(
        self,
        name: str,
        env_fallback_name: str | None = None,
        explicit: str | None = None,
    ) -> str:
        """Resolve ``name`` or raise ``SecretNotFoundError``."""
        found = self.lookup(name, env_fallback_name, explicit)
        if found is None:
            env_name = env_fallback_name or default_env_name(name)
            sources = self._sources(name, env_name, explicit=explicit is not None)
            logger.warning("secret_not_found", secret=_sanitize_path(name), sources=sources)
            raise SecretNotFoundError([name], sources)
        return found[0]

    def resolve_optional(
        self,
        name: str,
        env_fallback_name: str | None = None,
        explicit: str | None = None,
    ) -> str | None:
        found = self.lookup(name, env_fallback_name, explicit)
        return found[0] if found else None

    def verify(self, specs: list[SecretSpec]) -> dict[str, tuple[bool, str | None]]:
        """Verify that secrets resolve and report the source of each.

        Returns:
            Dict mapping secret name to (found, source_name) tuple
        """
        results: dict[str, tuple[bool, str | None]] = {}
        for spec in specs:
            found = self.lookup(spec.name, spec.env_name)
            results[spec.name] = (True, str(found[1])) if found else (False, None)
        return results


__all__ = [
    "SecretBackend",
    "SecretConfig",
    "SecretSpec",
    "BaseSecretBackend",
    "EnvSecretBackend",
    "FileSecretBackend",
    "SecretResolver",
    "default_env_name",
]
