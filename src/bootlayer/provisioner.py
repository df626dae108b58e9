"""
Host provisioning entry point.

Builds the secret resolver, artifact fetcher, marker store and phase
sequencer from ``Settings`` plus a ``ProvisionConfig`` and runs them.
"""

from __future__ import annotations

import dataclasses
import subprocess
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional
from urllib.parse import urlparse

import structlog

from bootlayer.artifacts import ArtifactFetcher, BundleSpec
from bootlayer.config.loader import ProvisionConfig
from bootlayer.config.secrets import SecretResolver
from bootlayer.config.secrets.materialize import SecretMaterializer
from bootlayer.config.settings import Settings
from bootlayer.core.errors import ConfigurationError
from bootlayer.orchestration import (
    FileMarkerStore,
    MarkerStore,
    PhaseSequencer,
    PhaseState,
    PreparedEnvironment,
    SequenceResult,
    build_phases,
    states,
)
from bootlayer.retry import RetryExecutor

logger = structlog.get_logger()


class HostProvisioner:
    """Runs the phases of one provisioning file against this host."""

    def __init__(
        self,
        settings: Settings,
        config: ProvisionConfig,
        resolver: Optional[SecretResolver] = None,
        fetcher: Optional[ArtifactFetcher] = None,
        markers: Optional[MarkerStore] = None,
        executor: Optional[RetryExecutor] = None,
        runner: Any = subprocess.run,
        explicit_secrets: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.settings = settings
        self.config = config
        self.namespace = config.namespace or settings.namespace
        self.executor = executor or RetryExecutor(settings.retry_policy())

        project_id = settings.gcp_project_id or config.project.id
        secret_config = dataclasses.replace(settings.secret_config(), gcp_project_id=project_id)
        self.resolver = resolver or SecretResolver(secret_config)
        self.fetcher = fetcher or ArtifactFetcher(
            self.executor.with_policy(settings.download_policy()), project=project_id
        )
        self.markers = markers or FileMarkerStore(settings.state_dir, self.namespace)
        self._runner = runner
        self._explicit = dict(explicit_secrets or {})

    def bundle_spec(self) -> Optional[BundleSpec]:
        bundle = self.config.bundle
        if bundle is None:
            return None
        cache_path = bundle.cache_path
        if cache_path is None:
            filename = Path(urlparse(bundle.uri).path).name or f"{self.namespace}-bundle.tar.gz"
            cache_path = self.settings.cache_dir / filename
        return BundleSpec(
            uri=bundle.uri,
            checksum=bundle.checksum,
            cache_path=cache_path,
            algorithm=bundle.algorithm,
        )

    def preflight(self) -> PreparedEnvironment:
        """Materialize secrets and fetch the bundle; nothing runs if either fails."""
        materializer = SecretMaterializer(self.resolver, self.settings.secrets_dir)
        secrets = self.executor.run(
            lambda: materializer.materialize(self.config.secrets, self._explicit),
            "materialize secrets",
        )

        work_dir = None
        spec = self.bundle_spec()
        if spec is not None:
            work_dir = self.fetcher.fetch(spec, self.settings.work_dir)
        elif self.config.phases:
            raise ConfigurationError(
                "Phases are declared but no bundle is configured",
                details={"key": "bundle"},
            )

        files = {
            spec.env_name: secrets.files[spec.name]
            for spec in self.config.secrets
            if spec.name in secrets.files
        }
        return PreparedEnvironment(env=secrets.env, work_dir=work_dir, secret_files=files)

    def sequencer(self, skip: Iterable[str] = ()) -> PhaseSequencer:
        return PhaseSequencer(
            build_phases(self.config, runner=self._runner),
            self.markers,
            executor=self.executor,
            skip=skip,
            rollback_scope=self.settings.rollback_scope,
            config=self.config,
        )

    def provision(self, skip: Iterable[str] = ()) -> SequenceResult:
        logger.info(
            "provision_started",
            namespace=self.namespace,
            phases=len(self.config.phases),
            source=str(self.config.source) if self.config.source else None,
        )
        return self.sequencer(skip).run(self.preflight)

    def status(self) -> Dict[str, PhaseState]:
        return states(self.markers, [p.name for p in self.config.phases])

    def reset(self, phases: Optional[Iterable[str]] = None) -> List[str]:
        """Clear markers so the named phases (or all of them) run again."""
        declared = [p.name for p in self.config.phases]
        targets = declared if phases is None else list(phases)
        unknown = sorted(set(targets) - set(declared))
        if unknown:
            raise ConfigurationError(
                f"Unknown phase(s): {', '.join(unknown)}", details={"phases": ", ".join(unknown)}
            )

        for name in targets:
            self.markers.clear(name)
        self.markers.clear_complete()
        logger.info("markers_reset", namespace=self.namespace, phases=targets)
        return targets
