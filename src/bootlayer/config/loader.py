"""
Provisioning file loading.

A provisioning file declares everything a run needs: the secrets to
materialize, the artifact bundle, the ordered phases and the cloud
resources the operator-side commands reconcile.

    namespace: freehost
    project:
      id: my-project
      zone: us-west1-a
    secrets:
      - name: duckdns-token
        env: DUCKDNS_TOKEN
    bundle:
      uri: gs://my-bucket/vm-setup.tar.gz
      checksum: 9e107d9d372bb6826bd81d3542a419d6
    phases:
      - name: swap
        script: host-01-create-swap.sh
        check: grep -q /swapfile /etc/fstab
      - name: duckdns
        script: host-02-setup-duckdns.sh
        secrets: [duckdns-token]
    resources:
      - kind: vm
        name: free-tier-vm
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
import yaml

from bootlayer.config.secrets import SecretSpec
from bootlayer.core.errors import ConfigurationError

logger = structlog.get_logger()

NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")
CHECKSUM_ALGORITHMS = ("md5", "sha1", "sha256", "sha512")


@dataclass
class BundleConfig:
    uri: str
    checksum: str
    algorithm: str = "md5"
    cache_path: Path | None = None


@dataclass
class PhaseConfig:
    name: str
    script: str
    check: str | None = None
    rollback: str | None = None
    secrets: list[str] = field(default_factory=list)
    timeout: float | None = None


@dataclass
class ResourceConfig:
    kind: str
    name: str
    params: dict[str, Any] = field(default_factory=dict)


@dataclass
class ProjectConfig:
    id: str | None = None
    zone: str | None = None
    region: str | None = None

    @property
    def effective_region(self) -> str | None:
        """Region, derived from the zone (``us-west1-a`` -> ``us-west1``) if unset."""
        if self.region:
            return self.region
        if self.zone and "-" in self.zone:
            return self.zone.rsplit("-", 1)[0]
        return None


@dataclass
class ProvisionConfig:
    """Explicit configuration passed down to every component."""

    namespace: str | None = None
    project: ProjectConfig = field(default_factory=ProjectConfig)
    secrets: list[SecretSpec] = field(default_factory=list)
    bundle: BundleConfig | None = None
    phases: list[PhaseConfig] = field(default_factory=list)
    resources: list[ResourceConfig] = field(default_factory=list)
    source: Path | None = None

    def secret(self, name: str) -> SecretSpec:
        for spec in self.secrets:
            if spec.name == name:
                return spec
        raise ConfigurationError(f"Unknown secret '{name}'", details={"secret": name})


def _require(data: dict[str, Any], key: str, where: str) -> Any:
    value = data.get(key)
    if value in (None, ""):
        raise ConfigurationError(f"Missing '{key}' in {where}", details={"key": f"{where}.{key}"})
    return value


def _check_name(name: str, where: str) -> str:
    if not isinstance(name, str) or not NAME_PATTERN.match(name):
        raise ConfigurationError(f"Invalid name {name!r} in {where}", details={"key": where})
    return name


def _parse_secrets(items: list[Any]) -> list[SecretSpec]:
    specs = []
    for i, item in enumerate(items):
        where = f"secrets[{i}]"
        if isinstance(item, str):
            item = {"name": item}
        if not isinstance(item, dict):
            raise ConfigurationError(f"Expected a mapping in {where}", details={"key": where})
        specs.append(
            SecretSpec(
                name=_check_name(_require(item, "name", where), where),
                env=item.get("env"),
                required=bool(item.get("required", True)),
            )
        )
    return specs


def _parse_bundle(data: dict[str, Any]) -> BundleConfig:
    algorithm = str(data.get("algorithm", "md5")).lower()
    if algorithm not in CHECKSUM_ALGORITHMS:
        raise ConfigurationError(
            f"Unsupported checksum algorithm '{algorithm}'", details={"key": "bundle.algorithm"}
        )
    cache_path = data.get("cache_path")
    return BundleConfig(
        uri=str(_require(data, "uri", "bundle")),
        checksum=str(_require(data, "checksum", "bundle")).strip().lower(),
        algorithm=algorithm,
        cache_path=Path(cache_path) if cache_path else None,
    )


def _parse_phases(items: list[Any], secret_names: set[str]) -> list[PhaseConfig]:
    phases = []
    seen: set[str] = set()
    for i, item in enumerate(items):
        where = f"phases[{i}]"
        if not isinstance(item, dict):
            raise ConfigurationError(f"Expected a mapping in {where}", details={"key": where})
        name = _check_name(_require(item, "name", where), where)
        if name in seen:
            raise ConfigurationError(f"Duplicate phase '{name}'", details={"key": where})
        seen.add(name)

        secrets = list(item.get("secrets") or [])
        unknown = [s for s in secrets if s not in secret_names]
        if unknown:
            raise ConfigurationError(
                f"Phase '{name}' uses undeclared secret(s): {', '.join(unknown)}",
                details={"key": f"{where}.secrets"},
            )

        phases.append(
            PhaseConfig(
                name=name,
                script=str(_require(item, "script", where)),
                check=item.get("check"),
                rollback=item.get("rollback"),
                secrets=secrets,
                timeout=item.get("timeout"),
            )
        )
    return phases


def _parse_resources(items: list[Any]) -> list[ResourceConfig]:
    resources = []
    for i, item in enumerate(items):
        where = f"resources[{i}]"
        if not isinstance(item, dict):
            raise ConfigurationError(f"Expected a mapping in {where}", details={"key": where})
        params = {k: v for k, v in item.items() if k not in ("kind", "name")}
        resources.append(
            ResourceConfig(
                kind=str(_require(item, "kind", where)),
                name=str(_require(item, "name", where)),
                params=params,
            )
        )
    return resources


def parse_provision_config(data: dict[str, Any], source: Path | None = None) -> ProvisionConfig:
    """Build a ``ProvisionConfig`` from already-parsed YAML data."""
    if not isinstance(data, dict):
        raise ConfigurationError("Provisioning file must contain a mapping")

    secrets = _parse_secrets(data.get("secrets") or [])
    project = data.get("project") or {}
    bundle = data.get("bundle")

    return ProvisionConfig(
        namespace=data.get("namespace"),
        project=ProjectConfig(
            id=project.get("id"),
            zone=project.get("zone"),
            region=project.get("region"),
        ),
        secrets=secrets,
        bundle=_parse_bundle(bundle) if bundle else None,
        phases=_parse_phases(data.get("phases") or [], {s.name for s in secrets}),
        resources=_parse_resources(data.get("resources") or []),
        source=source,
    )


def load_provision_config(path: str | Path) -> ProvisionConfig:
    """Load a provisioning YAML file."""
    path = Path(path)
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError as e:
        raise ConfigurationError(
            f"Provisioning file not found: {path}", details={"path": str(path)}
        ) from e
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Provisioning file is not valid YAML: {e}", details={"path": str(path)}
        ) from e

    config = parse_provision_config(data, source=path)
    logger.debug(
        "loaded_provision_config",
        path=str(path),
        phases=len(config.phases),
        resources=len(config.resources),
    )
    return config
