"""
Cloud resources managed through the ``gcloud`` CLI.

Every resource is probed with ``describe``: exit status 0 means it exists,
a NOT_FOUND error means it does not, and anything else (auth, quota,
network) leaves its status unknown.
"""

from __future__ import annotations

import inspect
import subprocess
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Sequence, Tuple

import structlog

from bootlayer.config.loader import ProjectConfig, ResourceConfig
from bootlayer.core.errors import ConfigurationError, ProviderError, ReconcileError

logger = structlog.get_logger()

Runner = Callable[..., subprocess.CompletedProcess]

# compute/iam report NOT_FOUND; gcloud storage reports "gs://b not found: 404."
NOT_FOUND_MARKERS = ("NOT_FOUND", "was not found", "not found: 404")
ALREADY_EXISTS_MARKERS = ("ALREADY_EXISTS", "already exists")

VM_SCOPES = (
    "https://www.googleapis.com/auth/devstorage.read_only",
    "https://www.googleapis.com/auth/logging.write",
    "https://www.googleapis.com/auth/monitoring.write",
    "https://www.googleapis.com/auth/servicecontrol",
    "https://www.googleapis.com/auth/service.management.readonly",
    "https://www.googleapis.com/auth/trace.append",
)


def _contains(text: str | None, markers: Sequence[str]) -> bool:
    return bool(text) and any(m in text for m in markers)


def _csv(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return ",".join(str(v) for v in value)
    return str(value)


@dataclass
class GcloudResource:
    """One resource addressed as ``gcloud <group> <verb> <target>``."""

    kind: str
    name: str
    group: Tuple[str, ...]
    project: str
    target: Optional[str] = None
    create_target: Optional[str] = None
    scope: Tuple[str, ...] = ()
    create_flags: Tuple[str, ...] = ()
    runner: Runner = subprocess.run
    gcloud: str = "gcloud"

    @property
    def identifier(self) -> str:
        return self.target or self.name

    def command(self, verb: str, *extra: str) -> list[str]:
        target = self.create_target if verb == "create" and self.create_target else self.identifier
        return [
            self.gcloud,
            *self.group,
            verb,
            target,
            *self.scope,
            f"--project={self.project}",
            *extra,
        ]

    def _run(self, cmd: list[str]) -> subprocess.CompletedProcess:
        try:
            return self.runner(cmd, capture_output=True, text=True, check=False)
        except FileNotFoundError as e:
            raise ReconcileError(
                f"'{self.gcloud}' is not installed or not on PATH",
                details={"resource": f"{self.kind}/{self.name}"},
            ) from e

    def exists(self) -> bool:
        completed = self._run(self.command("describe", "--format=value(name)"))
        if completed.returncode == 0:
            return True
        if _contains(completed.stderr, NOT_FOUND_MARKERS):
            return False
        raise ReconcileError(
            f"Could not determine whether {self.kind} '{self.name}' exists: "
            f"{(completed.stderr or '').strip() or f'exit status {completed.returncode}'}",
            details={"resource": f"{self.kind}/{self.name}"},
        )

    def create(self) -> None:
        completed = self._run(self.command("create", *self.create_flags))
        if completed.returncode == 0:
            return
        if _contains(completed.stderr, ALREADY_EXISTS_MARKERS):
            logger.info("resource_already_exists", resource=f"{self.kind}/{self.name}")
            return
        raise ProviderError(
            f"gcloud create {self.kind} '{self.name}' failed: {(completed.stderr or '').strip()}",
            details={"resource": f"{self.kind}/{self.name}"},
        )

    def delete(self) -> None:
        completed = self._run(self.command("delete", "--quiet"))
        if completed.returncode == 0 or _contains(completed.stderr, NOT_FOUND_MARKERS):
            return
        raise ProviderError(
            f"gcloud delete {self.kind} '{self.name}' failed: {(completed.stderr or '').strip()}",
            details={"resource": f"{self.kind}/{self.name}"},
        )


def vm_instance(
    name: str,
    project: str,
    zone: str,
    machine_type: str = "e2-micro",
    image_family: str = "debian-12",
    image_project: str = "debian-cloud",
    disk_size_gb: int = 30,
    tags: Any = None,
    address: Optional[str] = None,
    service_account: Optional[str] = None,
    runner: Runner = subprocess.run,
) -> GcloudResource:
    network = "network-tier=STANDARD,stack-type=IPV4_ONLY,subnet=default"
    if address:
        network += f",address={address}"
    flags = [
        f"--machine-type={machine_type}",
        f"--network-interface={network}",
        "--maintenance-policy=MIGRATE",
        f"--scopes={','.join(VM_SCOPES)}",
        (
            "--create-disk=auto-delete=yes,boot=yes,"
            f"image-family={image_family},image-project={image_project},"
            f"mode=rw,size={disk_size_gb},type=pd-standard"
        ),
        "--shielded-vtpm",
        "--shielded-integrity-monitoring",
    ]
    if tags:
        flags.append(f"--tags={_csv(tags)}")
    if service_account:
        flags.append(f"--service-account={service_account}")
    return GcloudResource(
        kind="vm",
        name=name,
        group=("compute", "instances"),
        project=project,
        scope=(f"--zone={zone}",),
        create_flags=tuple(flags),
        runner=runner,
    )


def firewall_rule(
    name: str,
    project: str,
    tags: Any = "http-server,https-server",
    rules: Any = "tcp:80,tcp:443",
    source_ranges: Any = "0.0.0.0/0",
    network: str = "default",
    runner: Runner = subprocess.run,
) -> GcloudResource:
    return GcloudResource(
        kind="firewall-rule",
        name=name,
        group=("compute", "firewall-rules"),
        project=project,
        create_flags=(
            "--description=Allow incoming HTTP and HTTPS traffic",
            "--direction=INGRESS",
            "--priority=1000",
            f"--network={network}",
            "--action=ALLOW",
            f"--rules={_csv(rules)}",
            f"--source-ranges={_csv(source_ranges)}",
            f"--target-tags={_csv(tags)}",
        ),
        runner=runner,
    )


def artifact_registry(
    name: str,
    project: str,
    location: str,
    repository_format: str = "docker",
    runner: Runner = subprocess.run,
) -> GcloudResource:
    return GcloudResource(
        kind="artifact-registry",
        name=name,
        group=("artifacts", "repositories"),
        project=project,
        scope=(f"--location={location}",),
        create_flags=(f"--repository-format={repository_format}",),
        runner=runner,
    )


def static_ip(
    name: str, project: str, region: str, runner: Runner = subprocess.run
) -> GcloudResource:
    return GcloudResource(
        kind="static-ip",
        name=name,
        group=("compute", "addresses"),
        project=project,
        scope=(f"--region={region}",),
        runner=runner,
    )


def service_account(
    name: str,
    project: str,
    display_name: Optional[str] = None,
    runner: Runner = subprocess.run,
) -> GcloudResource:
    # describe/delete take the email, create takes the bare account id
    return GcloudResource(
        kind="service-account",
        name=name,
        group=("iam", "service-accounts"),
        project=project,
        target=f"{name}@{project}.iam.gserviceaccount.com",
        create_target=name,
        create_flags=(f"--display-name={display_name or name}",),
        runner=runner,
    )


def bucket(
    name: str,
    project: str,
    location: str,
    runner: Runner = subprocess.run,
) -> GcloudResource:
    return GcloudResource(
        kind="bucket",
        name=name,
        group=("storage", "buckets"),
        project=project,
        target=f"gs://{name}",
        create_flags=(
            f"--location={location}",
            "--default-storage-class=STANDARD",
            "--uniform-bucket-level-access",
        ),
        runner=runner,
    )


CATALOG: Dict[str, Callable[..., GcloudResource]] = {
    "vm": vm_instance,
    "firewall-rule": firewall_rule,
    "artifact-registry": artifact_registry,
    "static-ip": static_ip,
    "service-account": service_account,
    "bucket": bucket,
}


def build_resource(
    config: ResourceConfig,
    project: ProjectConfig,
    runner: Runner = subprocess.run,
) -> GcloudResource:
    """Instantiate a catalog resource, filling project/zone/region from ``project``."""
    factory = CATALOG.get(config.kind)
    if factory is None:
        raise ConfigurationError(
            f"Unknown resource kind '{config.kind}' (expected one of: {', '.join(CATALOG)})",
            details={"resource": config.name},
        )

    accepted = {
        k: p for k, p in inspect.signature(factory).parameters.items() if k != "runner"
    }
    defaults = {
        "project": project.id,
        "zone": project.zone,
        "region": project.effective_region,
        "location": project.effective_region,
    }
    kwargs: Dict[str, Any] = {k: v for k, v in defaults.items() if k in accepted and v}
    kwargs.update({k.replace("-", "_"): v for k, v in config.params.items()})
    kwargs["name"] = config.name

    unknown = sorted(set(kwargs) - set(accepted))
    if unknown:
        raise ConfigurationError(
            f"Unknown parameter(s) for {config.kind} '{config.name}': {', '.join(unknown)}",
            details={"resource": config.name},
        )
    missing = [
        p.name
        for p in accepted.values()
        if p.default is inspect.Parameter.empty and kwargs.get(p.name) in (None, "")
    ]
    if missing:
        raise ConfigurationError(
            f"Missing parameter(s) for {config.kind} '{config.name}': {', '.join(missing)}",
            details={"resource": config.name},
        )

    return factory(runner=runner, **kwargs)
