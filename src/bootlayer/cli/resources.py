"""
CLI commands for cloud resource reconciliation.

Commands:
    bootlayer plan     - Show which resources exist and which would be created
    bootlayer apply    - Create the missing resources after confirmation
    bootlayer destroy  - Delete the declared resources, last declared first
"""

from __future__ import annotations

import subprocess
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Callable, List, Optional, Tuple

from bootlayer.cli.ux import (
    console,
    error,
    header,
    info,
    is_interactive,
    print_rollback_report,
    print_table,
    spinner,
    success,
    warning,
)
from bootlayer.cli.ux import confirm as confirm_prompt
from bootlayer.config.loader import ProjectConfig, ResourceConfig, load_provision_config
from bootlayer.config.settings import Settings, get_settings
from bootlayer.core.errors import (
    ConfigurationError,
    ExitCode,
    ResourceCreationError,
    main_with_error_handling,
)
from bootlayer.orchestration import ApplyResult, DestroyResult
from bootlayer.reconcile import ResourcePlan, ResourceReconciler, build_resource, label
from bootlayer.retry import RetryExecutor


def _log_path() -> str:
    return str(get_settings().log_file)


@dataclass
class ResourceArgs:
    """Named resource parameters accepted on the command line."""

    project: Optional[str] = None
    zone: Optional[str] = None
    region: Optional[str] = None
    vm_name: Optional[str] = None
    firewall_rule: Optional[str] = None
    tags: Optional[str] = None
    repo_name: Optional[str] = None
    repo_location: Optional[str] = None
    bucket: Optional[str] = None
    service_account: Optional[str] = None
    static_ip: Optional[str] = None

    @classmethod
    def from_namespace(cls, args: Any) -> ResourceArgs:
        return cls(**{f.name: getattr(args, f.name, None) for f in fields(cls)})


def resources_from_args(args: ResourceArgs) -> List[ResourceConfig]:
    """Resources named on the command line, in creation order."""
    resources = []
    if args.static_ip:
        resources.append(ResourceConfig("static-ip", args.static_ip))
    if args.service_account:
        resources.append(ResourceConfig("service-account", args.service_account))
    if args.bucket:
        resources.append(ResourceConfig("bucket", args.bucket))
    if args.vm_name:
        params: dict[str, Any] = {}
        if args.tags:
            params["tags"] = args.tags
        if args.static_ip:
            params["address"] = args.static_ip
        if args.service_account and args.project:
            params["service_account"] = (
                f"{args.service_account}@{args.project}.iam.gserviceaccount.com"
            )
        resources.append(ResourceConfig("vm", args.vm_name, params))
    if args.firewall_rule:
        params = {"tags": args.tags} if args.tags else {}
        resources.append(ResourceConfig("firewall-rule", args.firewall_rule, params))
    if args.repo_name:
        params = {"location": args.repo_location} if args.repo_location else {}
        resources.append(ResourceConfig("artifact-registry", args.repo_name, params))
    return resources


def load_resources(
    config_path: Optional[str | Path], args: ResourceArgs
) -> Tuple[ProjectConfig, List[ResourceConfig]]:
    """Merge a provisioning file's resources with command-line ones."""
    project = ProjectConfig()
    resources: List[ResourceConfig] = []
    if config_path:
        config = load_provision_config(config_path)
        project = config.project
        resources.extend(config.resources)

    project = ProjectConfig(
        id=args.project or project.id,
        zone=args.zone or project.zone,
        region=args.region or project.region,
    )
    resources.extend(resources_from_args(args))

    if not resources:
        raise ConfigurationError("No resources declared: pass --config or resource names")
    if not project.id:
        raise ConfigurationError("No GCP project: pass --project or set project.id")
    return project, resources


def _reconciler(
    config_path: Optional[str | Path],
    args: ResourceArgs,
    settings: Settings,
    runner: Optional[Callable[..., subprocess.CompletedProcess]],
) -> ResourceReconciler:
    project, configs = load_resources(config_path, args)
    resources = [build_resource(c, project, runner=runner or subprocess.run) for c in configs]
    return ResourceReconciler(resources, RetryExecutor(settings.retry_policy()))


def _probe(reconciler: ResourceReconciler) -> ResourcePlan:
    with spinner(f"Checking {len(reconciler.resources)} resource(s)..."):
        return reconciler.plan()


def print_plan(plan: ResourcePlan) -> None:
    """Print per-resource classification and counts."""
    rows = [[label(r), "[dim]exists, skip[/dim]"] for r in plan.to_skip]
    rows += [[label(r), "[green]+ create[/green]"] for r in plan.to_create]
    print_table("Resource plan", ["Resource", "Action"], rows)
    console.print(
        f"[bold]{len(plan.to_create)} to create[/bold], {len(plan.to_skip)} already exist"
    )


def print_apply_summary(result: ApplyResult) -> None:
    """Print clean apply summary with rich formatting."""
    console.print()
    for name in result.created:
        console.print(f"  [green]✓ {name:<32}[/green] created")
    for name in result.skipped:
        console.print(f"  [dim]• {name:<32}[/dim] already exists")
    console.print()
    duration = f" in {result.duration_seconds:.1f}s" if result.duration_seconds > 0 else ""
    console.print(
        f"[bold green]Created {result.total_resources} resource(s){duration}[/bold green]"
    )


def print_destroy_summary(result: DestroyResult) -> None:
    console.print()
    for name in result.deleted:
        console.print(f"  [green]✓ {name:<32}[/green] deleted")
    for name, reason in result.failed.items():
        console.print(f"  [red]✗ {name:<32}[/red] {reason}")
    console.print()


@main_with_error_handling(log_file=_log_path)
def plan_command(
    config_path: Optional[str | Path] = None,
    args: Optional[ResourceArgs] = None,
    settings: Optional[Settings] = None,
    runner: Optional[Callable[..., subprocess.CompletedProcess]] = None,
) -> int:
    """Classify each declared resource as existing or to-create."""
    settings = settings or get_settings()
    reconciler = _reconciler(config_path, args or ResourceArgs(), settings, runner)

    header("Resource plan")
    print_plan(_probe(reconciler))
    return ExitCode.SUCCESS


@main_with_error_handling(log_file=_log_path)
def apply_command(
    config_path: Optional[str | Path] = None,
    args: Optional[ResourceArgs] = None,
    assume_yes: bool = False,
    non_interactive: bool = False,
    settings: Optional[Settings] = None,
    runner: Optional[Callable[..., subprocess.CompletedProcess]] = None,
) -> int:
    """Create every declared resource that does not exist yet.

    Unattended runs (``--non-interactive`` or BOOTLAYER_NON_INTERACTIVE)
    proceed without asking. Without either flag, a run that cannot prompt
    needs ``--yes``.
    """
    settings = settings or get_settings()
    reconciler = _reconciler(config_path, args or ResourceArgs(), settings, runner)

    header("Resource plan")
    plan = _probe(reconciler)
    print_plan(plan)

    if not plan.has_changes:
        success("All resources already exist; nothing to create")
        return ExitCode.SUCCESS

    unattended = non_interactive or settings.non_interactive
    if not (assume_yes or unattended):
        if not is_interactive():
            warning("Confirmation required: re-run with --yes to create resources")
            return ExitCode.WARNING
        if not confirm_prompt(f"Create {len(plan.to_create)} resource(s)?", default=False):
            warning("Aborted by operator")
            return ExitCode.WARNING

    info(f"Creating {len(plan.to_create)} resource(s)...")
    try:
        result = reconciler.apply(plan)
    except ResourceCreationError as e:
        if e.rollback is not None:
            console.print()
            print_rollback_report(e.rollback)
        raise

    print_apply_summary(result)
    return ExitCode.SUCCESS


@main_with_error_handling(log_file=_log_path)
def destroy_command(
    config_path: Optional[str | Path] = None,
    args: Optional[ResourceArgs] = None,
    assume_yes: bool = False,
    settings: Optional[Settings] = None,
    runner: Optional[Callable[..., subprocess.CompletedProcess]] = None,
) -> int:
    """Delete every declared resource, last declared first.

    Deletion always needs ``--yes`` or an interactive confirmation;
    unattended mode alone never tears anything down.
    """
    settings = settings or get_settings()
    reconciler = _reconciler(config_path, args or ResourceArgs(), settings, runner)

    header("Resource teardown")
    rows = [[label(r), "[red]- delete[/red]"] for r in reversed(reconciler.resources)]
    print_table("Resources", ["Resource", "Action"], rows)

    if not assume_yes:
        if settings.non_interactive or not is_interactive():
            warning("Confirmation required: re-run with --yes to delete resources")
            return ExitCode.WARNING
        if not confirm_prompt(f"Delete {len(rows)} resource(s)?", default=False):
            warning("Aborted by operator")
            return ExitCode.WARNING

    with spinner(f"Deleting {len(rows)} resource(s)..."):
        result = reconciler.destroy()

    print_destroy_summary(result)
    if not result.success:
        error(f"{len(result.failed)} resource(s) could not be deleted; see {settings.log_file}")
        return ExitCode.PROVIDER_ERROR
    return ExitCode.SUCCESS
