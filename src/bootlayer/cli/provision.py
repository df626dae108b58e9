"""
CLI commands for host provisioning.

Commands:
    bootlayer provision --config FILE  - Run every pending phase
    bootlayer status --config FILE     - Show per-phase markers
    bootlayer reset --config FILE      - Clear markers so phases run again
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Optional

from bootlayer.cli.ux import (
    confirm,
    console,
    error,
    header,
    info,
    is_interactive,
    print_rollback_report,
    print_table,
    success,
    warning,
)
from bootlayer.config.loader import load_provision_config
from bootlayer.config.settings import Settings, get_settings
from bootlayer.core.errors import ExitCode, PhaseFailedError, main_with_error_handling
from bootlayer.orchestration import PhaseState, SequenceResult, SequenceStatus
from bootlayer.provisioner import HostProvisioner

STATE_STYLES = {
    PhaseState.COMPLETED: "[green]completed[/green]",
    PhaseState.FAILED: "[red]failed[/red]",
    PhaseState.PENDING: "[dim]pending[/dim]",
}


def _log_path() -> str:
    return str(get_settings().log_file)


def _should_prompt(settings: Settings, non_interactive: bool, assume_yes: bool) -> bool:
    return not (non_interactive or assume_yes or settings.non_interactive) and is_interactive()


def print_sequence_summary(result: SequenceResult) -> None:
    """Print clean provisioning summary with rich formatting."""
    console.print()

    if result.status == SequenceStatus.ALREADY_COMPLETE:
        success("Host already provisioned; nothing to do")
        return

    for name in result.completed:
        console.print(f"  [green]✓ {name:<20}[/green] completed")
    for name in result.skipped:
        console.print(f"  [dim]• {name:<20}[/dim] already done")
    for name in result.excluded:
        console.print(f"  [yellow]⚠ {name:<20}[/yellow] skipped by operator")

    console.print()
    duration = f" in {result.duration_seconds:.1f}s" if result.duration_seconds > 0 else ""
    if result.status == SequenceStatus.ALL_COMPLETE:
        console.print(
            f"[bold green]Provisioned {len(result.completed)} phase(s){duration}[/bold green]"
        )
    else:
        console.print(
            f"[bold yellow]Provisioned {len(result.completed)} phase(s){duration}; "
            f"{len(result.excluded)} skipped, host not marked complete[/bold yellow]"
        )
    console.print()


@main_with_error_handling(log_file=_log_path)
def provision_command(
    config_path: str | Path,
    skip: Optional[Iterable[str]] = None,
    non_interactive: bool = False,
    assume_yes: bool = False,
    settings: Optional[Settings] = None,
) -> int:
    """Provision this host from a provisioning file."""
    settings = settings or get_settings()
    config = load_provision_config(config_path)
    provisioner = HostProvisioner(settings, config)
    skip = list(skip or [])

    header(f"Provisioning: {provisioner.namespace}")
    if provisioner.markers.is_complete():
        print_sequence_summary(SequenceResult(status=SequenceStatus.ALREADY_COMPLETE))
        return ExitCode.SUCCESS

    rows = []
    for name, state in provisioner.status().items():
        action = "skip" if name in skip else ("done" if state == PhaseState.COMPLETED else "run")
        rows.append([name, STATE_STYLES[state], action])
    print_table("Phases", ["Phase", "State", "Action"], rows)

    if _should_prompt(settings, non_interactive, assume_yes):
        if not confirm("Proceed with provisioning?", default=True):
            warning("Aborted by operator")
            return ExitCode.WARNING

    try:
        result = provisioner.provision(skip)
    except PhaseFailedError as e:
        if e.rollback is not None:
            console.print()
            print_rollback_report(e.rollback)
        raise

    print_sequence_summary(result)
    if result.status == SequenceStatus.PARTIAL:
        return ExitCode.WARNING
    return ExitCode.SUCCESS


@main_with_error_handling(log_file=_log_path)
def status_command(config_path: str | Path, settings: Optional[Settings] = None) -> int:
    """Show the marker state of every declared phase."""
    settings = settings or get_settings()
    provisioner = HostProvisioner(settings, load_provision_config(config_path))

    rows = [[name, STATE_STYLES[state]] for name, state in provisioner.status().items()]
    print_table(f"Phases ({provisioner.namespace})", ["Phase", "State"], rows)

    if provisioner.markers.is_complete():
        success("Host fully provisioned")
    else:
        info("Host not fully provisioned")
    return ExitCode.SUCCESS


@main_with_error_handling(log_file=_log_path)
def reset_command(
    config_path: str | Path,
    phases: Optional[Iterable[str]] = None,
    all_phases: bool = False,
    assume_yes: bool = False,
    settings: Optional[Settings] = None,
) -> int:
    """Clear completion and failure markers."""
    settings = settings or get_settings()
    provisioner = HostProvisioner(settings, load_provision_config(config_path))

    targets = None if all_phases else list(phases or [])
    if targets is not None and not targets:
        error("Nothing to reset: pass --phase NAME or --all")
        return ExitCode.VALIDATION_ERROR

    described = "all phases" if targets is None else ", ".join(targets)
    if _should_prompt(settings, False, assume_yes):
        if not confirm(f"Reset markers for {described}?", default=False):
            warning("Aborted by operator")
            return ExitCode.WARNING

    cleared = provisioner.reset(targets)
    success(f"Reset {len(cleared)} phase marker(s); they will run on the next provision")
    return ExitCode.SUCCESS
