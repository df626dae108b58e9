"""
CLI command for secret verification.

    bootlayer secrets check --config FILE - Show which secrets resolve and from where
"""

from __future__ import annotations

import dataclasses
from pathlib import Path
from typing import Optional

from bootlayer.cli.ux import console, error, print_table, success
from bootlayer.config.loader import load_provision_config
from bootlayer.config.secrets import SecretResolver
from bootlayer.config.settings import Settings, get_settings
from bootlayer.core.errors import ExitCode, main_with_error_handling


def _log_path() -> str:
    return str(get_settings().log_file)


@main_with_error_handling(log_file=_log_path)
def secrets_check_command(
    config_path: str | Path,
    settings: Optional[Settings] = None,
    resolver: Optional[SecretResolver] = None,
) -> int:
    """Verify every declared secret resolves. Values are never printed."""
    settings = settings or get_settings()
    config = load_provision_config(config_path)
    if resolver is None:
        secret_config = dataclasses.replace(
            settings.secret_config(),
            gcp_project_id=settings.gcp_project_id or config.project.id,
        )
        resolver = SecretResolver(secret_config)

    results = resolver.verify(config.secrets)

    rows = []
    missing = []
    for spec in config.secrets:
        found, source = results[spec.name]
        if found:
            rows.append([spec.name, spec.env_name, f"[green]found[/green] ({source})"])
        elif spec.required:
            rows.append([spec.name, spec.env_name, "[red]NOT FOUND[/red]"])
            missing.append(spec.name)
        else:
            rows.append([spec.name, spec.env_name, "[dim]not set (optional)[/dim]"])
    print_table("Secrets", ["Secret", "Env", "Status"], rows)

    if missing:
        error(f"Missing required secret(s): {', '.join(missing)}")
        console.print(f"  Sources tried: {', '.join(resolver.source_names())}")
        return ExitCode.CONFIG_ERROR

    success("All required secrets are available")
    return ExitCode.SUCCESS
