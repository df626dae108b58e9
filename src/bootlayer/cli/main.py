"""bootlayer command-line entry point."""

from __future__ import annotations

import argparse
import sys
import uuid
from typing import Sequence

import structlog

from bootlayer import __version__
from bootlayer.config.settings import get_settings
from bootlayer.logging import bind_context, configure_logging

logger = structlog.get_logger()


def _add_config_arg(parser: argparse.ArgumentParser, required: bool = True) -> None:
    parser.add_argument(
        "--config",
        "-c",
        dest="config_path",
        required=required,
        help="Provisioning YAML file",
    )


def _add_resource_args(parser: argparse.ArgumentParser) -> None:
    _add_config_arg(parser, required=False)
    group = parser.add_argument_group("resources")
    group.add_argument("--project", help="GCP project ID")
    group.add_argument("--zone", help="Compute zone (e.g. us-west1-a)")
    group.add_argument("--region", help="Region (defaults to the zone's region)")
    group.add_argument("--vm-name", help="VM instance name")
    group.add_argument("--firewall-rule", help="Firewall rule name")
    group.add_argument("--tags", help="Comma-separated network tags")
    group.add_argument("--repo-name", help="Artifact Registry repository name")
    group.add_argument("--repo-location", help="Artifact Registry location")
    group.add_argument("--bucket", help="Storage bucket name")
    group.add_argument("--service-account", help="Service account id")
    group.add_argument("--static-ip", help="Static IP address name")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bootlayer", description="Idempotent, resumable host provisioning"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--log-file", help="Durable log file (default: BOOTLAYER_LOG_FILE)")
    parser.add_argument("--log-level", help="Log level (default: BOOTLAYER_LOG_LEVEL)")
    subparsers = parser.add_subparsers(dest="command")

    provision_parser = subparsers.add_parser("provision", help="Run pending provisioning phases")
    _add_config_arg(provision_parser)
    provision_parser.add_argument(
        "--skip",
        action="append",
        default=[],
        metavar="PHASE",
        help="Do not run this phase (repeatable); the host is not marked complete",
    )
    provision_parser.add_argument(
        "--non-interactive", action="store_true", help="Never prompt (boot-time runs)"
    )
    provision_parser.add_argument("--yes", "-y", action="store_true", help="Skip confirmation")

    status_parser = subparsers.add_parser("status", help="Show per-phase markers")
    _add_config_arg(status_parser)

    reset_parser = subparsers.add_parser("reset", help="Clear phase markers")
    _add_config_arg(reset_parser)
    reset_target = reset_parser.add_mutually_exclusive_group(required=True)
    reset_target.add_argument(
        "--phase", action="append", dest="phases", metavar="NAME", help="Phase to reset"
    )
    reset_target.add_argument("--all", action="store_true", dest="all_phases", help="All phases")
    reset_parser.add_argument("--yes", "-y", action="store_true", help="Skip confirmation")

    plan_parser = subparsers.add_parser("plan", help="Show which cloud resources would be created")
    _add_resource_args(plan_parser)

    apply_parser = subparsers.add_parser("apply", help="Create missing cloud resources")
    _add_resource_args(apply_parser)
    apply_parser.add_argument("--yes", "-y", action="store_true", help="Skip confirmation")
    apply_parser.add_argument(
        "--non-interactive", action="store_true", help="Never prompt; create without asking"
    )

    destroy_parser = subparsers.add_parser("destroy", help="Delete the declared cloud resources")
    _add_resource_args(destroy_parser)
    destroy_parser.add_argument("--yes", "-y", action="store_true", help="Skip confirmation")

    secrets_parser = subparsers.add_parser("secrets", help="Secret management")
    secrets_subparsers = secrets_parser.add_subparsers(dest="secrets_command")
    check_parser = secrets_subparsers.add_parser(
        "check", help="Show which secrets resolve and from which source"
    )
    _add_config_arg(check_parser)

    return parser


def _setup_logging(args: argparse.Namespace) -> None:
    settings = get_settings()
    level = (args.log_level or settings.log_level).upper()
    log_file = args.log_file or settings.log_file
    try:
        configure_logging(level=level, log_file=log_file, console=settings.console)
    except OSError as e:
        configure_logging(level=level, console=settings.console)
        logger.warning("log_file_unavailable", path=str(log_file), error=str(e))
    bind_context(run_id=uuid.uuid4().hex[:12], command=args.command)


def main(argv: Sequence[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    _setup_logging(args)

    if args.command == "provision":
        from bootlayer.cli.provision import provision_command

        sys.exit(
            provision_command(
                args.config_path,
                skip=args.skip,
                non_interactive=args.non_interactive,
                assume_yes=args.yes,
            )
        )

    if args.command == "status":
        from bootlayer.cli.provision import status_command

        sys.exit(status_command(args.config_path))

    if args.command == "reset":
        from bootlayer.cli.provision import reset_command

        sys.exit(
            reset_command(
                args.config_path,
                phases=args.phases,
                all_phases=args.all_phases,
                assume_yes=args.yes,
            )
        )

    if args.command in ("plan", "apply", "destroy"):
        from bootlayer.cli.resources import (
            ResourceArgs,
            apply_command,
            destroy_command,
            plan_command,
        )

        resource_args = ResourceArgs.from_namespace(args)
        if args.command == "plan":
            sys.exit(plan_command(args.config_path, resource_args))
        if args.command == "destroy":
            sys.exit(destroy_command(args.config_path, resource_args, assume_yes=args.yes))
        sys.exit(
            apply_command(
                args.config_path,
                resource_args,
                assume_yes=args.yes,
                non_interactive=args.non_interactive,
            )
        )

    if args.command == "secrets":
        from bootlayer.cli.secrets import secrets_check_command

        if args.secrets_command == "check":
            sys.exit(secrets_check_command(args.config_path))
        print("Usage: bootlayer secrets check --config FILE")
        sys.exit(1)


if __name__ == "__main__":
    main()
