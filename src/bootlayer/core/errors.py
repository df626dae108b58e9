"""
Unified error handling for bootlayer.

Inner components raise the typed errors defined here; only the CLI entry
point converts them into exit codes and operator-facing messages.

Exit Codes:
- 0: Success
- 1: Warning (operation cancelled by the operator or finished with warnings)
- 10: Configuration error (missing secret, invalid config file)
- 11: Provider error (cloud API, gcloud, object storage)
- 12: Validation error
- 13: Integrity error (artifact checksum mismatch)
- 14: Phase failure (provisioning aborted)
- 127: Unknown/internal error
"""

from __future__ import annotations

import functools
import sys
import traceback
from enum import IntEnum
from typing import Any, Callable, TypeVar

import structlog

logger = structlog.get_logger()


class ExitCode(IntEnum):
    """Standardized exit codes for CLI commands."""

    SUCCESS = 0
    WARNING = 1
    CONFIG_ERROR = 10
    PROVIDER_ERROR = 11
    VALIDATION_ERROR = 12
    INTEGRITY_ERROR = 13
    PHASE_FAILED = 14
    UNKNOWN_ERROR = 127


class BootlayerError(Exception):
    """Base exception for bootlayer errors with exit code support.

    ``fatal`` errors are never retried by the retry executor.
    """

    exit_code: ExitCode = ExitCode.UNKNOWN_ERROR
    show_traceback: bool = False
    fatal: bool = False

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(BootlayerError):
    """Raised for configuration-related errors."""

    exit_code = ExitCode.CONFIG_ERROR
    fatal = True


class SecretNotFoundError(ConfigurationError):
    """Raised when a required secret cannot be resolved from any source."""

    def __init__(self, names: list[str], sources: list[str]):
        joined = ", ".join(names)
        super().__init__(
            f"Required secret(s) not found: {joined} (tried: {', '.join(sources)})",
            details={"secrets": joined},
        )
        self.names = names
        self.sources = sources


class ProviderError(BootlayerError):
    """Raised when an external provider/service fails."""

    exit_code = ExitCode.PROVIDER_ERROR


class ValidationError(BootlayerError):
    """Raised for validation failures."""

    exit_code = ExitCode.VALIDATION_ERROR
    fatal = True


class ChecksumMismatchError(BootlayerError):
    """A single download attempt produced content with the wrong checksum.

    Retryable: the fetcher re-downloads until its attempt budget runs out.
    """

    exit_code = ExitCode.INTEGRITY_ERROR

    def __init__(self, path: str, expected: str, actual: str):
        super().__init__(
            f"Checksum mismatch for {path}: expected {expected}, got {actual}",
            details={"expected": expected, "actual": actual},
        )
        self.expected = expected
        self.actual = actual


class IntegrityError(BootlayerError):
    """Raised when a bundle cannot be verified; never extracted or executed."""

    exit_code = ExitCode.INTEGRITY_ERROR
    fatal = True


class RetryExhaustedError(BootlayerError):
    """Raised when a unit of work failed on every allowed attempt."""

    exit_code = ExitCode.PROVIDER_ERROR
    fatal = True

    def __init__(self, description: str, attempts: int, last_error: BaseException | None):
        reason = f"{type(last_error).__name__}: {last_error}" if last_error else "unknown"
        super().__init__(
            f"{description} failed after {attempts} attempt(s): {reason}",
            details={"attempts": attempts},
        )
        self.description = description
        self.attempts = attempts
        self.last_error = last_error


class PhaseFailedError(BootlayerError):
    """Raised when a phase fails irrecoverably and the sequence is aborted."""

    exit_code = ExitCode.PHASE_FAILED
    fatal = True

    def __init__(self, phase: str, cause: BaseException, rollback: Any = None):
        super().__init__(
            f"Phase '{phase}' failed: {cause}",
            details={"phase": phase},
        )
        self.phase = phase
        self.cause = cause
        self.rollback = rollback


class ReconcileError(ProviderError):
    """Raised when a resource's existence cannot be determined."""

    fatal = True


class ResourceCreationError(ProviderError):
    """Raised when creating a cloud resource fails after retries."""

    fatal = True

    def __init__(self, resource: str, cause: BaseException, rollback: Any = None):
        super().__init__(
            f"Creating resource '{resource}' failed: {cause}",
            details={"resource": resource},
        )
        self.resource = resource
        self.cause = cause
        self.rollback = rollback


# Type variable for decorated functions
F = TypeVar("F", bound=Callable[..., int])


def main_with_error_handling(
    *,
    show_traceback: bool = False,
    log_errors: bool = True,
    log_file: Callable[[], str | None] | None = None,
) -> Callable[[F], F]:
    """
    Decorator for CLI command functions that provides unified error handling.

    Catches exceptions and converts them to appropriate exit codes. Every
    fatal path prints which step failed, the underlying error and where the
    durable log lives.

    Args:
        show_traceback: If True, show full traceback for unexpected errors
        log_errors: If True, log errors to structlog
        log_file: Callable returning the durable log path to point operators at

    Exit codes:
        - BootlayerError subclasses: Uses the error's exit_code
        - KeyboardInterrupt: Returns 130 (standard for SIGINT)
        - Other exceptions: Returns 127 (unknown error)
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> int:
            try:
                return func(*args, **kwargs)
            except BootlayerError as e:
                if log_errors:
                    logger.error(
                        "command_error",
                        error_type=type(e).__name__,
                        message=e.message,
                        exit_code=int(e.exit_code),
                        **e.details,
                    )
                _report_failure(e, log_file() if log_file else None)
                if e.show_traceback or show_traceback:
                    traceback.print_exc(file=sys.stderr)
                return e.exit_code
            except KeyboardInterrupt:
                if log_errors:
                    logger.info("command_interrupted")
                return 130  # Standard exit code for SIGINT
            except Exception as e:
                if log_errors:
                    logger.error(
                        "unexpected_error",
                        error_type=type(e).__name__,
                        message=str(e),
                        exit_code=int(ExitCode.UNKNOWN_ERROR),
                    )
                _report_failure(e, log_file() if log_file else None)
                if show_traceback:
                    traceback.print_exc(file=sys.stderr)
                return ExitCode.UNKNOWN_ERROR

        return wrapper  # type: ignore[return-value]

    return decorator


def failed_step(error: BaseException) -> str:
    """Name the phase or resource an error belongs to, if any."""
    if isinstance(error, PhaseFailedError):
        return f"phase '{error.phase}'"
    if isinstance(error, ResourceCreationError):
        return f"resource '{error.resource}'"
    if isinstance(error, RetryExhaustedError):
        return error.description
    if isinstance(error, IntegrityError):
        return "artifact bundle verification"
    if isinstance(error, ConfigurationError):
        return "configuration"
    return "bootlayer"


def format_error_message(error: BootlayerError) -> str:
    """Format an error message for display to users."""
    msg = error.message
    if error.details:
        detail_str = ", ".join(f"{k}={v}" for k, v in error.details.items())
        msg = f"{msg} ({detail_str})"
    return msg


def _report_failure(error: BaseException, log_path: str | None) -> None:
    from bootlayer.cli.ux import error as print_error
    from bootlayer.cli.ux import info as print_info

    message = format_error_message(error) if isinstance(error, BootlayerError) else str(error)
    print_error(f"Failed step: {failed_step(error)}")
    print_error(message)
    if log_path:
        print_info(f"Full log: {log_path}")
