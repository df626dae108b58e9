"""Core modules for bootlayer - centralized definitions and utilities."""

from bootlayer.core.errors import (
    BootlayerError,
    ChecksumMismatchError,
    ConfigurationError,
    ExitCode,
    IntegrityError,
    PhaseFailedError,
    ProviderError,
    ReconcileError,
    ResourceCreationError,
    RetryExhaustedError,
    SecretNotFoundError,
    ValidationError,
    format_error_message,
    main_with_error_handling,
)

__all__ = [
    "ExitCode",
    "BootlayerError",
    "ConfigurationError",
    "SecretNotFoundError",
    "ProviderError",
    "ValidationError",
    "ChecksumMismatchError",
    "IntegrityError",
    "RetryExhaustedError",
    "PhaseFailedError",
    "ReconcileError",
    "ResourceCreationError",
    "main_with_error_handling",
    "format_error_message",
]
