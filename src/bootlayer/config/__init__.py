"""
bootlayer configuration system.

Provides:
- Pydantic-based settings (environment variables, .env files)
- Ordered secret resolution (argument, GCP Secret Manager, env, file)
- Provisioning file loading into an explicit config struct
"""

from bootlayer.config.loader import (
    BundleConfig,
    PhaseConfig,
    ProjectConfig,
    ProvisionConfig,
    ResourceConfig,
    load_provision_config,
    parse_provision_config,
)
from bootlayer.config.secrets import (
    SecretBackend,
    SecretConfig,
    SecretResolver,
    SecretSpec,
)
from bootlayer.config.settings import Settings, get_settings

__all__ = [
    # Settings
    "Settings",
    "get_settings",
    # Secrets
    "SecretBackend",
    "SecretConfig",
    "SecretResolver",
    "SecretSpec",
    # Loader
    "BundleConfig",
    "PhaseConfig",
    "ProjectConfig",
    "ProvisionConfig",
    "ResourceConfig",
    "load_provision_config",
    "parse_provision_config",
]
