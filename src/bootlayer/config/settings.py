"""
Application settings using Pydantic.

Provides environment-based configuration loading with BOOTLAYER_ prefix.
"""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

from bootlayer.config.secrets import SecretConfig
from bootlayer.retry import RetryPolicy


class Settings(BaseSettings):
    """Application settings."""

    # Markers
    namespace: str = "bootlayer"
    state_dir: Path = Path("/var/lib")

    # Logging
    log_file: Path = Path("/var/log/bootlayer.log")
    log_level: str = "INFO"
    console: str | None = None  # e.g. /dev/ttyS0 on a headless VM

    # Working locations
    secrets_dir: Path = Path("/etc/bootlayer/secrets")
    work_dir: Path = Path("/opt/bootlayer/bundle")
    cache_dir: Path = Path("/var/cache/bootlayer")

    # Secrets
    gcp_project_id: str | None = None
    gcp_secret_prefix: str = ""
    fallback_file: Path | None = None

    # Retry policy shared by phases, secret lookups and resource creation
    retry_max_attempts: int = 5
    retry_base_delay: float = 10.0
    retry_multiplier: float = 2.0
    retry_max_delay: float = 60.0

    # Artifact download policy
    download_max_attempts: int = 5
    download_base_delay: float = 2.0

    # "failed" reverts only the failing phase, "run" also reverts phases
    # completed during the same invocation
    rollback_scope: str = "failed"

    non_interactive: bool = False

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "BOOTLAYER_"

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.retry_max_attempts,
            base_delay=self.retry_base_delay,
            multiplier=self.retry_multiplier,
            max_delay=self.retry_max_delay,
        )

    def download_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.download_max_attempts,
            base_delay=self.download_base_delay,
            multiplier=2.0,
            max_delay=max(self.retry_max_delay, self.download_base_delay),
        )

    def secret_config(self) -> SecretConfig:
        return SecretConfig(
            gcp_project_id=self.gcp_project_id,
            gcp_secret_prefix=self.gcp_secret_prefix,
            fallback_file=self.fallback_file,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
