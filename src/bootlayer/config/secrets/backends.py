"""
Cloud secret backends - lazy loaded when needed.

These backends require additional dependencies:
- GCPSecretBackend: google-cloud-secret-manager
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from bootlayer.config.secrets import BaseSecretBackend, SecretBackend, _sanitize_path

if TYPE_CHECKING:
    from bootlayer.config.secrets import SecretConfig

logger = structlog.get_logger()


def _sanitize_error(exc: Exception) -> str:
    """Sanitize error message to avoid leaking sensitive details."""
    return type(exc).__name__


class GCPSecretBackend(BaseSecretBackend):
    """Google Cloud Secret Manager backend.

    An unreachable API, missing credentials or an absent secret all read as
    "not available" so the resolver can fall through to the next source.
    """

    source = SecretBackend.GCP

    def __init__(self, config: "SecretConfig"):
        self.config = config
        self._client = None

    def _get_client(self):
        if self._client is not None:
            return self._client

        from google.cloud import secretmanager

        self._client = secretmanager.SecretManagerServiceClient()
        return self._client

    def _secret_path(self, name: str) -> str:
        secret_name = f"{self.config.gcp_secret_prefix}{name}"
        return f"projects/{self.config.gcp_project_id}/secrets/{secret_name}/versions/latest"

    def get_secret(self, key: str) -> str | None:
        try:
            client = self._get_client()
            response = client.access_secret_version(request={"name": self._secret_path(key)})
            return response.payload.data.decode("UTF-8").strip() or None
        except Exception as e:
            logger.debug(
                "gcp_secret_not_found", secret=_sanitize_path(key), error=_sanitize_error(e)
            )
            return None

    def describe(self, key: str) -> str:
        return f"gcp secret manager {self.config.gcp_secret_prefix}{key}"
