"""Byte transports for artifact bundles, selected by URI scheme."""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Protocol, runtime_checkable
from urllib.parse import urlparse

import httpx
import structlog

from bootlayer.core.errors import ConfigurationError, ProviderError

logger = structlog.get_logger()


class PermanentDownloadError(ProviderError):
    """Download failure that retrying cannot fix (missing object, 4xx)."""

    fatal = True


class TransientDownloadError(ProviderError):
    """Download failure worth retrying."""


def is_retryable_status(status_code: int) -> bool:
    """Determine if HTTP status code is retryable."""
    return status_code in (408, 429, 500, 502, 503, 504)


@runtime_checkable
class Downloader(Protocol):
    """Copies the object at ``uri`` to ``destination``."""

    def download(self, uri: str, destination: Path) -> None: ...


class LocalDownloader:
    """``file://`` URIs and plain paths."""

    def download(self, uri: str, destination: Path) -> None:
        source = Path(urlparse(uri).path if uri.startswith("file://") else uri)
        if not source.is_file():
            raise PermanentDownloadError(f"Bundle not found: {source}", details={"uri": uri})
        shutil.copyfile(source, destination)


class HTTPDownloader:
    """Streams ``http(s)://`` URIs to disk."""

    def __init__(self, timeout: float = 60.0, client: httpx.Client | None = None):
        self._timeout = timeout
        self._client = client

    def download(self, uri: str, destination: Path) -> None:
        client = self._client or httpx.Client(timeout=self._timeout, follow_redirects=True)
        try:
            with client.stream("GET", uri) as response:
                if response.status_code >= 400:
                    error_cls = (
                        TransientDownloadError
                        if is_retryable_status(response.status_code)
                        else PermanentDownloadError
                    )
                    raise error_cls(
                        f"HTTP {response.status_code} fetching {uri}",
                        details={"status": response.status_code},
                    )
                with open(destination, "wb") as f:
                    for chunk in response.iter_bytes():
                        f.write(chunk)
        except (httpx.TimeoutException, httpx.TransportError) as exc:
            logger.warning("http_network_error", uri=uri, error=str(exc))
            raise TransientDownloadError(f"Network error fetching {uri}: {exc}") from exc
        finally:
            if self._client is None:
                client.close()


class GCSDownloader:
    """``gs://bucket/object`` via google-cloud-storage."""

    def __init__(self, project: str | None = None):
        self._project = project
        self._client = None

    def _get_client(self):
        if self._client is not None:
            return self._client

        from google.cloud import storage

        self._client = storage.Client(project=self._project)
        return self._client

    def download(self, uri: str, destination: Path) -> None:
        from google.api_core import exceptions as gcs_exceptions

        parsed = urlparse(uri)
        bucket_name, blob_name = parsed.netloc, parsed.path.lstrip("/")
        if not bucket_name or not blob_name:
            raise ConfigurationError(f"Invalid GCS URI: {uri}", details={"uri": uri})

        try:
            blob = self._get_client().bucket(bucket_name).blob(blob_name)
            blob.download_to_filename(str(destination))
        except gcs_exceptions.NotFound as exc:
            raise PermanentDownloadError(f"Bundle not found: {uri}", details={"uri": uri}) from exc
        except gcs_exceptions.Forbidden as exc:
            raise PermanentDownloadError(
                f"Access denied reading {uri}", details={"uri": uri}
            ) from exc
        except gcs_exceptions.GoogleAPIError as exc:
            raise TransientDownloadError(f"GCS error fetching {uri}: {exc}") from exc


def downloader_for(uri: str, project: str | None = None) -> Downloader:
    """Pick the transport matching ``uri``'s scheme."""
    scheme = urlparse(uri).scheme
    if scheme == "gs":
        return GCSDownloader(project=project)
    if scheme in ("http", "https"):
        return HTTPDownloader()
    if scheme in ("", "file"):
        return LocalDownloader()
    raise ConfigurationError(f"Unsupported bundle URI scheme '{scheme}'", details={"uri": uri})
