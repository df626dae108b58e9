"""Checksum-gated download of the phase tooling bundle."""

from __future__ import annotations

import hashlib
import os
from dataclasses import dataclass
from pathlib import Path

import structlog

from bootlayer.artifacts.downloaders import Downloader, downloader_for
from bootlayer.artifacts.extract import extract_bundle
from bootlayer.core.errors import ChecksumMismatchError, IntegrityError, RetryExhaustedError
from bootlayer.logging import log_success
from bootlayer.retry import DOWNLOAD_POLICY, RetryExecutor

logger = structlog.get_logger()

CHUNK_SIZE = 1024 * 1024


def file_checksum(path: Path, algorithm: str = "md5") -> str:
    """Hex digest of ``path``."""
    digest = hashlib.new(algorithm)
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


@dataclass(frozen=True)
class BundleSpec:
    """Where a bundle lives, what it must hash to and where it is cached."""

    uri: str
    checksum: str
    cache_path: Path
    algorithm: str = "md5"

    @property
    def expected(self) -> str:
        return self.checksum.strip().lower()


class ArtifactFetcher:
    """Downloads, verifies and extracts artifact bundles."""

    def __init__(
        self,
        executor: RetryExecutor | None = None,
        downloader: Downloader | None = None,
        project: str | None = None,
    ) -> None:
        self.executor = executor or RetryExecutor(DOWNLOAD_POLICY)
        self._downloader = downloader
        self._project = project

    def fetch(self, bundle: BundleSpec, extract_dir: Path) -> Path:
        """Make ``bundle`` available, verified, under ``extract_dir``.

        Nothing is extracted unless the cached archive matches the expected
        checksum.
        """
        if self.cache_is_valid(bundle):
            logger.info("bundle_cache_hit", path=str(bundle.cache_path))
        else:
            self._download(bundle)

        extract_bundle(bundle.cache_path, extract_dir)
        return extract_dir

    def cache_is_valid(self, bundle: BundleSpec) -> bool:
        if not bundle.cache_path.is_file():
            return False
        actual = file_checksum(bundle.cache_path, bundle.algorithm)
        if actual == bundle.expected:
            return True
        logger.warning(
            "bundle_cache_stale",
            path=str(bundle.cache_path),
            expected=bundle.expected,
            actual=actual,
        )
        return False

    def _download(self, bundle: BundleSpec) -> None:
        downloader = self._downloader or downloader_for(bundle.uri, project=self._project)
        bundle.cache_path.parent.mkdir(parents=True, exist_ok=True)
        partial = bundle.cache_path.with_name(bundle.cache_path.name + ".partial")

        def attempt() -> None:
            partial.unlink(missing_ok=True)
            downloader.download(bundle.uri, partial)
            actual = file_checksum(partial, bundle.algorithm)
            if actual != bundle.expected:
                raise ChecksumMismatchError(bundle.uri, bundle.expected, actual)
            os.replace(partial, bundle.cache_path)

        logger.info("bundle_download_started", uri=bundle.uri)
        try:
            self.executor.run(attempt, f"download {bundle.uri}")
        except RetryExhaustedError as e:
            if isinstance(e.last_error, ChecksumMismatchError):
                raise IntegrityError(
                    f"Bundle {bundle.uri} failed checksum verification after "
                    f"{e.attempts} attempt(s); refusing to extract",
                    details={
                        "expected": bundle.expected,
                        "actual": e.last_error.actual,
                    },
                ) from e
            raise
        finally:
            partial.unlink(missing_ok=True)

        log_success(logger, "bundle_downloaded", uri=bundle.uri, path=str(bundle.cache_path))
