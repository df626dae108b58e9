"""Artifact bundle fetching, verification and extraction."""

from bootlayer.artifacts.downloaders import (
    Downloader,
    GCSDownloader,
    HTTPDownloader,
    LocalDownloader,
    PermanentDownloadError,
    TransientDownloadError,
    downloader_for,
)
from bootlayer.artifacts.extract import extract_bundle
from bootlayer.artifacts.fetcher import ArtifactFetcher, BundleSpec, file_checksum

__all__ = [
    "ArtifactFetcher",
    "BundleSpec",
    "Downloader",
    "GCSDownloader",
    "HTTPDownloader",
    "LocalDownloader",
    "PermanentDownloadError",
    "TransientDownloadError",
    "downloader_for",
    "extract_bundle",
    "file_checksum",
]
