"""Root test configuration."""

import io
import logging
import tarfile
from pathlib import Path

import pytest
import structlog

from bootlayer.retry import RetryExecutor, RetryPolicy


def pytest_configure(config):
    """Configure structlog for tests to suppress debug/info output."""
    logging.basicConfig(level=logging.WARNING, force=True)
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


class RecordingSleep:
    """Stand-in for time.sleep that records requested delays."""

    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def executor(sleep):
    """Retry executor with a short policy that never blocks."""
    return RetryExecutor(RetryPolicy(max_attempts=3, base_delay=1.0, max_delay=4.0), sleep=sleep)


def build_tarball(path: Path, files: dict, top: str = "bundle-1.0") -> Path:
    """Write a gzipped tarball whose members live under ``top/``."""
    with tarfile.open(path, "w:gz") as tar:
        for name, content in files.items():
            data = content.encode() if isinstance(content, str) else content
            info = tarfile.TarInfo(f"{top}/{name}")
            info.size = len(data)
            info.mode = 0o644
            tar.addfile(info, io.BytesIO(data))
    return path


@pytest.fixture
def make_tarball():
    return build_tarball
