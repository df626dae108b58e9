"""Bundle extraction."""

from __future__ import annotations

import stat
import tarfile
from pathlib import Path

import structlog

from bootlayer.core.errors import IntegrityError

logger = structlog.get_logger()

EXECUTABLE_BITS = stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH


def _strip_component(name: str) -> str:
    parts = [p for p in name.split("/") if p not in ("", ".")]
    return "/".join(parts[1:])


def _strip_top_level(member: tarfile.TarInfo, dest_path: str) -> tarfile.TarInfo | None:
    name = _strip_component(member.name)
    if not name:
        return None
    attrs = {"name": name}
    if member.islnk():
        attrs["linkname"] = _strip_component(member.linkname)
    return tarfile.data_filter(member.replace(**attrs, deep=False), dest_path)


def _is_script(path: Path) -> bool:
    if path.suffix == ".sh":
        return True
    with open(path, "rb") as f:
        return f.read(2) == b"#!"


def extract_bundle(archive: Path, destination: Path) -> list[Path]:
    """Extract ``archive`` into ``destination`` without its top-level directory.

    Members that would land outside ``destination`` abort the extraction.
    Returns the scripts that were marked executable.
    """
    destination.mkdir(parents=True, exist_ok=True)
    try:
        with tarfile.open(archive, "r:*") as tar:
            tar.extractall(destination, filter=_strip_top_level)
    except tarfile.FilterError as e:
        raise IntegrityError(
            f"Bundle {archive.name} contains an unsafe member: {e}",
            details={"archive": str(archive)},
        ) from e
    except tarfile.TarError as e:
        raise IntegrityError(
            f"Bundle {archive.name} is not a readable archive: {e}",
            details={"archive": str(archive)},
        ) from e

    scripts = []
    for path in sorted(destination.rglob("*")):
        if path.is_file() and not path.is_symlink() and _is_script(path):
            path.chmod(path.stat().st_mode | EXECUTABLE_BITS)
            scripts.append(path)

    logger.info("bundle_extracted", destination=str(destination), scripts=len(scripts))
    return scripts
