"""Deterministic archive sealing."""

from __future__ import annotations

import logging
import os
import tempfile
import zipfile
from pathlib import Path

from .layout import ArtifactLayout
from .utils import compute_sha256

logger = logging.getLogger(__name__)

# Earliest timestamp the zip format can store; fixed so rebuilds are byte-identical.
_EPOCH = (1980, 1, 1, 0, 0, 0)
_FILE_MODE = 0o644 << 16


def seal_archive(layout: ArtifactLayout, archive_path: Path) -> str:
    """Write ``layout`` to ``archive_path`` and return the archive SHA-256.

    The archive is written next to its destination and moved into place with
    ``os.replace``, so a file at ``archive_path`` is always a complete archive.
    """

    archive_path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{archive_path.name}.", suffix=".partial", dir=archive_path.parent)
    os.close(fd)
    tmp_path = Path(tmp_name)
    try:
        with zipfile.ZipFile(tmp_path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            for entry in layout.entries:
                info = zipfile.ZipInfo(entry.path, date_time=_EPOCH)
                info.compress_type = zipfile.ZIP_DEFLATED
                info.external_attr = _FILE_MODE
                info.create_system = 3
                archive.writestr(info, entry.source.read_bytes())
        os.replace(tmp_path, archive_path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise

    checksum = compute_sha256(archive_path)
    logger.info("Sealed %s (%d files, sha256 %s)", archive_path, len(layout.entries), checksum)
    return checksum


def archive_names(archive_path: Path) -> list[str]:
    with zipfile.ZipFile(archive_path) as archive:
        return archive.namelist()
