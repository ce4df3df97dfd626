"""Shared helpers used by bundle tooling."""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Optional

_CHUNK = 1024 * 1024


def compute_sha256(path: Path) -> str:
    """Return the SHA-256 checksum for a file."""

    digest = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(_CHUNK), b""):
            digest.update(chunk)
    return digest.hexdigest()


def write_text(path: Path, content: str, *, newline: Optional[str] = None) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8", newline=newline)
