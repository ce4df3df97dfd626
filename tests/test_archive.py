from __future__ import annotations

import os
import time
import zipfile
from pathlib import Path

import pytest

from jobpack.bundle.archive import archive_names, seal_archive
from jobpack.bundle.launcher import parse_entry_point, render_launcher, write_launcher
from jobpack.bundle.layout import ArtifactLayout, build_artifact
from jobpack.bundle.sources import collect_tree
from jobpack.bundle.utils import compute_sha256
from jobpack.errors import ConfigurationError


def _layout(root: Path) -> ArtifactLayout:
    (root / "etl").mkdir(parents=True, exist_ok=True)
    (root / "etl" / "__init__.py").write_text("", encoding="utf-8")
    (root / "etl" / "job.py").write_text("def main():\n    return 0\n", encoding="utf-8")
    return build_artifact([], [collect_tree("app:etl", root)])


def test_resealing_identical_layout_is_byte_identical(tmp_path: Path) -> None:
    layout = _layout(tmp_path / "src")
    first = tmp_path / "one" / "etl-deps.zip"
    second = tmp_path / "two" / "etl-deps.zip"

    checksum = seal_archive(layout, first)
    # Source mtimes must not leak into the archive.
    later = time.time() + 3600
    for entry in layout.entries:
        os.utime(entry.source, (later, later))
    assert seal_archive(layout, second) == checksum

    assert first.read_bytes() == second.read_bytes()
    assert compute_sha256(first) == checksum
    with zipfile.ZipFile(first) as archive:
        for info in archive.infolist():
            assert info.date_time == (1980, 1, 1, 0, 0, 0)
            assert (info.external_attr >> 16) & 0o777 == 0o644


def test_archive_follows_layout_order(tmp_path: Path) -> None:
    layout = _layout(tmp_path / "src")
    archive_path = tmp_path / "out" / "etl-deps.zip"

    seal_archive(layout, archive_path)

    assert archive_names(archive_path) == layout.paths()


def test_failed_seal_leaves_no_partial_archive(tmp_path: Path) -> None:
    layout = _layout(tmp_path / "src")
    layout.entries[0].source.unlink()
    out = tmp_path / "out"

    with pytest.raises(FileNotFoundError):
        seal_archive(layout, out / "etl-deps.zip")

    assert list(out.iterdir()) == []


def test_seal_replaces_existing_archive(tmp_path: Path) -> None:
    layout = _layout(tmp_path / "src")
    archive_path = tmp_path / "etl-deps.zip"
    archive_path.write_bytes(b"stale")

    checksum = seal_archive(layout, archive_path)

    assert compute_sha256(archive_path) == checksum
    assert zipfile.is_zipfile(archive_path)


def test_launcher_prioritises_the_dependency_archive(tmp_path: Path) -> None:
    path = write_launcher(tmp_path / "etl.py", "etl", "etl.job:main", "etl-deps.zip")

    text = path.read_text(encoding="utf-8")
    assert 'ARCHIVE_NAME = "etl-deps.zip"' in text
    assert "from etl.job import main as entry_point" in text
    assert os.access(path, os.X_OK)
    compile(text, str(path), "exec")


def test_entry_point_must_name_module_and_function() -> None:
    assert parse_entry_point("etl.job:main") == ("etl.job", "main")
    with pytest.raises(ConfigurationError):
        parse_entry_point("etl.job")
    with pytest.raises(ConfigurationError):
        render_launcher("etl", "etl job:main", "etl-deps.zip")
