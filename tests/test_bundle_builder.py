from __future__ import annotations

import json
import zipfile
from datetime import datetime, timezone
from pathlib import Path

import pytest

from jobpack.bundle.builder import BuildConfig, BundleBuilder
from jobpack.bundle.manifest import load_report
from jobpack.bundle.sources import WheelhouseSource
from jobpack.bundle.utils import compute_sha256
from jobpack.errors import BundleConflictError, ConfigurationError, PackagingConflictError, ResolutionUnavailableError
from jobpack.resolve.requirements import PackageRequirement
from jobpack.schemas.runtime import RuntimeManifest

from .helpers import StaticResolver, create_wheel

PINS = {"pandas": "2.1.0", "numpy": "1.26.4", "requests": "2.31.0", "idna": "3.6"}
DEPENDENCIES = {"pandas": ["numpy"], "requests": ["idna"]}


def _config(tmp_path: Path, source: Path, runtime: RuntimeManifest, *lines: str, **kwargs: object) -> BuildConfig:
    return BuildConfig(
        app="etl",
        source_dir=source,
        output_dir=tmp_path / "dist",
        requirements=[PackageRequirement.parse(line) for line in lines],
        runtime=runtime,
        built_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        **kwargs,
    )


def _wheelhouse(tmp_path: Path) -> Path:
    wheelhouse = tmp_path / "wheels"
    for name, version in PINS.items():
        create_wheel(wheelhouse, name, version)
    create_wheel(wheelhouse, "numpy", "1.24.0")
    return wheelhouse


def test_bundle_builder_creates_archive(tmp_path: Path, app_source: Path, pandas_runtime: RuntimeManifest) -> None:
    builder = BundleBuilder(StaticResolver(PINS, DEPENDENCIES), WheelhouseSource(_wheelhouse(tmp_path)))
    config = _config(tmp_path, app_source, pandas_runtime, "pandas>=2.0", "requests", entry_point="etl.job:main")

    result = builder.build(config)

    assert result.archive_path == tmp_path / "dist" / "etl-deps.zip"
    assert result.checksum == compute_sha256(result.archive_path)
    with zipfile.ZipFile(result.archive_path) as archive:
        names = archive.namelist()
    assert names[:2] == ["etl/__init__.py", "etl/job.py"]
    assert "requests/__init__.py" in names
    assert "idna/__init__.py" in names
    assert not any(name.startswith(("pandas/", "numpy/")) for name in names)

    assert result.requirements_path.read_text(encoding="utf-8") == "idna==3.6\nrequests==2.31.0\n"
    assert result.launcher_path == tmp_path / "dist" / "etl.py"
    assert (tmp_path / "dist" / "etl-manifest.txt").exists()

    report = load_report(result.report_path)
    assert report.artifact.checksum.sha256 == result.checksum
    assert [item.name for item in report.bundled()] == ["idna", "requests"]
    assert [item.name for item in report.provided()] == ["numpy", "pandas"]
    assert report.launcher == "etl.py"
    payload = json.loads(result.report_path.read_text(encoding="utf-8"))
    assert payload["artifact"]["files"]["application"] == 2


def test_rebuild_produces_identical_archive(tmp_path: Path, app_source: Path, pandas_runtime: RuntimeManifest) -> None:
    builder = BundleBuilder(StaticResolver(PINS, DEPENDENCIES), WheelhouseSource(_wheelhouse(tmp_path)))
    config = _config(tmp_path, app_source, pandas_runtime, "requests")

    first = builder.build(config)
    first_bytes = first.archive_path.read_bytes()
    second = builder.build(config)

    assert second.checksum == first.checksum
    assert second.archive_path.read_bytes() == first_bytes


def test_conflicting_pin_fails_the_build(tmp_path: Path, app_source: Path, pandas_runtime: RuntimeManifest) -> None:
    pins = dict(PINS, numpy="1.24.0")
    builder = BundleBuilder(StaticResolver(pins), WheelhouseSource(_wheelhouse(tmp_path)))
    config = _config(tmp_path, app_source, pandas_runtime, "numpy==1.24.0")

    with pytest.raises(BundleConflictError) as excinfo:
        builder.build(config)

    error = excinfo.value
    assert error.app == "etl"
    assert [item.package for item in error.conflicts] == ["numpy"]
    assert "1.24.0" in str(error)
    assert "[1.25.0, 2.0)" in str(error)
    assert not (tmp_path / "dist" / "etl-deps.zip").exists()


def test_override_bundles_conflicting_package(tmp_path: Path, app_source: Path, pandas_runtime: RuntimeManifest) -> None:
    pins = dict(PINS, numpy="1.24.0")
    builder = BundleBuilder(StaticResolver(pins), WheelhouseSource(_wheelhouse(tmp_path)))
    config = _config(tmp_path, app_source, pandas_runtime, "numpy==1.24.0", overrides=["numpy"])

    result = builder.build(config)

    assert "numpy/__init__.py" in result.layout.paths()
    assert result.report.overrides == ["numpy"]
    assert result.requirements_path.read_text(encoding="utf-8") == "numpy==1.24.0\n"


def test_warn_policy_records_conflicts_and_uses_runtime_copy(
    tmp_path: Path, app_source: Path, pandas_runtime: RuntimeManifest, caplog: pytest.LogCaptureFixture
) -> None:
    pins = dict(PINS, numpy="1.24.0")
    builder = BundleBuilder(StaticResolver(pins), WheelhouseSource(_wheelhouse(tmp_path)))
    config = _config(tmp_path, app_source, pandas_runtime, "numpy==1.24.0", conflict_policy="warn")

    with caplog.at_level("WARNING", logger="jobpack.bundle.builder"):
        result = builder.build(config)

    assert result.report.conflict_policy == "warn"
    assert [item.package for item in result.report.conflicts] == ["numpy"]
    assert "numpy/__init__.py" not in result.layout.paths()
    assert "using the runtime copy" in caplog.text


def test_bundled_packages_colliding_on_a_path_fail(tmp_path: Path, app_source: Path) -> None:
    wheelhouse = tmp_path / "wheels"
    create_wheel(wheelhouse, "pkg-a", "1.0", files={"shared/utils.py": "A = 1\n"})
    create_wheel(wheelhouse, "pkg-b", "1.0", files={"shared/utils.py": "B = 2\n"})
    builder = BundleBuilder(StaticResolver({"pkg-a": "1.0", "pkg-b": "1.0"}), WheelhouseSource(wheelhouse))
    config = _config(tmp_path, app_source, RuntimeManifest.empty(), "pkg-a", "pkg-b")

    with pytest.raises(PackagingConflictError) as excinfo:
        builder.build(config)

    assert excinfo.value.path == "shared/utils.py"
    assert excinfo.value.origins == ["pkg-a==1.0", "pkg-b==1.0"]


def test_missing_wheel_is_reported_with_app(tmp_path: Path, app_source: Path) -> None:
    builder = BundleBuilder(StaticResolver({"requests": "2.31.0"}), WheelhouseSource(tmp_path / "empty"))
    config = _config(tmp_path, app_source, RuntimeManifest.empty(), "requests")

    with pytest.raises(ResolutionUnavailableError) as excinfo:
        builder.build(config)

    assert excinfo.value.app == "etl"


def test_local_library_is_vendored_not_resolved(tmp_path: Path, app_source: Path, pandas_runtime: RuntimeManifest) -> None:
    library = tmp_path / "libraries" / "shared"
    (library / "src" / "shared").mkdir(parents=True)
    (library / "src" / "shared" / "__init__.py").write_text("VALUE = 1\n", encoding="utf-8")
    (library / "pyproject.toml").write_text('[project]\nname = "shared"\n', encoding="utf-8")
    resolver = StaticResolver(dict(PINS, shared="0.1.0"), {"requests": ["idna", "shared"]})
    builder = BundleBuilder(resolver, WheelhouseSource(_wheelhouse(tmp_path)))
    config = _config(tmp_path, app_source, pandas_runtime, "requests", local_libraries=[library])

    result = builder.build(config)

    assert "shared/__init__.py" in result.layout.paths()
    assert result.layout.entry("shared/__init__.py").origin == "library:shared"
    assert "shared" not in result.partition.by_name()
    assert result.report.local_libraries == ["shared"]


def test_invalid_entry_point_fails_before_anything_is_written(
    tmp_path: Path, app_source: Path, pandas_runtime: RuntimeManifest
) -> None:
    resolver = StaticResolver(PINS, DEPENDENCIES)
    builder = BundleBuilder(resolver, WheelhouseSource(_wheelhouse(tmp_path)))
    config = _config(tmp_path, app_source, pandas_runtime, "requests", entry_point="not a valid entry")

    with pytest.raises(ConfigurationError) as excinfo:
        builder.build(config)

    assert excinfo.value.app == "etl"
    assert resolver.calls == []
    assert not (tmp_path / "dist").exists()
