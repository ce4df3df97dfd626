from __future__ import annotations

from pathlib import Path

import pytest

from jobpack.schemas.runtime import RuntimeManifest


@pytest.fixture
def pandas_runtime() -> RuntimeManifest:
    return RuntimeManifest(
        runtime="test-runtime",
        python="3.10",
        platform="linux-x86_64",
        packages={"pandas": "[2.0, 3.0)", "numpy": "[1.25.0, 2.0)"},
    )


@pytest.fixture
def app_source(tmp_path: Path) -> Path:
    source = tmp_path / "apps" / "etl" / "src"
    (source / "etl").mkdir(parents=True)
    (source / "etl" / "__init__.py").write_text("", encoding="utf-8")
    (source / "etl" / "job.py").write_text("def main():\n    return 0\n", encoding="utf-8")
    return source
