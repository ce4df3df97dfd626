from __future__ import annotations

import json
from contextlib import redirect_stdout
from io import StringIO
from pathlib import Path

from jobpack.cli import main

from .helpers import create_wheel


def _run_cli(argv: list[str]) -> tuple[int, dict]:
    buffer = StringIO()
    with redirect_stdout(buffer):
        code = main(argv)
    return code, json.loads(buffer.getvalue())


def _workspace(root: Path, lock: str) -> None:
    project = root / "apps" / "etl"
    (project / "src" / "etl").mkdir(parents=True)
    (project / "src" / "etl" / "__init__.py").write_text("", encoding="utf-8")
    (project / "src" / "etl" / "job.py").write_text("def main():\n    return 0\n", encoding="utf-8")
    (project / "requirements.lock").write_text(lock, encoding="utf-8")
    (project / "pyproject.toml").write_text(
        '[project]\nname = "etl"\ndependencies = ["pandas>=1.5", "requests"]\n\n'
        '[tool.jobpack]\nruntime = "glue-4.0"\nlockfile = "requirements.lock"\nentry-point = "etl.job:main"\n',
        encoding="utf-8",
    )
    create_wheel(root / "wheels", "requests", "2.28.2")
    create_wheel(root / "wheels", "pandas", "2.1.0")


def test_cli_build_command(tmp_path: Path) -> None:
    _workspace(tmp_path, "pandas==1.5.3\nnumpy==1.23.5\nrequests==2.28.2\n")

    code, payload = _run_cli(
        ["build", "--app", "etl", "--workspace-root", str(tmp_path), "--wheelhouse", str(tmp_path / "wheels")]
    )

    assert code == 0
    assert payload["status"] == "succeeded"
    archive_path = Path(payload["archive_path"])
    assert archive_path == tmp_path / "dist" / "etl-deps.zip"
    assert archive_path.exists()
    assert Path(payload["launcher_path"]).name == "etl.py"
    decisions = {item["name"]: item["classification"] for item in payload["report"]["decisions"]}
    assert decisions == {"numpy": "provided", "pandas": "provided", "requests": "bundle"}

    code, validation = _run_cli(["report", "validate", "--report", payload["report_path"]])
    assert code == 0
    assert validation["valid"] is True
    assert validation["checksum_match"] is True


def test_cli_report_validate_detects_tampering(tmp_path: Path) -> None:
    _workspace(tmp_path, "pandas==1.5.3\nnumpy==1.23.5\nrequests==2.28.2\n")
    _, payload = _run_cli(
        ["build", "--app", "etl", "--workspace-root", str(tmp_path), "--wheelhouse", str(tmp_path / "wheels")]
    )
    Path(payload["archive_path"]).write_bytes(b"tampered")

    code, validation = _run_cli(["report", "validate", "--report", payload["report_path"]])

    assert code == 1
    assert validation["checksum_match"] is False


def test_cli_build_conflict_exits_non_zero(tmp_path: Path) -> None:
    _workspace(tmp_path, "pandas==2.1.0\nnumpy==1.26.4\nrequests==2.28.2\n")

    code, payload = _run_cli(
        ["build", "--app", "etl", "--workspace-root", str(tmp_path), "--wheelhouse", str(tmp_path / "wheels")]
    )

    assert code == 1
    assert payload["status"] == "failed"
    error = payload["error"]
    assert error["type"] == "BundleConflictError"
    assert error["app"] == "etl"
    assert sorted(item["package"] for item in error["conflicts"]) == ["numpy", "pandas"]


def test_cli_bundle_dep_resolves_conflict(tmp_path: Path) -> None:
    _workspace(tmp_path, "pandas==2.1.0\nnumpy==1.23.5\nrequests==2.28.2\n")

    code, payload = _run_cli(
        [
            "build",
            "--app",
            "etl",
            "--workspace-root",
            str(tmp_path),
            "--wheelhouse",
            str(tmp_path / "wheels"),
            "--bundle-dep",
            "pandas",
        ]
    )

    assert code == 0
    assert payload["report"]["overrides"] == ["pandas"]


def test_cli_classify_and_resolve(tmp_path: Path) -> None:
    _workspace(tmp_path, "pandas==2.1.0\nnumpy==1.23.5\nrequests==2.28.2\n")

    code, resolved = _run_cli(["resolve", "--app", "etl", "--workspace-root", str(tmp_path)])
    assert code == 0
    assert resolved["resolved"] == {"numpy": "1.23.5", "pandas": "2.1.0", "requests": "2.28.2"}

    code, classified = _run_cli(["classify", "--app", "etl", "--workspace-root", str(tmp_path)])
    assert code == 0
    assert [item["package"] for item in classified["conflicts"]] == ["pandas"]


def test_cli_build_all_reports_each_app(tmp_path: Path) -> None:
    _workspace(tmp_path, "pandas==2.1.0\nnumpy==1.23.5\nrequests==2.28.2\n")

    code, payload = _run_cli(
        [
            "build-all",
            "--workspace-root",
            str(tmp_path),
            "--wheelhouse",
            str(tmp_path / "wheels"),
            "--conflict-policy",
            "warn",
        ]
    )

    assert code == 0
    assert [item["status"] for item in payload["apps"]] == ["succeeded"]
    assert payload["failed"] == []


def test_cli_runtime_commands() -> None:
    code, listing = _run_cli(["runtime", "list"])
    assert code == 0
    assert "glue-4.0" in listing["runtimes"]

    code, manifest = _run_cli(["runtime", "show", "glue-4.0"])
    assert code == 0
    assert manifest["packages"]["pandas"] == "[1.5, 1.6)"

    code, failure = _run_cli(["runtime", "show", "emr-9000"])
    assert code == 1
    assert failure["error"]["type"] == "ConfigurationError"
