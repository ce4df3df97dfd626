"""Lock resolution through ``uv`` or an existing pinned lockfile."""

from __future__ import annotations

import logging
import shutil
import subprocess
import tempfile
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Iterable, List, Mapping, Optional, Protocol, Sequence

from ..errors import ResolutionUnavailableError, UnresolvableConstraintError
from .graph import ResolvedDependencyGraph, parse_pinned_lines, validate_graph
from .requirements import PackageRequirement, requirement_lines

logger = logging.getLogger(__name__)

_UNSATISFIABLE_MARKERS = (
    "no solution found",
    "unsatisfiable",
    "requirements are unsatisfiable",
    "because there is no version of",
)


@dataclass(frozen=True)
class ResolveTarget:
    """The interpreter and platform the lock must be valid for."""

    python_version: Optional[str] = None
    platform: Optional[str] = None
    environment: Optional[Mapping[str, str]] = field(default=None, compare=False, hash=False)


class LockResolver(Protocol):
    def resolve(
        self, requirements: Sequence[PackageRequirement], target: ResolveTarget
    ) -> ResolvedDependencyGraph:  # pragma: no cover - interface
        ...


def resolve(
    requirements: Sequence[PackageRequirement],
    resolver: LockResolver,
    *,
    target: Optional[ResolveTarget] = None,
    environment: Optional[Mapping[str, str]] = None,
    app: Optional[str] = None,
) -> ResolvedDependencyGraph:
    """Resolve requirements to a complete, validated transitive closure."""

    target = target or ResolveTarget()
    if environment is not None:
        target = replace(target, environment=environment)
    if not requirements:
        return ResolvedDependencyGraph()
    try:
        graph = resolver.resolve(requirements, target)
    except (UnresolvableConstraintError, ResolutionUnavailableError) as exc:
        if exc.app is None:
            exc.app = app
        raise
    except ValueError as exc:
        # Two pins for one package left after marker filtering, or an unreadable marker.
        raise UnresolvableConstraintError(
            f"Resolver returned an inconsistent lock: {exc}",
            requirements=requirement_lines(requirements),
            app=app,
        ) from exc
    logger.debug("Resolved %d package(s) for %s", len(graph), app or "requirements")
    return validate_graph(graph, requirements, environment=environment, app=app)


class UvCompileResolver:
    """Resolve through ``uv pip compile`` for the target interpreter and platform."""

    def __init__(
        self,
        *,
        uv_executable: Optional[str] = None,
        extra_args: Sequence[str] = (),
        timeout: Optional[float] = None,
    ) -> None:
        self.uv_executable = uv_executable
        self.extra_args = list(extra_args)
        self.timeout = timeout

    def resolve(
        self, requirements: Sequence[PackageRequirement], target: ResolveTarget
    ) -> ResolvedDependencyGraph:
        uv = _locate_uv(self.uv_executable)
        lines = requirement_lines(requirements)

        with tempfile.TemporaryDirectory(prefix="jobpack-lock-") as tmp_dir:
            req_path = Path(tmp_dir) / "requirements.in"
            output_file = Path(tmp_dir) / "requirements.txt"
            req_path.write_text("\n".join(lines) + "\n", encoding="utf-8")

            cmd = [
                uv,
                "pip",
                "compile",
                "--quiet",
                "--no-header",
                "--no-annotate",
                "--output-file",
                str(output_file),
            ]
            platform_arg = map_platform(target.platform) if target.platform else None
            if platform_arg:
                cmd.extend(["--python-platform", platform_arg])
            if target.python_version:
                cmd.extend(["--python-version", target.python_version])
            cmd.extend(self.extra_args)
            cmd.append(str(req_path))

            proc = _run(cmd, timeout=self.timeout)
            if proc.returncode != 0 or not output_file.exists():
                raise _classify_failure(proc, lines)
            resolved = output_file.read_text(encoding="utf-8").splitlines()

        return ResolvedDependencyGraph(parse_pinned_lines(resolved, target.environment))


class UvExportResolver:
    """Resolve from a uv project's lockfile with ``uv export``."""

    def __init__(
        self,
        project_dir: Path,
        *,
        uv_executable: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.project_dir = Path(project_dir)
        self.uv_executable = uv_executable
        self.timeout = timeout

    def resolve(
        self, requirements: Sequence[PackageRequirement], target: ResolveTarget
    ) -> ResolvedDependencyGraph:
        uv = _locate_uv(self.uv_executable)
        cmd = [
            uv,
            "export",
            "--quiet",
            "--no-dev",
            "--no-hashes",
            "--no-header",
            "--no-emit-project",
            "--format",
            "requirements-txt",
        ]
        proc = _run(cmd, cwd=self.project_dir, timeout=self.timeout)
        if proc.returncode != 0:
            raise _classify_failure(proc, requirement_lines(requirements))
        return ResolvedDependencyGraph(parse_pinned_lines(proc.stdout.splitlines(), target.environment))


class LockfileResolver:
    """Use an already pinned requirements file as the resolution result."""

    def __init__(self, lock_path: Path) -> None:
        self.lock_path = Path(lock_path)

    def resolve(
        self, requirements: Sequence[PackageRequirement], target: ResolveTarget
    ) -> ResolvedDependencyGraph:
        if not self.lock_path.exists():
            raise ResolutionUnavailableError(
                f"Lockfile not found: {self.lock_path}", detail=str(self.lock_path)
            )
        lines = self.lock_path.read_text(encoding="utf-8").splitlines()
        return ResolvedDependencyGraph(parse_pinned_lines(lines, target.environment))


def map_platform(platform: str) -> Optional[str]:
    normalized = platform.replace("_", "-").lower()
    mapping = {
        "linux": "linux",
        "linux-x86-64": "x86_64-unknown-linux-gnu",
        "linux-aarch64": "aarch64-unknown-linux-gnu",
        "linux-arm64": "aarch64-unknown-linux-gnu",
        "manylinux2014-x86-64": "x86_64-manylinux2014",
        "manylinux2014-aarch64": "aarch64-manylinux2014",
        "macos": "macos",
        "macos-x86-64": "x86_64-apple-darwin",
        "macos-arm64": "aarch64-apple-darwin",
        "windows": "windows",
        "windows-x86-64": "x86_64-pc-windows-msvc",
    }
    return mapping.get(normalized)


def _locate_uv(configured: Optional[str]) -> str:
    uv_executable = configured or shutil.which("uv")
    if uv_executable is None:
        raise ResolutionUnavailableError(
            "uv executable not found; install uv or set JOBPACK_UV", detail="uv not on PATH"
        )
    return uv_executable


def _run(
    cmd: List[str], *, cwd: Optional[Path] = None, timeout: Optional[float] = None
) -> subprocess.CompletedProcess:
    logger.debug("Running %s", " ".join(cmd))
    try:
        return subprocess.run(
            cmd,
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            check=False,
            timeout=timeout,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        raise ResolutionUnavailableError(f"Could not run {cmd[0]}: {exc}", detail=str(exc)) from exc


def _classify_failure(proc: subprocess.CompletedProcess, lines: Iterable[str]) -> Exception:
    stderr = (proc.stderr or "").strip()
    lowered = stderr.lower()
    if any(marker in lowered for marker in _UNSATISFIABLE_MARKERS):
        return UnresolvableConstraintError(
            f"No version assignment satisfies the requirements: {_last_lines(stderr)}",
            requirements=lines,
        )
    return ResolutionUnavailableError(
        f"Lock resolver failed with exit code {proc.returncode}: {_last_lines(stderr) or 'no output'}",
        detail=stderr,
    )


def _last_lines(text: str, count: int = 6) -> str:
    return " ".join(line.strip() for line in text.splitlines()[-count:] if line.strip())
