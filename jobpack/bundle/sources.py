"""Sources of the physical files that end up in an artifact."""

from __future__ import annotations

import fnmatch
import logging
import shutil
import subprocess
import zipfile
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Iterable, List, Optional, Protocol, Sequence

from packaging.utils import InvalidWheelFilename, canonicalize_name, parse_wheel_filename
from packaging.version import Version

from ..errors import ConfigurationError, ResolutionUnavailableError
from ..resolve.graph import ResolvedPackage
from ..resolve.locks import map_platform

logger = logging.getLogger(__name__)

DEFAULT_EXCLUDES: tuple[str, ...] = (
    "__pycache__",
    "*.pyc",
    "*.pyo",
    "*.egg-info",
)


@dataclass(frozen=True)
class PackageFiles:
    """Files contributed by one origin, relative to ``root``."""

    origin: str
    root: Path
    files: tuple[str, ...]


class PackageSource(Protocol):
    def fetch(self, package: ResolvedPackage, staging_dir: Path) -> PackageFiles:  # pragma: no cover - interface
        ...


def collect_tree(
    origin: str,
    root: Path,
    excludes: Sequence[str] = DEFAULT_EXCLUDES,
    *,
    skip_top_level: Iterable[str] = (),
) -> PackageFiles:
    """Walk ``root`` and return every file not matched by an exclude pattern."""

    skipped = set(skip_top_level)
    files: List[str] = []
    for path in root.rglob("*"):
        if not path.is_file():
            continue
        relative = path.relative_to(root).as_posix()
        if relative.split("/", 1)[0] in skipped:
            continue
        if is_excluded(relative, excludes):
            continue
        files.append(relative)
    return PackageFiles(origin=origin, root=root, files=tuple(sorted(files)))


def is_excluded(relative: str, patterns: Sequence[str]) -> bool:
    parts = PurePosixPath(relative).parts
    for pattern in patterns:
        if fnmatch.fnmatch(relative, pattern):
            return True
        if any(fnmatch.fnmatch(part, pattern) for part in parts):
            return True
    return False


def application_files(app_name: str, source_dir: Path, excludes: Sequence[str] = DEFAULT_EXCLUDES) -> PackageFiles:
    if not source_dir.is_dir():
        raise ConfigurationError(f"Application source directory not found: {source_dir}", app=app_name)
    return collect_tree(f"app:{app_name}", source_dir, excludes)


def library_files(library_dir: Path, excludes: Sequence[str] = DEFAULT_EXCLUDES) -> PackageFiles:
    """Vendored source of an intra-repo library, from its ``src`` layout when present."""

    if not library_dir.is_dir():
        raise ConfigurationError(f"Local library not found: {library_dir}")
    root = library_dir / "src" if (library_dir / "src").is_dir() else library_dir
    skip = ("tests", "pyproject.toml", "README.md", "uv.lock", ".venv", "dist", "build")
    return collect_tree(f"library:{library_dir.name}", root, excludes, skip_top_level=skip)


class WheelhouseSource:
    """Unpack bundled packages from a directory of pre-built wheels."""

    def __init__(self, wheelhouse: Path, excludes: Sequence[str] = DEFAULT_EXCLUDES) -> None:
        self.wheelhouse = Path(wheelhouse)
        self.excludes = tuple(excludes)

    def find_wheel(self, package: ResolvedPackage) -> Optional[Path]:
        wanted = Version(package.version)
        for candidate in sorted(self.wheelhouse.glob("*.whl")):
            try:
                name, version, _, _ = parse_wheel_filename(candidate.name)
            except InvalidWheelFilename:
                logger.debug("Ignoring unparseable wheel name %s", candidate.name)
                continue
            if canonicalize_name(name) == package.name and version == wanted:
                return candidate
        return None

    def fetch(self, package: ResolvedPackage, staging_dir: Path) -> PackageFiles:
        wheel = self.find_wheel(package)
        if wheel is None:
            raise ResolutionUnavailableError(
                f"No wheel for {package.pin()} in {self.wheelhouse}",
                detail=str(self.wheelhouse),
            )
        target = staging_dir / package.pin().replace("==", "-")
        unpack_wheel(wheel, target)
        return collect_tree(package.pin(), target, self.excludes)


class UvInstallSource:
    """Install each bundled package into its own staging tree with ``uv pip install --target``."""

    def __init__(
        self,
        *,
        uv_executable: Optional[str] = None,
        python_version: Optional[str] = None,
        platform: Optional[str] = None,
        excludes: Sequence[str] = DEFAULT_EXCLUDES,
        extra_args: Sequence[str] = (),
        timeout: Optional[float] = None,
    ) -> None:
        self.uv_executable = uv_executable
        self.python_version = python_version
        self.platform = platform
        self.excludes = tuple(excludes)
        self.extra_args = list(extra_args)
        self.timeout = timeout

    def fetch(self, package: ResolvedPackage, staging_dir: Path) -> PackageFiles:
        uv = self.uv_executable or shutil.which("uv")
        if uv is None:
            raise ResolutionUnavailableError("uv executable not found; install uv or set JOBPACK_UV")
        target = staging_dir / package.pin().replace("==", "-")
        cmd = [uv, "pip", "install", "--quiet", "--no-deps", "--target", str(target)]
        platform_arg = map_platform(self.platform) if self.platform else None
        if platform_arg:
            cmd.extend(["--python-platform", platform_arg, "--only-binary", ":all:"])
        if self.python_version:
            cmd.extend(["--python-version", self.python_version])
        cmd.extend(self.extra_args)
        cmd.append(package.pin())

        logger.debug("Running %s", " ".join(cmd))
        try:
            proc = subprocess.run(cmd, capture_output=True, text=True, check=False, timeout=self.timeout)
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise ResolutionUnavailableError(f"Could not install {package.pin()}: {exc}", detail=str(exc)) from exc
        if proc.returncode != 0:
            raise ResolutionUnavailableError(
                f"Installing {package.pin()} failed with exit code {proc.returncode}",
                detail=(proc.stderr or "").strip(),
            )
        return collect_tree(package.pin(), target, self.excludes, skip_top_level=("bin",))


def unpack_wheel(wheel: Path, target: Path) -> None:
    """Extract a wheel, folding ``.data/purelib`` and ``.data/platlib`` into the root."""

    target.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(wheel) as archive:
        for info in archive.infolist():
            if info.is_dir():
                continue
            name = info.filename
            parts = name.split("/")
            if parts[0].endswith(".data"):
                if len(parts) < 3 or parts[1] not in {"purelib", "platlib"}:
                    continue
                name = "/".join(parts[2:])
            destination = (target / name).resolve()
            if not destination.is_relative_to(target.resolve()):
                raise ConfigurationError(f"Wheel {wheel.name} contains unsafe path '{info.filename}'")
            destination.parent.mkdir(parents=True, exist_ok=True)
            with archive.open(info) as source, destination.open("wb") as handle:
                shutil.copyfileobj(source, handle)
