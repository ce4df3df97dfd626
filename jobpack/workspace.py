"""Monorepo discovery and multi-application builds.

A workspace is a monorepo laid out as::

    apps/<app>/pyproject.toml        application projects, sources in src/
    libraries/<lib>/pyproject.toml   shared libraries vendored into each app
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from packaging.utils import canonicalize_name

from .bundle.builder import BuildConfig, BuildResult, BundleBuilder
from .bundle.sources import PackageSource, UvInstallSource, WheelhouseSource
from .config import AppConfig, Settings, load_app_config
from .errors import ConfigurationError, JobpackError
from .resolve.locks import LockfileResolver, LockResolver, UvCompileResolver, UvExportResolver
from .resolve.requirements import (
    PackageRequirement,
    merge_requirements,
    read_project_name,
    read_project_requirements,
    read_requirements_file,
)
from .runtimes import load_runtime_manifest
from .schemas.runtime import RuntimeManifest

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class BuildOutcome:
    app: str
    result: Optional[BuildResult] = None
    error: Optional[JobpackError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, object]:
        if self.error is not None:
            return {"app": self.app, "status": "failed", "error": self.error.to_dict()}
        assert self.result is not None
        return {
            "app": self.app,
            "status": "succeeded",
            "archive_path": str(self.result.archive_path),
            "report_path": str(self.result.report_path),
            "checksum": {"sha256": self.result.checksum},
            "logs": list(self.result.logs),
        }


class Workspace:
    def __init__(self, root: Path, settings: Optional[Settings] = None) -> None:
        self.root = Path(root).resolve()
        self.settings = settings or Settings()
        self.apps_dir = self.root / "apps"
        self.libraries_dir = self.root / "libraries"

    def discover_apps(self) -> List[str]:
        return _projects_in(self.apps_dir)

    def discover_libraries(self) -> List[str]:
        return _projects_in(self.libraries_dir)

    def app_config(self, name: str, **overrides: object) -> AppConfig:
        project_dir = self.apps_dir / name
        if not (project_dir / "pyproject.toml").is_file():
            known = ", ".join(self.discover_apps()) or "none"
            raise ConfigurationError(f"Application '{name}' not found in {self.apps_dir} (found: {known})")
        return load_app_config(project_dir, **overrides)

    def library_dirs(self, config: AppConfig) -> List[Path]:
        """Resolve ``local_libraries`` entries to directories, by name or path."""

        directories: List[Path] = []
        for reference in config.local_libraries:
            candidates = [config.project_dir / reference, self.libraries_dir / reference]
            found = next((path.resolve() for path in candidates if path.is_dir()), None)
            if found is None:
                raise ConfigurationError(f"Local library '{reference}' not found", app=config.name)
            directories.append(found)
        return directories

    def effective_requirements(self, config: AppConfig, library_dirs: Sequence[Path]) -> List[PackageRequirement]:
        """Merge library, project and requirement-file declarations, last one wins.

        Libraries come first so the application's own declaration of a
        package replaces a library's. Local libraries themselves are dropped
        since they are vendored rather than installed.
        """

        groups: List[List[PackageRequirement]] = []
        library_names = set()
        for library in library_dirs:
            library_names.add(canonicalize_name(library.name))
            project_name = read_project_name(library)
            if project_name:
                library_names.add(project_name)
            if (library / "pyproject.toml").exists():
                groups.append(read_project_requirements(library))
        if (config.project_dir / "pyproject.toml").exists():
            groups.append(read_project_requirements(config.project_dir))
        for relative in config.requirements_files:
            groups.append(read_requirements_file(config.project_dir / relative))

        merged = merge_requirements(groups)
        return [requirement for requirement in merged if requirement.name not in library_names]

    def runtime_for(self, config: AppConfig, runtime: Optional[str] = None) -> RuntimeManifest:
        reference = runtime or config.runtime or self.settings.runtime
        if not reference:
            raise ConfigurationError("No runtime configured; set [tool.jobpack].runtime or --runtime", app=config.name)
        path = Path(reference)
        if not path.is_absolute() and (self.root / path).exists():
            reference = str(self.root / path)
        return load_runtime_manifest(reference)

    def build_config(self, config: AppConfig, runtime: RuntimeManifest, output_dir: Optional[Path] = None) -> BuildConfig:
        library_dirs = self.library_dirs(config)
        try:
            requirements = self.effective_requirements(config, library_dirs)
        except FileNotFoundError as exc:
            raise ConfigurationError(str(exc), app=config.name) from exc
        return BuildConfig(
            app=config.name,
            source_dir=config.source_path,
            output_dir=Path(output_dir or self.settings.output_dir or self.root / "dist"),
            requirements=requirements,
            runtime=runtime,
            overrides=list(config.bundle_deps),
            local_libraries=library_dirs,
            excludes=list(config.exclude),
            entry_point=config.entry_point,
            conflict_policy=config.conflict_policy,
        )

    def resolver_for(self, config: AppConfig) -> LockResolver:
        if config.lockfile:
            return LockfileResolver(config.project_dir / config.lockfile)
        if config.resolver == "export":
            return UvExportResolver(config.project_dir, uv_executable=self.settings.uv)
        return UvCompileResolver(uv_executable=self.settings.uv)

    def source_for(self, config: AppConfig, runtime: RuntimeManifest) -> PackageSource:
        if self.settings.wheelhouse:
            return WheelhouseSource(self.settings.wheelhouse, config.exclude)
        return UvInstallSource(
            uv_executable=self.settings.uv,
            python_version=runtime.python,
            platform=runtime.platform,
            excludes=config.exclude,
        )


BuilderFactory = Callable[[AppConfig, RuntimeManifest], BundleBuilder]


def build_apps(
    workspace: Workspace,
    names: Sequence[str],
    *,
    runtime: Optional[RuntimeManifest] = None,
    output_dir: Optional[Path] = None,
    builder_factory: Optional[BuilderFactory] = None,
    max_workers: Optional[int] = None,
    config_overrides: Optional[Dict[str, object]] = None,
) -> List[BuildOutcome]:
    """Build several applications concurrently.

    Runtime manifests are loaded once, before any build starts, and every
    build of the batch sees the same snapshot. A failed application is
    reported in its outcome and does not stop the others.
    """

    def default_factory(config: AppConfig, manifest: RuntimeManifest) -> BundleBuilder:
        return BundleBuilder(workspace.resolver_for(config), workspace.source_for(config, manifest))

    factory = builder_factory or default_factory
    overrides = dict(config_overrides or {})

    outcomes: Dict[str, BuildOutcome] = {}
    planned: Dict[str, tuple[AppConfig, RuntimeManifest]] = {}
    snapshots: Dict[str, RuntimeManifest] = {}
    for name in names:
        try:
            config = workspace.app_config(name, **overrides)
            if runtime is not None:
                manifest = runtime
            else:
                reference = config.runtime or workspace.settings.runtime or ""
                if reference not in snapshots:
                    snapshots[reference] = workspace.runtime_for(config)
                manifest = snapshots[reference]
            planned[name] = (config, manifest)
        except JobpackError as exc:
            outcomes[name] = _failed(name, exc)

    def build_one(name: str) -> BuildOutcome:
        config, manifest = planned[name]
        try:
            build_config = workspace.build_config(config, manifest, output_dir)
            result = factory(config, manifest).build(build_config)
        except JobpackError as exc:
            return _failed(config.name, exc)
        except Exception as exc:
            logger.exception("Unexpected failure building %s", config.name)
            error = JobpackError(f"Unexpected {type(exc).__name__}: {exc}", app=config.name)
            error.__cause__ = exc
            return BuildOutcome(app=config.name, error=error)
        logger.info("Built %s -> %s", config.name, result.archive_path)
        return BuildOutcome(app=config.name, result=result)

    workers = max(1, max_workers or workspace.settings.workers)
    with ThreadPoolExecutor(max_workers=workers) as executor:
        for name, outcome in zip(planned, executor.map(build_one, planned)):
            outcomes[name] = outcome
    return [outcomes[name] for name in names]


def _failed(app: str, exc: JobpackError) -> BuildOutcome:
    if exc.app is None:
        exc.app = app
    logger.error("%s", exc)
    return BuildOutcome(app=app, error=exc)


def _projects_in(directory: Path) -> List[str]:
    if not directory.is_dir():
        return []
    return sorted(
        child.name for child in directory.iterdir() if child.is_dir() and (child / "pyproject.toml").exists()
    )
