"""Bundle assembly orchestration."""

from __future__ import annotations

import logging
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Sequence

from packaging.utils import canonicalize_name

from ..errors import BundleConflictError, JobpackError
from ..resolve.graph import ResolvedDependencyGraph
from ..resolve.locks import LockResolver, ResolveTarget, resolve
from ..resolve.requirements import PackageRequirement, read_project_name, requirement_lines, target_environment
from ..schemas.report import BundleReport
from ..schemas.runtime import RuntimeManifest
from .archive import seal_archive
from .classify import Partition, classify
from .launcher import parse_entry_point, write_launcher
from .layout import ArtifactLayout, build_artifact
from .manifest import dump_report, render_report_text
from .sources import DEFAULT_EXCLUDES, PackageFiles, PackageSource, application_files, library_files
from .utils import write_text

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class BuildConfig:
    """Configuration describing one application build."""

    app: str
    source_dir: Path
    output_dir: Path
    requirements: Sequence[PackageRequirement]
    runtime: RuntimeManifest
    overrides: Sequence[str] = ()
    local_libraries: Sequence[Path] = ()
    excludes: Sequence[str] = DEFAULT_EXCLUDES
    entry_point: Optional[str] = None
    conflict_policy: str = "fail"
    built_at: Optional[datetime] = None


@dataclass(slots=True)
class BuildResult:
    app: str
    archive_path: Path
    report_path: Path
    requirements_path: Path
    checksum: str
    partition: Partition
    layout: ArtifactLayout
    report: BundleReport
    launcher_path: Optional[Path] = None
    logs: List[str] = field(default_factory=list)


class BundleBuilder:
    """Runs resolve → classify → build_artifact → seal for one application."""

    def __init__(self, resolver: LockResolver, source: PackageSource) -> None:
        self.resolver = resolver
        self.source = source

    def resolve(self, config: BuildConfig) -> ResolvedDependencyGraph:
        environment = target_environment(config.runtime.python, config.runtime.platform)
        target = ResolveTarget(
            python_version=config.runtime.python, platform=config.runtime.platform, environment=environment
        )
        graph = resolve(
            list(config.requirements),
            self.resolver,
            target=target,
            environment=environment,
            app=config.app,
        )
        # Local libraries are vendored from source, never resolved or provided.
        return graph.without(_library_names(config.local_libraries))

    def plan(self, config: BuildConfig) -> Partition:
        """Resolve and classify without touching the filesystem outputs."""

        graph = self.resolve(config)
        partition = classify(graph, config.runtime, config.overrides)
        self._apply_conflict_policy(config, partition)
        return partition

    def build(self, config: BuildConfig) -> BuildResult:
        """Build the sealed artifact and its side outputs for one application."""

        if config.entry_point:
            try:
                parse_entry_point(config.entry_point)
            except JobpackError as exc:
                exc.app = config.app
                raise

        logs: List[str] = []
        partition = self.plan(config)
        bundled = partition.bundled_packages()
        logs.append(
            f"{len(partition.bundle)} bundled, {len(partition.provided)} provided, "
            f"{len(partition.conflict)} conflicting package(s)"
        )

        output_dir = config.output_dir
        archive_path = output_dir / f"{config.app}-deps.zip"
        with tempfile.TemporaryDirectory(prefix=f"jobpack-{config.app}-") as tmp_dir:
            staging_root = Path(tmp_dir)
            package_files: List[PackageFiles] = []
            for package in bundled:
                logger.debug("Fetching %s for %s", package.pin(), config.app)
                try:
                    package_files.append(self.source.fetch(package, staging_root))
                except JobpackError as exc:
                    if exc.app is None:
                        exc.app = config.app
                    raise

            app_files = application_files(config.app, config.source_dir, config.excludes)
            libraries = [library_files(path, config.excludes) for path in config.local_libraries]
            layout = build_artifact(package_files, [app_files], libraries, app=config.app)
            checksum = seal_archive(layout, archive_path)
        logs.append(f"Archive written to {archive_path}")

        requirements_path = output_dir / f"{config.app}-requirements.txt"
        write_text(requirements_path, "".join(f"{package.pin()}\n" for package in bundled))
        logs.append(f"Requirements written to {requirements_path}")

        launcher_path: Optional[Path] = None
        if config.entry_point:
            launcher_path = write_launcher(
                output_dir / f"{config.app}.py", config.app, config.entry_point, archive_path.name
            )
            logs.append(f"Launcher written to {launcher_path}")

        report = _build_report(config, partition, layout, archive_path, checksum, launcher_path)
        report_path = output_dir / f"{config.app}-report.json"
        dump_report(report, report_path)
        write_text(output_dir / f"{config.app}-manifest.txt", render_report_text(report))
        logs.append(f"Report written to {report_path}")

        return BuildResult(
            app=config.app,
            archive_path=archive_path,
            report_path=report_path,
            requirements_path=requirements_path,
            checksum=checksum,
            partition=partition,
            layout=layout,
            report=report,
            launcher_path=launcher_path,
            logs=logs,
        )

    def _apply_conflict_policy(self, config: BuildConfig, partition: Partition) -> None:
        if not partition.conflict:
            return
        conflicts = partition.conflicts()
        if config.conflict_policy != "warn":
            raise BundleConflictError(conflicts, runtime=config.runtime.runtime, app=config.app)
        for record in conflicts:
            logger.warning(
                "[%s] %s %s conflicts with runtime %s range %s; using the runtime copy",
                config.app,
                record.package,
                record.resolved_version,
                config.runtime.runtime,
                record.manifest_range,
            )


def _library_names(paths: Sequence[Path]) -> List[str]:
    names = []
    for path in paths:
        names.append(canonicalize_name(Path(path).name))
        project_name = read_project_name(Path(path))
        if project_name:
            names.append(project_name)
    return names


def _build_report(
    config: BuildConfig,
    partition: Partition,
    layout: ArtifactLayout,
    archive_path: Path,
    checksum: str,
    launcher_path: Optional[Path],
) -> BundleReport:
    built_at = config.built_at or datetime.now(timezone.utc)
    payload = {
        "app": config.app,
        "runtime": config.runtime.runtime,
        "python": config.runtime.python,
        "built_at": built_at,
        "conflict_policy": "warn" if config.conflict_policy == "warn" else "fail",
        "requirements": requirement_lines(list(config.requirements)),
        "overrides": sorted(canonicalize_name(name) for name in config.overrides),
        "local_libraries": [Path(path).name for path in config.local_libraries],
        "decisions": [
            {
                "name": decision.name,
                "version": decision.version,
                "classification": decision.classification.value,
                "reason": decision.reason,
                "manifest_range": decision.manifest_range,
            }
            for decision in partition.decisions()
        ],
        "conflicts": [record.to_dict() for record in partition.conflicts()],
        "artifact": {
            "archive": archive_path.name,
            "checksum": {"sha256": checksum},
            "files": layout.summary(),
            "origins": layout.origins(),
            "shadowed": [item.to_dict() for item in layout.shadowed],
        },
        "launcher": launcher_path.name if launcher_path else None,
    }
    return BundleReport.model_validate(payload)
