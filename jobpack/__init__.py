"""Dependency bundling for Python applications on managed job runtimes."""

__version__ = "0.1.0"
from .bundle import ArtifactLayout, BuildConfig, BuildResult, BundleBuilder, Partition, build_artifact, classify
from .errors import (
    BundleConflictError,
    ConfigurationError,
    JobpackError,
    PackagingConflictError,
    ResolutionUnavailableError,
    UnresolvableConstraintError,
)
from .resolve import PackageRequirement, ResolvedDependencyGraph, resolve
from .runtimes import load_runtime_manifest
from .schemas import BundleReport, RuntimeManifest

__all__ = [
    "__version__",
    "ArtifactLayout",
    "BuildConfig",
    "BuildResult",
    "BundleBuilder",
    "BundleConflictError",
    "BundleReport",
    "ConfigurationError",
    "JobpackError",
    "PackageRequirement",
    "PackagingConflictError",
    "Partition",
    "ResolutionUnavailableError",
    "ResolvedDependencyGraph",
    "RuntimeManifest",
    "UnresolvableConstraintError",
    "build_artifact",
    "classify",
    "load_runtime_manifest",
    "resolve",
]
