"""Bundle assembly utilities."""

from .builder import BuildConfig, BuildResult, BundleBuilder
from .classify import BundleDecision, Classification, Partition, classify
from .layout import ArtifactLayout, Layer, build_artifact
from .manifest import dump_report, load_report

__all__ = [
    "ArtifactLayout",
    "BuildConfig",
    "BuildResult",
    "BundleBuilder",
    "BundleDecision",
    "Classification",
    "Layer",
    "Partition",
    "build_artifact",
    "classify",
    "dump_report",
    "load_report",
]
