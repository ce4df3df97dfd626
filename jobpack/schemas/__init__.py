"""Schema definitions for runtime manifests and build reports."""

from .report import BundleReport, ConflictEntry, PackageDecisionEntry
from .runtime import RuntimeManifest

__all__ = [
    "BundleReport",
    "ConflictEntry",
    "PackageDecisionEntry",
    "RuntimeManifest",
]
