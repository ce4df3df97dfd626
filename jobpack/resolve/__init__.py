"""Requirement parsing and lock resolution."""

from .graph import ResolvedDependencyGraph, ResolvedPackage
from .locks import LockfileResolver, LockResolver, ResolveTarget, UvCompileResolver, UvExportResolver, resolve
from .requirements import PackageRequirement, merge_requirements
from .versions import VersionRange

__all__ = [
    "LockResolver",
    "LockfileResolver",
    "PackageRequirement",
    "ResolveTarget",
    "ResolvedDependencyGraph",
    "ResolvedPackage",
    "UvCompileResolver",
    "UvExportResolver",
    "VersionRange",
    "merge_requirements",
    "resolve",
]
