"""Provided / bundle / conflict classification of a resolved graph."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional

from packaging.utils import canonicalize_name

from ..errors import ConflictRecord
from ..resolve.graph import ResolvedDependencyGraph, ResolvedPackage
from ..schemas.runtime import RuntimeManifest


class Classification(str, Enum):
    PROVIDED = "provided"
    BUNDLE = "bundle"
    CONFLICT = "conflict"


@dataclass(frozen=True)
class BundleDecision:
    package: ResolvedPackage
    classification: Classification
    reason: str
    manifest_range: Optional[str] = None

    @property
    def name(self) -> str:
        return self.package.name

    @property
    def version(self) -> str:
        return self.package.version

    def to_conflict(self) -> ConflictRecord:
        return ConflictRecord(
            package=self.name,
            resolved_version=self.version,
            manifest_range=self.manifest_range or "",
            reason=self.reason,
        )


@dataclass(frozen=True)
class Partition:
    """Every resolved package in exactly one of the three buckets."""

    provided: List[BundleDecision] = field(default_factory=list)
    bundle: List[BundleDecision] = field(default_factory=list)
    conflict: List[BundleDecision] = field(default_factory=list)

    def decisions(self) -> List[BundleDecision]:
        return sorted(self.provided + self.bundle + self.conflict, key=lambda item: item.name)

    def by_name(self) -> Dict[str, BundleDecision]:
        return {decision.name: decision for decision in self.decisions()}

    def conflicts(self) -> List[ConflictRecord]:
        return [decision.to_conflict() for decision in self.conflict]

    def bundled_packages(self) -> List[ResolvedPackage]:
        return [decision.package for decision in self.bundle]


def classify(
    graph: ResolvedDependencyGraph,
    manifest: RuntimeManifest,
    overrides: Iterable[str] = (),
) -> Partition:
    """Decide, per resolved package, whether it ships in the artifact.

    An explicit override always bundles the package, even when the runtime
    provides a compatible version, so applications can pin exact versions.
    """

    forced = {canonicalize_name(name) for name in overrides}
    buckets: Dict[Classification, List[BundleDecision]] = {kind: [] for kind in Classification}

    for name in sorted(graph):
        package = graph[name]
        decision = _decide(package, manifest, forced)
        buckets[decision.classification].append(decision)

    return Partition(
        provided=buckets[Classification.PROVIDED],
        bundle=buckets[Classification.BUNDLE],
        conflict=buckets[Classification.CONFLICT],
    )


def _decide(package: ResolvedPackage, manifest: RuntimeManifest, forced: set[str]) -> BundleDecision:
    version_range = manifest.range_for(package.name)
    if version_range is None:
        reason = "listed in bundle_deps" if package.name in forced else f"not provided by runtime {manifest.runtime}"
        return BundleDecision(package, Classification.BUNDLE, reason)

    in_range = version_range.contains(package.version)
    if package.name in forced:
        if in_range:
            reason = f"bundle_deps pins {package.version} over the runtime copy ({version_range})"
        else:
            reason = f"bundle_deps overrides runtime range {version_range}"
        return BundleDecision(package, Classification.BUNDLE, reason, manifest_range=str(version_range))

    if in_range:
        return BundleDecision(
            package,
            Classification.PROVIDED,
            f"runtime {manifest.runtime} provides {version_range}",
            manifest_range=str(version_range),
        )
    return BundleDecision(
        package,
        Classification.CONFLICT,
        f"resolved {package.version} is outside runtime {manifest.runtime} range {version_range}",
        manifest_range=str(version_range),
    )
