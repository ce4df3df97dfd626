"""Resolved dependency graph produced by lock resolution."""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Sequence

from packaging.markers import Marker
from packaging.specifiers import SpecifierSet
from packaging.utils import canonicalize_name
from packaging.version import InvalidVersion, Version

from ..errors import UnresolvableConstraintError
from .requirements import PackageRequirement, requirement_lines


@dataclass(frozen=True, order=True)
class ResolvedPackage:
    name: str
    version: str

    def pin(self) -> str:
        return f"{self.name}=={self.version}"


class ResolvedDependencyGraph(Mapping[str, ResolvedPackage]):
    """Immutable mapping of canonical package name to its pinned version."""

    def __init__(self, packages: Iterable[ResolvedPackage] = ()) -> None:
        entries: Dict[str, ResolvedPackage] = {}
        for package in packages:
            name = canonicalize_name(package.name)
            existing = entries.get(name)
            if existing is not None and existing.version != package.version:
                raise ValueError(
                    f"Package {name} resolved to both {existing.version} and {package.version}"
                )
            entries[name] = ResolvedPackage(name=name, version=package.version)
        self._packages = MappingProxyType(dict(sorted(entries.items())))

    @classmethod
    def from_pins(cls, pins: Mapping[str, str]) -> "ResolvedDependencyGraph":
        return cls(ResolvedPackage(name=name, version=version) for name, version in pins.items())

    def __getitem__(self, name: str) -> ResolvedPackage:
        return self._packages[canonicalize_name(name)]

    def __iter__(self) -> Iterator[str]:
        return iter(self._packages)

    def __len__(self) -> int:
        return len(self._packages)

    def __repr__(self) -> str:
        pins = ", ".join(package.pin() for package in self._packages.values())
        return f"ResolvedDependencyGraph({pins})"

    def packages(self) -> List[ResolvedPackage]:
        return list(self._packages.values())

    def without(self, names: Iterable[str]) -> "ResolvedDependencyGraph":
        excluded = {canonicalize_name(name) for name in names}
        return ResolvedDependencyGraph(
            package for package in self._packages.values() if package.name not in excluded
        )

    def to_dict(self) -> Dict[str, str]:
        return {name: package.version for name, package in self._packages.items()}


def parse_pinned_lines(
    lines: Iterable[str], environment: Optional[Mapping[str, str]] = None
) -> List[ResolvedPackage]:
    """Parse ``name==version`` lines as emitted by ``uv pip compile`` or ``uv export``.

    Comment lines, hash continuation lines, pip options and editable or
    path entries are skipped. With an ``environment``, pins whose marker
    does not select that environment are dropped.
    """

    packages: List[ResolvedPackage] = []
    for line in lines:
        stripped = line.strip()
        if not stripped or stripped.startswith(("#", "-", "--hash")):
            continue
        stripped = stripped.rstrip("\\").strip()
        requirement, _, marker = stripped.partition(";")
        requirement = requirement.split(" ", 1)[0]
        if "==" not in requirement:
            continue
        marker = marker.split(" --hash", 1)[0].strip()
        if marker and environment is not None and not Marker(marker).evaluate(dict(environment)):
            continue
        name, _, version = requirement.partition("==")
        name = name.split("[", 1)[0]
        packages.append(ResolvedPackage(name=canonicalize_name(name), version=version.strip()))
    return packages


def validate_graph(
    graph: ResolvedDependencyGraph,
    requirements: Sequence[PackageRequirement],
    *,
    environment: Optional[Mapping[str, str]] = None,
    app: Optional[str] = None,
) -> ResolvedDependencyGraph:
    """Check that every applicable direct requirement is present and satisfied."""

    problems: List[str] = []
    for requirement in requirements:
        if not requirement.applies_to(environment):
            continue
        resolved = graph.get(requirement.name)
        if resolved is None:
            problems.append(f"{requirement.to_line()} is missing from the resolved graph")
            continue
        if requirement.unconstrained:
            continue
        try:
            version = Version(resolved.version)
        except InvalidVersion:
            problems.append(f"{requirement.name} resolved to unparseable version '{resolved.version}'")
            continue
        if not SpecifierSet(requirement.specifier).contains(version, prereleases=True):
            problems.append(
                f"{requirement.name} resolved to {resolved.version} which does not satisfy '{requirement.specifier}'"
            )
    if problems:
        raise UnresolvableConstraintError(
            "Resolved graph does not satisfy the declared requirements: " + "; ".join(problems),
            requirements=requirement_lines(requirements),
            app=app,
        )
    return graph
