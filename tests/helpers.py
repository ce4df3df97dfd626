from __future__ import annotations

import threading
import zipfile
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence

from packaging.specifiers import SpecifierSet

from jobpack.errors import UnresolvableConstraintError
from jobpack.resolve.graph import ResolvedDependencyGraph, ResolvedPackage
from jobpack.resolve.locks import ResolveTarget
from jobpack.resolve.requirements import PackageRequirement, requirement_lines


def create_wheel(
    directory: Path,
    package: str,
    version: str,
    *,
    files: Optional[Mapping[str, str]] = None,
    requires: Optional[Sequence[str]] = None,
) -> Path:
    """Write a minimal pure-Python wheel into ``directory``."""

    directory.mkdir(parents=True, exist_ok=True)
    dist_name = package.replace("-", "_")
    path = directory / f"{dist_name}-{version}-py3-none-any.whl"
    dist_info = f"{dist_name}-{version}.dist-info"
    contents = dict(files or {f"{dist_name}/__init__.py": f"__version__ = '{version}'\n"})
    with zipfile.ZipFile(path, "w") as archive:
        for name, content in contents.items():
            archive.writestr(name, content)
        metadata_lines = [
            "Metadata-Version: 2.1",
            f"Name: {package}",
            f"Version: {version}",
        ]
        for requirement in requires or []:
            metadata_lines.append(f"Requires-Dist: {requirement}")
        archive.writestr(f"{dist_info}/METADATA", "\n".join(metadata_lines) + "\n")
        archive.writestr(
            f"{dist_info}/WHEEL",
            "Wheel-Version: 1.0\nGenerator: jobpack-tests\nRoot-Is-Purelib: true\nTag: py3-none-any\n",
        )
        archive.writestr(f"{dist_info}/RECORD", "")
    return path


class StaticResolver:
    """Lock resolver test double backed by a fixed package index."""

    def __init__(self, pins: Mapping[str, str], dependencies: Optional[Mapping[str, List[str]]] = None) -> None:
        self.pins = dict(pins)
        self.dependencies = dict(dependencies or {})
        self.calls: List[List[str]] = []
        self._lock = threading.Lock()

    def resolve(self, requirements: Sequence[PackageRequirement], target: ResolveTarget) -> ResolvedDependencyGraph:
        with self._lock:
            self.calls.append(requirement_lines(requirements))
        resolved: Dict[str, str] = {}
        pending = [(req.name, req.specifier) for req in requirements]
        while pending:
            name, specifier = pending.pop()
            version = self.pins.get(name)
            if version is None or not SpecifierSet(specifier).contains(version, prereleases=True):
                raise UnresolvableConstraintError(
                    f"No version of {name} satisfies '{specifier or '*'}'",
                    requirements=requirement_lines(requirements),
                )
            if name in resolved:
                continue
            resolved[name] = version
            pending.extend((dependency, "") for dependency in self.dependencies.get(name, []))
        return ResolvedDependencyGraph(ResolvedPackage(name, version) for name, version in resolved.items())
