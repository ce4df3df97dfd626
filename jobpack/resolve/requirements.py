"""Declared requirement parsing and merging."""

from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from packaging.markers import default_environment
from packaging.requirements import InvalidRequirement, Requirement
from packaging.utils import canonicalize_name

from ..errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PackageRequirement:
    """A named package with a version constraint, as declared by an application."""

    name: str
    specifier: str = ""
    marker: str = ""
    extras: tuple[str, ...] = ()
    source: str = "declared"

    @classmethod
    def parse(cls, line: str, *, source: str = "declared") -> "PackageRequirement":
        try:
            requirement = Requirement(line.strip())
        except InvalidRequirement as exc:
            raise ConfigurationError(f"Invalid requirement '{line.strip()}' in {source}: {exc}") from exc
        if requirement.url:
            raise ConfigurationError(
                f"Requirement '{line.strip()}' in {source} uses a direct URL; declare it as a local library instead"
            )
        return cls(
            name=canonicalize_name(requirement.name),
            specifier=str(requirement.specifier),
            marker=str(requirement.marker) if requirement.marker else "",
            extras=tuple(sorted(requirement.extras)),
            source=source,
        )

    @property
    def unconstrained(self) -> bool:
        return not self.specifier

    def applies_to(self, environment: Optional[Mapping[str, str]] = None) -> bool:
        """Return whether the environment marker selects this requirement."""

        if not self.marker:
            return True
        return Requirement(f"{self.name}; {self.marker}").marker.evaluate(dict(environment or {}))

    def to_line(self) -> str:
        extras = f"[{','.join(self.extras)}]" if self.extras else ""
        marker = f"; {self.marker}" if self.marker else ""
        return f"{self.name}{extras}{self.specifier}{marker}"

    def __str__(self) -> str:
        return self.to_line()


def merge_requirements(groups: Iterable[Iterable[PackageRequirement]]) -> List[PackageRequirement]:
    """Merge requirement groups into one effective set, last declaration wins.

    Ordering follows first appearance so the effective set stays stable when a
    later group only re-pins an existing name.
    """

    merged: Dict[str, PackageRequirement] = {}
    for group in groups:
        for requirement in group:
            previous = merged.get(requirement.name)
            if previous is not None and previous != requirement:
                logger.info(
                    "Requirement %s from %s replaces %s from %s",
                    requirement.to_line(),
                    requirement.source,
                    previous.to_line(),
                    previous.source,
                )
            merged[requirement.name] = requirement
    return list(merged.values())


def parse_requirement_lines(lines: Iterable[str], *, source: str) -> List[PackageRequirement]:
    requirements: List[PackageRequirement] = []
    for line in lines:
        stripped = line.split(" #", 1)[0].strip()
        if not stripped or stripped.startswith("#"):
            continue
        if stripped.startswith("-"):
            # pip options (-r, -e, --index-url) are not requirements
            logger.debug("Skipping pip option line in %s: %s", source, stripped)
            continue
        requirements.append(PackageRequirement.parse(stripped, source=source))
    return requirements


def read_requirements_file(path: Path) -> List[PackageRequirement]:
    if not path.exists():
        raise FileNotFoundError(f"Requirements file not found: {path}")
    return parse_requirement_lines(path.read_text(encoding="utf-8").splitlines(), source=str(path))


def read_project_requirements(project_dir: Path) -> List[PackageRequirement]:
    """Return ``[project].dependencies`` declared in ``project_dir/pyproject.toml``."""

    pyproject = project_dir / "pyproject.toml"
    if not pyproject.exists():
        raise FileNotFoundError(f"pyproject.toml not found in {project_dir}")
    data = tomllib.loads(pyproject.read_text(encoding="utf-8"))
    dependencies = data.get("project", {}).get("dependencies", [])
    return parse_requirement_lines(dependencies, source=str(pyproject))


def read_project_name(project_dir: Path) -> Optional[str]:
    pyproject = project_dir / "pyproject.toml"
    if not pyproject.exists():
        return None
    data = tomllib.loads(pyproject.read_text(encoding="utf-8"))
    name = data.get("project", {}).get("name")
    return canonicalize_name(name) if name else None


def target_environment(python_version: Optional[str], platform: Optional[str] = None) -> Dict[str, str]:
    """Build a marker environment for the target runtime rather than the build host."""

    environment = dict(default_environment())
    if python_version:
        parts = python_version.split(".")
        environment["python_version"] = ".".join(parts[:2])
        environment["python_full_version"] = python_version if len(parts) > 2 else f"{python_version}.0"
    if platform and platform.lower().startswith("linux"):
        environment["sys_platform"] = "linux"
        environment["platform_system"] = "Linux"
        environment["os_name"] = "posix"
        machine = platform.split("-", 1)[1].lower() if "-" in platform else ""
        if machine in ("x86_64", "amd64"):
            environment["platform_machine"] = "x86_64"
        elif machine in ("aarch64", "arm64"):
            environment["platform_machine"] = "aarch64"
    return environment


def requirement_lines(requirements: Sequence[PackageRequirement]) -> List[str]:
    return [requirement.to_line() for requirement in requirements]
