"""Version range handling for runtime manifests."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Tuple

from packaging.specifiers import InvalidSpecifier, SpecifierSet
from packaging.version import InvalidVersion, Version


@dataclass(frozen=True)
class VersionRange:
    """A version range as written in a runtime manifest.

    Accepts PEP 440 specifier text (``>=2.0,<3.0``), interval notation
    (``[2.0, 3.0)``, ``(1.0,]``, ``[1.2]``), or ``*`` for any version. The
    text as written is kept for reports.
    """

    text: str
    intervals: Tuple[SpecifierSet, ...]

    @classmethod
    def parse(cls, text: str) -> "VersionRange":
        raw = (text or "").strip()
        if raw in {"", "*", "any"}:
            return cls(text=raw or "*", intervals=(SpecifierSet(),))
        if raw[0] in "[(":
            return cls(text=raw, intervals=tuple(_parse_intervals(raw)))
        try:
            specifier = SpecifierSet(raw)
        except InvalidSpecifier:
            try:
                # A bare version such as "1.5.3" means exactly that version.
                specifier = SpecifierSet(f"=={Version(raw)}")
            except InvalidVersion as exc:
                raise ValueError(f"Invalid version range '{text}'") from exc
        return cls(text=raw, intervals=(specifier,))

    def contains(self, version: str) -> bool:
        try:
            parsed = Version(version)
        except InvalidVersion:
            return False
        return any(spec.contains(parsed, prereleases=True) for spec in self.intervals)

    def __str__(self) -> str:
        return self.text


def _parse_intervals(range_spec: str) -> List[SpecifierSet]:
    """Split ``[1.0,2.0),[3.0,4.0]`` into one specifier set per interval."""

    intervals: List[SpecifierSet] = []
    current = ""
    depth = 0
    for char in range_spec:
        if char in "[(":
            depth += 1
            current = char if depth == 1 else current + char
        elif char in "])":
            depth -= 1
            current += char
            if depth == 0:
                intervals.append(_parse_interval(current))
                current = ""
        elif depth > 0:
            current += char
        elif char not in ", ":
            raise ValueError(f"Invalid interval range '{range_spec}'")
    if depth != 0 or not intervals:
        raise ValueError(f"Unbalanced interval range '{range_spec}'")
    return intervals


def _parse_interval(interval: str) -> SpecifierSet:
    inner = interval[1:-1]
    lower_inclusive = interval.startswith("[")
    upper_inclusive = interval.endswith("]")

    if "," not in inner:
        base = inner.strip()
        if not base or not (lower_inclusive and upper_inclusive):
            raise ValueError(f"Invalid single-version interval '{interval}'")
        return SpecifierSet(f"=={_checked(base)}")

    lower_str, upper_str = (part.strip() for part in inner.split(",", 1))
    clauses: List[str] = []
    if lower_str:
        clauses.append(f"{'>=' if lower_inclusive else '>'}{_checked(lower_str)}")
    if upper_str:
        clauses.append(f"{'<=' if upper_inclusive else '<'}{_checked(upper_str)}")
    return SpecifierSet(",".join(clauses))


def _checked(value: str) -> str:
    try:
        return str(Version(value))
    except InvalidVersion as exc:
        raise ValueError(f"Invalid version '{value}' in range") from exc
