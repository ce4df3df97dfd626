"""Artifact layout assembly with path-collision detection."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ..errors import PackagingConflictError
from .sources import PackageFiles
from .utils import compute_sha256


class Layer(str, Enum):
    """Artifact layers, highest import precedence first."""

    APPLICATION = "application"
    LIBRARY = "library"
    PACKAGE = "package"

    @property
    def precedence(self) -> int:
        return _PRECEDENCE[self]


_PRECEDENCE = {Layer.APPLICATION: 0, Layer.LIBRARY: 1, Layer.PACKAGE: 2}


@dataclass(frozen=True)
class LayoutEntry:
    path: str
    layer: Layer
    origin: str
    source: Path = field(compare=False)
    sha256: str

    def to_dict(self) -> Dict[str, str]:
        return {"path": self.path, "layer": self.layer.value, "origin": self.origin, "sha256": self.sha256}


@dataclass(frozen=True)
class ShadowedEntry:
    path: str
    origin: str
    shadowed_by: str

    def to_dict(self) -> Dict[str, str]:
        return {"path": self.path, "origin": self.origin, "shadowed_by": self.shadowed_by}


@dataclass(frozen=True)
class ArtifactLayout:
    """Ordered file placement for one artifact, sorted by layer precedence then path."""

    entries: Tuple[LayoutEntry, ...]
    shadowed: Tuple[ShadowedEntry, ...] = field(default_factory=tuple)

    def paths(self) -> List[str]:
        return [entry.path for entry in self.entries]

    def origins(self) -> List[str]:
        return sorted({entry.origin for entry in self.entries})

    def entry(self, path: str) -> Optional[LayoutEntry]:
        for candidate in self.entries:
            if candidate.path == path:
                return candidate
        return None

    def summary(self) -> Dict[str, int]:
        counts = {layer.value: 0 for layer in Layer}
        for item in self.entries:
            counts[item.layer.value] += 1
        counts["shadowed"] = len(self.shadowed)
        return counts


def build_artifact(
    bundle_files: Iterable[PackageFiles],
    source_files: Iterable[PackageFiles],
    local_libraries: Iterable[PackageFiles] = (),
    *,
    app: Optional[str] = None,
) -> ArtifactLayout:
    """Place application, library and bundled package files into one layout.

    Two origins of the same layer writing different content to one path is a
    :class:`PackagingConflictError`. A higher layer shadows a lower one and
    the shadowed files are recorded. The result does not depend on the order
    of the inputs.
    """

    candidates: Dict[str, List[LayoutEntry]] = {}
    for layer, groups in (
        (Layer.APPLICATION, source_files),
        (Layer.LIBRARY, local_libraries),
        (Layer.PACKAGE, bundle_files),
    ):
        for group in groups:
            for relative in group.files:
                source = group.root / relative
                entry = LayoutEntry(
                    path=relative,
                    layer=layer,
                    origin=group.origin,
                    source=source,
                    sha256=compute_sha256(source),
                )
                candidates.setdefault(relative, []).append(entry)

    placed: List[LayoutEntry] = []
    shadowed: List[ShadowedEntry] = []
    for path in sorted(candidates):
        winner, losers = _settle(path, candidates[path], app=app)
        placed.append(winner)
        shadowed.extend(
            ShadowedEntry(path=path, origin=loser.origin, shadowed_by=winner.origin) for loser in losers
        )

    placed.sort(key=lambda item: (item.layer.precedence, item.path))
    shadowed.sort(key=lambda item: (item.path, item.origin))
    return ArtifactLayout(entries=tuple(placed), shadowed=tuple(shadowed))


def _settle(path: str, entries: Sequence[LayoutEntry], *, app: Optional[str]) -> Tuple[LayoutEntry, List[LayoutEntry]]:
    ordered = sorted(entries, key=lambda item: (item.layer.precedence, item.origin))
    top_layer = ordered[0].layer
    for layer in Layer:
        group = [item for item in ordered if item.layer is layer]
        if len({item.sha256 for item in group}) > 1:
            raise PackagingConflictError(path, [item.origin for item in group], app=app)
    winner = ordered[0]
    losers = [item for item in ordered[1:] if item.layer is not top_layer]
    return winner, losers
