"""Pydantic models describing a build's dependency report."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class Checksum(BaseModel):
    sha256: str = Field(..., description="SHA-256 checksum for the sealed archive.")

    model_config = ConfigDict(extra="forbid")


class PackageDecisionEntry(BaseModel):
    name: str
    version: str
    classification: Literal["provided", "bundle", "conflict"]
    reason: str
    manifest_range: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class ConflictEntry(BaseModel):
    package: str
    resolved_version: str
    manifest_range: str
    reason: str

    model_config = ConfigDict(extra="forbid")


class ShadowedFile(BaseModel):
    path: str
    origin: str
    shadowed_by: str

    model_config = ConfigDict(extra="forbid")


class ArtifactSummary(BaseModel):
    archive: str
    checksum: Checksum
    files: Dict[str, int] = Field(default_factory=dict, description="File counts per layer.")
    origins: List[str] = Field(default_factory=list)
    shadowed: List[ShadowedFile] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")


class BundleReport(BaseModel):
    app: str
    runtime: str
    python: Optional[str] = None
    built_at: datetime
    conflict_policy: Literal["fail", "warn"] = "fail"
    requirements: List[str] = Field(default_factory=list)
    overrides: List[str] = Field(default_factory=list)
    local_libraries: List[str] = Field(default_factory=list)
    decisions: List[PackageDecisionEntry] = Field(default_factory=list)
    conflicts: List[ConflictEntry] = Field(default_factory=list)
    artifact: ArtifactSummary
    launcher: Optional[str] = None

    model_config = ConfigDict(extra="forbid")

    def bundled(self) -> List[PackageDecisionEntry]:
        return [item for item in self.decisions if item.classification == "bundle"]

    def provided(self) -> List[PackageDecisionEntry]:
        return [item for item in self.decisions if item.classification == "provided"]
