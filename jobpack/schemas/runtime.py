"""Pydantic model for the runtime-provided package manifest."""

from __future__ import annotations

from typing import Dict, Optional

from packaging.utils import canonicalize_name
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..resolve.versions import VersionRange


class RuntimeManifest(BaseModel):
    """Packages guaranteed present in one release of the execution target."""

    runtime: str = Field(..., description="Target runtime release identifier, e.g. 'glue-4.0'.")
    python: Optional[str] = Field(default=None, description="Python version of the target interpreter.")
    platform: Optional[str] = Field(default=None, description="Target platform, e.g. 'linux-x86_64'.")
    description: Optional[str] = None
    packages: Dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid", frozen=True)

    @field_validator("packages", mode="before")
    @classmethod
    def _normalize_packages(cls, value: object) -> object:
        if not isinstance(value, dict):
            return value
        normalized: Dict[str, str] = {}
        for name, range_text in value.items():
            text = "*" if range_text is None else str(range_text)
            VersionRange.parse(text)
            canonical = canonicalize_name(str(name))
            if canonical in normalized:
                raise ValueError(f"Duplicate package '{canonical}' in runtime manifest")
            normalized[canonical] = text
        return dict(sorted(normalized.items()))

    def range_for(self, name: str) -> Optional[VersionRange]:
        text = self.packages.get(canonicalize_name(name))
        if text is None:
            return None
        return VersionRange.parse(text)

    def provides(self, name: str) -> bool:
        return canonicalize_name(name) in self.packages

    @classmethod
    def empty(cls, runtime: str = "none") -> "RuntimeManifest":
        return cls(runtime=runtime)
