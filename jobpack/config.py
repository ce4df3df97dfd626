"""Application build configuration and process settings."""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import List, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .bundle.sources import DEFAULT_EXCLUDES
from .errors import ConfigurationError

ConflictPolicy = Literal["fail", "warn"]


class AppConfig(BaseModel):
    """Per-application options read from ``[tool.jobpack]`` in its pyproject."""

    name: str
    project_dir: Path
    runtime: Optional[str] = None
    source_dir: str = "src"
    bundle_deps: List[str] = Field(default_factory=list, description="Packages always bundled.")
    local_libraries: List[str] = Field(default_factory=list)
    requirements_files: List[str] = Field(default_factory=list)
    lockfile: Optional[str] = None
    resolver: Literal["compile", "export"] = "compile"
    entry_point: Optional[str] = None
    exclude: List[str] = Field(default_factory=lambda: list(DEFAULT_EXCLUDES))
    conflict_policy: ConflictPolicy = "fail"

    model_config = ConfigDict(extra="forbid")

    @field_validator("bundle_deps", "local_libraries", "requirements_files", "exclude", mode="before")
    @classmethod
    def _coerce_list(cls, value: object) -> object:
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @property
    def source_path(self) -> Path:
        return self.project_dir / self.source_dir


class Settings(BaseModel):
    """Process-wide settings, from ``JOBPACK_*`` environment variables."""

    uv: Optional[str] = None
    runtime: Optional[str] = None
    output_dir: Optional[Path] = None
    wheelhouse: Optional[Path] = None
    log_level: str = "WARNING"
    workers: int = 4

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        payload = {
            key: env.get(f"JOBPACK_{key.upper()}")
            for key in cls.model_fields
            if env.get(f"JOBPACK_{key.upper()}")
        }
        try:
            return cls.model_validate(payload)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid JOBPACK_* environment settings: {exc}") from exc


def load_app_config(project_dir: Path, **overrides: object) -> AppConfig:
    """Read the application config; keyword overrides win over the file."""

    project_dir = Path(project_dir).resolve()
    pyproject = project_dir / "pyproject.toml"
    data: dict = {}
    if pyproject.exists():
        try:
            data = tomllib.loads(pyproject.read_text(encoding="utf-8"))
        except tomllib.TOMLDecodeError as exc:
            raise ConfigurationError(f"Invalid {pyproject}: {exc}") from exc

    options = dict(data.get("tool", {}).get("jobpack", {}))
    options = {key.replace("-", "_"): value for key, value in options.items()}
    options.setdefault("name", data.get("project", {}).get("name") or project_dir.name)
    options["project_dir"] = project_dir
    options.update({key: value for key, value in overrides.items() if value is not None})
    try:
        return AppConfig.model_validate(options)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid [tool.jobpack] configuration: {exc}", app=str(options["name"])) from exc
