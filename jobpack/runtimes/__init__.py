"""Runtime manifest loading, from files or the built-in runtime catalogue."""

from __future__ import annotations

import json
from importlib import resources
from pathlib import Path
from typing import Any, List, Union

import yaml
from pydantic import ValidationError

from ..errors import ConfigurationError
from ..schemas.runtime import RuntimeManifest

_SUFFIXES = (".yaml", ".yml", ".json")


def builtin_runtimes() -> List[str]:
    """Return the identifiers of manifests shipped with the package."""

    names = []
    for entry in resources.files(__name__).iterdir():
        if entry.name.endswith(".yaml"):
            names.append(entry.name[: -len(".yaml")])
    return sorted(names)


def load_runtime_manifest(reference: Union[str, Path]) -> RuntimeManifest:
    """Load a runtime manifest from a file path or a built-in runtime id."""

    path = Path(reference)
    if path.suffix in _SUFFIXES or path.exists():
        if not path.exists():
            raise ConfigurationError(f"Runtime manifest not found: {path}")
        return _parse(path.read_text(encoding="utf-8"), source=str(path), is_json=path.suffix == ".json")

    resource = resources.files(__name__).joinpath(f"{reference}.yaml")
    if not resource.is_file():
        known = ", ".join(builtin_runtimes()) or "none"
        raise ConfigurationError(f"Unknown runtime '{reference}' (built-in runtimes: {known})")
    return _parse(resource.read_text(encoding="utf-8"), source=f"builtin:{reference}", is_json=False)


def dump_runtime_manifest(manifest: RuntimeManifest, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.suffix == ".json":
        path.write_text(manifest.model_dump_json(indent=2) + "\n", encoding="utf-8")
    else:
        path.write_text(yaml.safe_dump(manifest.model_dump(exclude_none=True), sort_keys=False), encoding="utf-8")


def _parse(text: str, *, source: str, is_json: bool) -> RuntimeManifest:
    try:
        payload: Any = json.loads(text) if is_json else yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Invalid runtime manifest at {source}: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigurationError(f"Runtime manifest at {source} must be a mapping")
    try:
        return RuntimeManifest.model_validate(payload)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid runtime manifest at {source}: {exc}") from exc
