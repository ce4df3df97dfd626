"""Exception hierarchy for bundle builds."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence


class JobpackError(RuntimeError):
    """Base class for build failures that need human attention."""

    def __init__(self, message: str, *, app: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.app = app

    def __str__(self) -> str:
        prefix = f"[{self.app}] " if self.app else ""
        return f"{prefix}{self.message}"

    def to_dict(self) -> Dict[str, object]:
        return {"type": type(self).__name__, "app": self.app, "message": str(self)}


class ConfigurationError(JobpackError):
    """Raised when application or runtime configuration is invalid."""


class UnresolvableConstraintError(JobpackError):
    """Raised when the declared requirements admit no consistent version assignment."""

    def __init__(
        self,
        message: str,
        *,
        requirements: Iterable[str] = (),
        app: Optional[str] = None,
    ) -> None:
        self.requirements: List[str] = list(requirements)
        super().__init__(message, app=app)

    def to_dict(self) -> Dict[str, object]:
        payload = super().to_dict()
        payload["requirements"] = list(self.requirements)
        return payload


class ResolutionUnavailableError(JobpackError):
    """Raised when the lock resolver could not be consulted at all.

    Unlike :class:`UnresolvableConstraintError` this is transient, an outer
    driver may retry the build.
    """

    def __init__(self, message: str, *, detail: str = "", app: Optional[str] = None) -> None:
        self.detail = detail
        super().__init__(message, app=app)

    def to_dict(self) -> Dict[str, object]:
        payload = super().to_dict()
        payload["detail"] = self.detail
        return payload


@dataclass(frozen=True)
class ConflictRecord:
    """A package whose resolved version falls outside the runtime-provided range."""

    package: str
    resolved_version: str
    manifest_range: str
    reason: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "package": self.package,
            "resolved_version": self.resolved_version,
            "manifest_range": self.manifest_range,
            "reason": self.reason,
        }


class BundleConflictError(JobpackError):
    """Raised when classification yields conflicts and the policy is ``fail``."""

    def __init__(self, conflicts: Sequence[ConflictRecord], *, runtime: str, app: Optional[str] = None) -> None:
        self.conflicts = list(conflicts)
        self.runtime = runtime
        details = "; ".join(
            f"{item.package} resolved {item.resolved_version}, runtime provides {item.manifest_range}"
            for item in self.conflicts
        )
        super().__init__(
            f"{len(self.conflicts)} package(s) conflict with runtime '{runtime}': {details}. "
            "Loosen the pin or add the package to bundle_deps.",
            app=app,
        )

    def to_dict(self) -> Dict[str, object]:
        payload = super().to_dict()
        payload["runtime"] = self.runtime
        payload["conflicts"] = [item.to_dict() for item in self.conflicts]
        return payload


class PackagingConflictError(JobpackError):
    """Raised when two origins would write different content to one artifact path."""

    def __init__(self, path: str, origins: Sequence[str], *, app: Optional[str] = None) -> None:
        self.path = path
        self.origins = sorted(origins)
        super().__init__(
            f"Artifact path '{path}' is written by {' and '.join(self.origins)} with different content",
            app=app,
        )

    def to_dict(self) -> Dict[str, object]:
        payload = super().to_dict()
        payload["path"] = self.path
        payload["origins"] = list(self.origins)
        return payload
