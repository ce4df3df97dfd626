"""Report helpers for bundle assembly."""

from __future__ import annotations

import json
from pathlib import Path
from typing import List

from ..schemas.report import BundleReport


def load_report(path: Path) -> BundleReport:
    """Load a build report from JSON."""

    payload = json.loads(path.read_text(encoding="utf-8"))
    return BundleReport.model_validate(payload)


def dump_report(report: BundleReport, path: Path) -> None:
    """Write a build report to disk."""

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(report.model_dump_json(indent=2) + "\n", encoding="utf-8")


def render_report_text(report: BundleReport) -> str:
    """Human-readable dependency manifest for reviewers and operators."""

    lines: List[str] = [
        f"Dependency manifest for {report.app}",
        "=" * (26 + len(report.app)),
        f"Runtime: {report.runtime}" + (f" (python {report.python})" if report.python else ""),
        f"Archive: {report.artifact.archive} sha256={report.artifact.checksum.sha256}",
        "",
    ]
    for title, kind in (("Bundled", "bundle"), ("Provided by runtime", "provided"), ("Conflicts", "conflict")):
        entries = [item for item in report.decisions if item.classification == kind]
        lines.append(f"{title} ({len(entries)}):")
        for item in entries:
            lines.append(f"  {item.name}=={item.version}  # {item.reason}")
        lines.append("")
    if report.local_libraries:
        lines.append("Vendored local libraries: " + ", ".join(report.local_libraries))
    if report.artifact.shadowed:
        lines.append(f"Shadowed files: {len(report.artifact.shadowed)}")
    return "\n".join(lines).rstrip() + "\n"
