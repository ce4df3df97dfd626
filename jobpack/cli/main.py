"""Command-line entry point for building job artifacts."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence

from ..bundle.builder import BundleBuilder
from ..bundle.classify import classify
from ..bundle.manifest import load_report
from ..bundle.utils import compute_sha256
from ..config import Settings
from ..errors import JobpackError
from ..runtimes import builtin_runtimes, load_runtime_manifest
from ..workspace import Workspace, build_apps

logger = logging.getLogger(__name__)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        settings = Settings.from_env()
        _configure_logging(args.verbose, settings.log_level)
        if args.command == "resolve":
            return _handle_resolve(args, settings)
        if args.command == "classify":
            return _handle_classify(args, settings)
        if args.command == "build":
            return _handle_build(args, settings)
        if args.command == "build-all":
            return _handle_build_all(args, settings)
        if args.command == "runtime":
            if args.runtime_command == "list":
                return _handle_runtime_list()
            if args.runtime_command == "show":
                return _handle_runtime_show(args)
            parser.error("runtime command requires a subcommand")
        if args.command == "report":
            if args.report_command == "validate":
                return _handle_report_validate(args)
            parser.error("report command requires a subcommand")
    except JobpackError as exc:
        logger.debug("Build failed", exc_info=True)
        _print_json({"status": "failed", "error": exc.to_dict()})
        return 1

    parser.error(f"Unknown command '{args.command}'")
    return 1


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="jobpack", description="Bundle Python applications for managed job runtimes.")
    parser.add_argument("-v", "--verbose", action="count", default=0)
    subparsers = parser.add_subparsers(dest="command", required=True)

    resolve = subparsers.add_parser("resolve", help="Resolve an application's dependency graph.")
    _add_app_arguments(resolve)

    classify_cmd = subparsers.add_parser("classify", help="Show provided/bundle/conflict decisions.")
    _add_app_arguments(classify_cmd)
    classify_cmd.add_argument("--bundle-dep", action="append", help="Force-bundle a package (repeatable).")

    build = subparsers.add_parser("build", help="Build the deployment artifact for one application.")
    _add_app_arguments(build)
    _add_build_arguments(build)
    build.add_argument("--bundle-dep", action="append", help="Force-bundle a package (repeatable).")

    build_all = subparsers.add_parser("build-all", help="Build every application in the workspace.")
    build_all.add_argument("--app", action="append", help="Restrict to these applications (repeatable).")
    build_all.add_argument("--runtime", help="Runtime id or manifest path shared by the whole batch.")
    build_all.add_argument("--workers", type=int)
    build_all.add_argument("--workspace-root")
    _add_build_arguments(build_all)

    runtime = subparsers.add_parser("runtime", help="Runtime manifest utilities.")
    runtime_sub = runtime.add_subparsers(dest="runtime_command", required=True)
    runtime_sub.add_parser("list", help="List built-in runtime manifests.")
    runtime_show = runtime_sub.add_parser("show", help="Print a runtime manifest.")
    runtime_show.add_argument("runtime")

    report = subparsers.add_parser("report", help="Build report utilities.")
    report_sub = report.add_subparsers(dest="report_command", required=True)
    report_validate = report_sub.add_parser("validate", help="Validate a build report against its archive.")
    report_validate.add_argument("--report", required=True)
    report_validate.add_argument("--archive")

    return parser


def _add_app_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--app", required=True, help="Application directory name under apps/.")
    parser.add_argument("--runtime", help="Runtime id or manifest path (overrides [tool.jobpack].runtime).")
    parser.add_argument("--workspace-root")


def _add_build_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--output-dir")
    parser.add_argument("--wheelhouse", help="Directory of wheels used instead of uv installs.")
    parser.add_argument("--conflict-policy", choices=["fail", "warn"])


def _configure_logging(verbosity: int, default_level: str) -> None:
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.getLevelName(default_level.upper())
        if not isinstance(level, int):
            level = logging.WARNING
    logging.basicConfig(level=level, stream=sys.stderr, format="%(levelname)s %(name)s: %(message)s")


def _workspace(args: argparse.Namespace, settings: Settings) -> Workspace:
    updates: Dict[str, object] = {}
    if getattr(args, "wheelhouse", None):
        updates["wheelhouse"] = Path(args.wheelhouse).resolve()
    if getattr(args, "output_dir", None):
        updates["output_dir"] = Path(args.output_dir).resolve()
    if getattr(args, "workers", None):
        updates["workers"] = args.workers
    root = Path(args.workspace_root).resolve() if args.workspace_root else Path.cwd()
    return Workspace(root, settings.model_copy(update=updates))


def _config_overrides(args: argparse.Namespace) -> Dict[str, object]:
    overrides: Dict[str, object] = {}
    if getattr(args, "conflict_policy", None):
        overrides["conflict_policy"] = args.conflict_policy
    return overrides


def _handle_resolve(args: argparse.Namespace, settings: Settings) -> int:
    workspace = _workspace(args, settings)
    config = workspace.app_config(args.app)
    runtime = workspace.runtime_for(config, args.runtime)
    build_config = workspace.build_config(config, runtime)
    builder = BundleBuilder(workspace.resolver_for(config), workspace.source_for(config, runtime))
    graph = builder.resolve(build_config)
    _print_json(
        {
            "app": config.name,
            "runtime": runtime.runtime,
            "requirements": [requirement.to_line() for requirement in build_config.requirements],
            "resolved": graph.to_dict(),
        }
    )
    return 0


def _handle_classify(args: argparse.Namespace, settings: Settings) -> int:
    workspace = _workspace(args, settings)
    config = workspace.app_config(args.app)
    runtime = workspace.runtime_for(config, args.runtime)
    build_config = workspace.build_config(config, runtime)
    builder = BundleBuilder(workspace.resolver_for(config), workspace.source_for(config, runtime))
    overrides = list(build_config.overrides) + list(args.bundle_dep or [])
    partition = classify(builder.resolve(build_config), runtime, overrides)
    _print_json(
        {
            "app": config.name,
            "runtime": runtime.runtime,
            "decisions": [
                {
                    "name": decision.name,
                    "version": decision.version,
                    "classification": decision.classification.value,
                    "reason": decision.reason,
                    "manifest_range": decision.manifest_range,
                }
                for decision in partition.decisions()
            ],
            "conflicts": [record.to_dict() for record in partition.conflicts()],
        }
    )
    return 0


def _handle_build(args: argparse.Namespace, settings: Settings) -> int:
    workspace = _workspace(args, settings)
    config = workspace.app_config(args.app, **_config_overrides(args))
    if args.bundle_dep:
        config = config.model_copy(update={"bundle_deps": list(config.bundle_deps) + list(args.bundle_dep)})
    runtime = workspace.runtime_for(config, args.runtime)
    build_config = workspace.build_config(config, runtime)
    builder = BundleBuilder(workspace.resolver_for(config), workspace.source_for(config, runtime))
    result = builder.build(build_config)
    _print_json(
        {
            "status": "succeeded",
            "app": result.app,
            "archive_path": str(result.archive_path),
            "report_path": str(result.report_path),
            "requirements_path": str(result.requirements_path),
            "launcher_path": str(result.launcher_path) if result.launcher_path else None,
            "checksum": {"sha256": result.checksum},
            "report": result.report.model_dump(mode="json"),
            "logs": result.logs,
        }
    )
    return 0


def _handle_build_all(args: argparse.Namespace, settings: Settings) -> int:
    workspace = _workspace(args, settings)
    names: List[str] = list(args.app or workspace.discover_apps())
    runtime = load_runtime_manifest(_runtime_reference(workspace, args.runtime)) if args.runtime else None
    overrides = _config_overrides(args)
    outcomes = build_apps(workspace, names, runtime=runtime, config_overrides=overrides)
    failed = [outcome.app for outcome in outcomes if not outcome.ok]
    _print_json(
        {
            "status": "failed" if failed else "succeeded",
            "apps": [outcome.to_dict() for outcome in outcomes],
            "failed": failed,
        }
    )
    return 1 if failed else 0


def _handle_runtime_list() -> int:
    _print_json({"runtimes": builtin_runtimes()})
    return 0


def _handle_runtime_show(args: argparse.Namespace) -> int:
    manifest = load_runtime_manifest(args.runtime)
    _print_json(manifest.model_dump(mode="json"))
    return 0


def _handle_report_validate(args: argparse.Namespace) -> int:
    report_path = Path(args.report).resolve()
    archive_path = Path(args.archive).resolve() if args.archive else None

    errors: List[str] = []
    try:
        report = load_report(report_path)
    except (FileNotFoundError, json.JSONDecodeError, ValueError) as exc:
        report = None
        errors.append(str(exc))

    checksum_match: Optional[bool] = None
    if report is not None:
        archive = archive_path or report_path.parent / report.artifact.archive
        if not archive.exists():
            errors.append(f"Archive not found: {archive}")
        else:
            checksum = compute_sha256(archive)
            checksum_match = checksum == report.artifact.checksum.sha256
            if not checksum_match:
                errors.append(f"Checksum mismatch. Report={report.artifact.checksum.sha256} Archive={checksum}")

    payload = {
        "report_path": str(report_path),
        "valid": report is not None and not errors,
        "checksum_match": checksum_match,
        "errors": errors,
    }
    _print_json(payload)
    return 0 if payload["valid"] else 1


def _runtime_reference(workspace: Workspace, value: str) -> str:
    candidate = Path(value)
    if not candidate.is_absolute() and (workspace.root / candidate).exists():
        return str(workspace.root / candidate)
    return value


def _print_json(payload: Mapping[str, object]) -> None:
    print(json.dumps(payload, indent=2, default=str))
