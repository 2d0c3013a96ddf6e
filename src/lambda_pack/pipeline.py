"""Per-package build orchestration: INIT -> RESOLVE -> ASSEMBLE -> BUILD -> VALIDATE -> DONE."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal
from uuid import uuid4

import polars as pl

from lambda_pack.assemble.copier import assemble_package
from lambda_pack.build.archive import Artifact, build_artifact, discard_artifact, entries_frame, promote_artifact
from lambda_pack.build.cleaner import clean_workspace
from lambda_pack.config import AppSettings
from lambda_pack.errors import (
    ImportResolutionFailure,
    InputError,
    LambdaPackError,
    StructuralValidationFailure,
)
from lambda_pack.registry.descriptors import SHARED_LIB_DIR, PackageDescriptor, PackageRegistry, build_registry
from lambda_pack.resolve.installer import resolve_dependencies
from lambda_pack.resolve.manifest import DependencySet
from lambda_pack.utils.paths import (
    ensure_directories,
    reset_directory,
    write_json_atomically,
    write_parquet_atomically,
)
from lambda_pack.utils.time_utils import elapsed_since, now_utc
from lambda_pack.validate.engine import validate_artifact
from lambda_pack.validate.reports import ValidationReport, format_check_line, report_frame, report_payload

LOGGER = logging.getLogger(__name__)

PipelineState = Literal["INIT", "RESOLVE", "ASSEMBLE", "BUILD", "VALIDATE", "DONE", "FAILED"]

NEXT_STATE: dict[PipelineState, PipelineState] = {
    "INIT": "RESOLVE",
    "RESOLVE": "ASSEMBLE",
    "ASSEMBLE": "BUILD",
    "BUILD": "VALIDATE",
    "VALIDATE": "DONE",
}

SOURCE_SUBDIR = "source"


@dataclass(frozen=True, slots=True)
class PackageSources:
    """Upstream directories feeding one package build."""

    source_dir: Path
    lib_dir: Path


@dataclass(frozen=True, slots=True)
class BuildPaths:
    """Namespaced per-package paths; concurrent builds of different packages never share them."""

    workspace: Path
    scratch: Path
    output_dir: Path
    final_archive: Path


@dataclass(frozen=True, slots=True)
class BuildRunResult:
    """Outcome of one pipeline invocation."""

    run_id: str
    package_name: str
    state: PipelineState
    stages_completed: tuple[PipelineState, ...]
    artifact: Artifact | None
    report: ValidationReport | None
    error: LambdaPackError | None
    summary: dict[str, Any]
    summary_path: Path | None

    @property
    def exit_code(self) -> int:
        return 0 if self.state == "DONE" else 1


@dataclass
class _StateMachine:
    """Tracks the current stage; each transition requires the prior stage to have succeeded."""

    state: PipelineState = "INIT"
    completed: list[PipelineState] = field(default_factory=list)

    def advance(self) -> PipelineState:
        if self.state not in NEXT_STATE:
            raise RuntimeError(f"No transition out of terminal state {self.state}")
        self.completed.append(self.state)
        self.state = NEXT_STATE[self.state]
        return self.state

    def fail(self) -> None:
        self.state = "FAILED"


def locate_sources(source_root: Path, package_name: str) -> PackageSources:
    """Resolve ``source/<package>`` and ``source/lib``; missing either is an input error."""

    source_dir = source_root / SOURCE_SUBDIR / package_name
    lib_dir = source_root / SOURCE_SUBDIR / SHARED_LIB_DIR
    if not source_dir.is_dir():
        raise InputError(f"Source directory not found: {source_dir}")
    if not lib_dir.is_dir():
        raise InputError(f"Lib directory not found: {lib_dir}")
    return PackageSources(source_dir=source_dir, lib_dir=lib_dir)


def build_paths(settings: AppSettings, descriptor: PackageDescriptor, output_dir: Path) -> BuildPaths:
    workspace_root = settings.paths.workspace_root
    return BuildPaths(
        workspace=workspace_root / f"build_{descriptor.name}",
        scratch=workspace_root / f"validate_{descriptor.name}",
        output_dir=output_dir,
        final_archive=output_dir / descriptor.archive_name,
    )


def raise_for_report(report: ValidationReport) -> None:
    """Turn a FAIL report into the matching fatal error."""

    failed = report.failed_checks
    if not failed:
        return
    detail = "\n".join(format_check_line(check) for check in failed)
    non_import = [check for check in failed if check.group != "import"]
    if non_import:
        raise StructuralValidationFailure([check.check_id for check in failed], detail=detail)
    first = failed[0]
    module = first.check_id.split(":", 1)[-1] if ":" in first.check_id else first.check_id
    raise ImportResolutionFailure(module, first.message)


def _error_payload(error: LambdaPackError | None) -> dict[str, Any] | None:
    if error is None:
        return None
    return {
        "type": type(error).__name__,
        "stage": error.stage,
        "message": error.message,
        "detail": error.detail,
    }


def _write_run_artifacts(
    settings: AppSettings,
    run_id: str,
    summary: dict[str, Any],
    report: ValidationReport | None,
    entries: pl.DataFrame | None,
) -> Path:
    summaries_dir = settings.paths.artifacts_root / "run_summaries"
    summary_path = summaries_dir / f"{run_id}_build_summary.json"
    outputs: dict[str, str] = {"summary_path": str(summary_path)}
    if report is not None:
        checks_path = write_parquet_atomically(report_frame(report), summaries_dir / f"{run_id}_checks.parquet")
        outputs["checks_path"] = str(checks_path)
    if entries is not None:
        entries_path = write_parquet_atomically(entries, summaries_dir / f"{run_id}_entries.parquet")
        outputs["entries_path"] = str(entries_path)
    summary["outputs"] = outputs
    return write_json_atomically(summary, summary_path)


def run_build_pipeline(
    settings: AppSettings,
    package_name: str,
    source_root: Path,
    output_dir: Path,
    *,
    registry: PackageRegistry | None = None,
    write_summary: bool = True,
    logger: logging.Logger | None = None,
) -> BuildRunResult:
    """Build and validate one package; any fatal error stops the run in state FAILED."""

    effective_logger = logger or LOGGER
    package_registry = registry or build_registry(settings)
    machine = _StateMachine()
    source_root = source_root.resolve()
    output_dir = output_dir.resolve()

    run_id = f"build-run-{uuid4().hex[:12]}"
    started_ts = now_utc()
    started_mono = time.monotonic()

    descriptor: PackageDescriptor | None = None
    dependency_set: DependencySet | None = None
    staged: Artifact | None = None
    artifact: Artifact | None = None
    report: ValidationReport | None = None
    entries: pl.DataFrame | None = None
    error: LambdaPackError | None = None

    effective_logger.info("build_run.start run_id=%s package=%s source_root=%s", run_id, package_name, source_root)
    try:
        try:
            descriptor = package_registry.resolve(package_name)
            sources = locate_sources(source_root, package_name)
            paths = build_paths(settings, descriptor, output_dir)
            reset_directory(paths.workspace)
            ensure_directories([paths.output_dir])
            effective_logger.info(
                "build_run.inputs package=%s handler=%s source=%s workspace=%s",
                descriptor.name,
                descriptor.published_handler,
                sources.source_dir,
                paths.workspace,
            )

            machine.advance()
            resolved = resolve_dependencies(
                sources.source_dir,
                paths.workspace,
                settings.resolver,
                logger=effective_logger,
            )
            dependency_set = resolved.dependency_set

            machine.advance()
            assemble_package(descriptor, sources.source_dir, sources.lib_dir, paths.workspace, logger=effective_logger)

            machine.advance()
            clean_workspace(
                paths.workspace,
                settings.build,
                export_file_name=settings.resolver.export_file_name,
                logger=effective_logger,
            )
            staged = build_artifact(
                paths.workspace,
                paths.output_dir,
                descriptor.archive_name,
                compression_level=settings.build.compression_level,
                logger=effective_logger,
            )
            entries = entries_frame(staged.path)

            machine.advance()
            report = validate_artifact(
                staged.path,
                descriptor,
                settings.validation,
                settings.build,
                paths.scratch,
                dependency_set=dependency_set,
                logger=effective_logger,
            )
            raise_for_report(report)
            artifact = promote_artifact(staged, paths.final_archive)
            staged = None

            machine.advance()
        except LambdaPackError as exc:
            error = exc
            effective_logger.error(
                "build_run.failed run_id=%s package=%s state=%s error=%s",
                run_id,
                package_name,
                machine.state,
                exc.message,
            )
            machine.fail()
    finally:
        if staged is not None:
            discard_artifact(staged)

    duration_sec = elapsed_since(started_mono)
    summary: dict[str, Any] = {
        "run_id": run_id,
        "package": package_name,
        "started_ts": started_ts.isoformat(),
        "finished_ts": now_utc().isoformat(),
        "duration_sec": duration_sec,
        "state": machine.state,
        "stages_completed": list(machine.completed),
        "exit_code": 0 if machine.state == "DONE" else 1,
        "error": _error_payload(error),
        "artifact": (
            {
                "path": str(artifact.path),
                "size_bytes": artifact.size_bytes,
                "entries_total": len(artifact.entries),
                "published_handler": descriptor.published_handler if descriptor else None,
            }
            if artifact is not None
            else None
        ),
        "report": report_payload(report) if report is not None else None,
    }

    summary_path: Path | None = None
    if write_summary:
        summary_path = _write_run_artifacts(settings, run_id, summary, report, entries)

    effective_logger.info(
        "build_run.complete run_id=%s package=%s state=%s duration_sec=%.2f summary_path=%s",
        run_id,
        package_name,
        machine.state,
        duration_sec,
        summary_path,
    )
    return BuildRunResult(
        run_id=run_id,
        package_name=package_name,
        state=machine.state,
        stages_completed=tuple(machine.completed),
        artifact=artifact,
        report=report,
        error=error,
        summary=summary,
        summary_path=summary_path,
    )
