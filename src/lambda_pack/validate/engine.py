"""Ordered validation battery over a produced archive."""

from __future__ import annotations

import logging
import zipfile
from pathlib import Path

from lambda_pack.build.archive import Artifact, read_artifact
from lambda_pack.config import BuildConfig, ValidationConfig
from lambda_pack.registry.descriptors import PackageDescriptor
from lambda_pack.resolve.manifest import DependencySet
from lambda_pack.utils.paths import remove_path
from lambda_pack.validate.imports import run_import_checks
from lambda_pack.validate.reports import CheckResult, ValidationReport
from lambda_pack.validate.structural import (
    check_archive_integrity,
    check_archive_non_empty,
    check_dependencies_present,
    check_handler_at_root,
    check_no_dev_dependencies,
    check_no_disallowed_paths,
    check_renamed_source_absent,
    check_shared_libs,
    check_size_above_min,
    check_size_below_max,
)

LOGGER = logging.getLogger(__name__)


def run_structural_checks(
    artifact: Artifact,
    descriptor: PackageDescriptor,
    dependency_set: DependencySet | None,
    validation_config: ValidationConfig,
    build_config: BuildConfig,
) -> list[CheckResult]:
    """Size, layout and content checks over the entry listing."""

    entries = artifact.entries
    results = [
        check_archive_non_empty(artifact),
        check_handler_at_root(entries, descriptor.published_handler),
        check_size_below_max(artifact.size_bytes, validation_config.max_size_bytes),
        check_size_above_min(artifact.size_bytes, validation_config.min_size_bytes),
    ]
    results.extend(check_shared_libs(entries, descriptor))
    if dependency_set is not None:
        results.extend(check_dependencies_present(entries, dependency_set))
    results.append(check_no_disallowed_paths(entries, build_config))

    dev_names = list(validation_config.dev_dependency_names)
    if dependency_set is not None:
        dev_names.extend(dependency_set.development_import_names)
    results.append(check_no_dev_dependencies(entries, dev_names))

    if descriptor.renames_handler:
        results.append(check_renamed_source_absent(entries, descriptor))
    return results


def validate_artifact(
    archive_path: Path,
    descriptor: PackageDescriptor,
    validation_config: ValidationConfig,
    build_config: BuildConfig,
    scratch_dir: Path,
    dependency_set: DependencySet | None = None,
    logger: logging.Logger | None = None,
) -> ValidationReport:
    """Run structural, integrity and import checks; the archive is only read."""

    effective_logger = logger or LOGGER

    if not archive_path.is_file():
        return ValidationReport.from_checks(
            [CheckResult("archive_non_empty", "FAIL", f"Archive missing: {archive_path}")]
        )
    try:
        artifact = read_artifact(archive_path)
    except (zipfile.BadZipFile, OSError) as exc:
        return ValidationReport.from_checks(
            [
                CheckResult("archive_non_empty", "FAIL", f"Archive unreadable: {archive_path} ({exc})"),
                CheckResult("archive_integrity", "FAIL", f"Archive is corrupted: {exc}", group="integrity"),
            ]
        )

    checks = run_structural_checks(artifact, descriptor, dependency_set, validation_config, build_config)
    integrity = check_archive_integrity(archive_path)
    checks.append(integrity)

    if integrity.failed:
        checks.append(
            CheckResult(
                "import_checks",
                "FAIL",
                "Import checks not run: archive failed integrity check",
                group="import",
            )
        )
    else:
        try:
            checks.extend(
                run_import_checks(
                    archive_path,
                    descriptor,
                    validation_config,
                    scratch_dir,
                    logger=effective_logger,
                )
            )
        finally:
            remove_path(scratch_dir)

    report = ValidationReport.from_checks(checks)
    counts = report.counts()
    effective_logger.info(
        "validate.complete package=%s overall=%s passed=%s failed=%s warned=%s",
        descriptor.name,
        report.overall,
        counts["PASS"],
        counts["FAIL"],
        counts["WARN"],
    )
    return report
