"""Checks over an archive's size and entry listing (no extraction needed)."""

from __future__ import annotations

import zipfile
import zlib
from collections.abc import Sequence
from pathlib import Path

from lambda_pack.build.archive import Artifact
from lambda_pack.build.cleaner import is_noise_dir, is_noise_file
from lambda_pack.config import BuildConfig
from lambda_pack.registry.descriptors import PackageDescriptor
from lambda_pack.resolve.manifest import DependencySet
from lambda_pack.validate.reports import CheckResult

MIB = 1024 * 1024


def _components(entry: str) -> list[str]:
    return [part for part in entry.split("/") if part]


def _top_level(entry: str) -> str:
    parts = _components(entry)
    return parts[0] if parts else ""


def _mb(size_bytes: int) -> str:
    return f"{size_bytes / MIB:.2f}MB"


def check_archive_non_empty(artifact: Artifact) -> CheckResult:
    if artifact.size_bytes > 0 and artifact.file_entries:
        return CheckResult(
            "archive_non_empty",
            "PASS",
            f"Archive exists and is not empty ({len(artifact.file_entries)} files)",
        )
    return CheckResult("archive_non_empty", "FAIL", f"Archive is empty: {artifact.path}")


def check_handler_at_root(entries: Sequence[str], published_handler: str) -> CheckResult:
    if published_handler in entries:
        return CheckResult("handler_at_root", "PASS", f"Handler {published_handler} found at archive root")
    nested = [entry for entry in entries if entry.endswith(f"/{published_handler}")]
    if nested:
        return CheckResult(
            "handler_at_root",
            "FAIL",
            f"Handler {published_handler} is nested at {nested[0]}, not at archive root",
        )
    return CheckResult("handler_at_root", "FAIL", f"Handler {published_handler} not found in archive")


def check_size_below_max(size_bytes: int, max_bytes: int) -> CheckResult:
    if size_bytes < max_bytes:
        return CheckResult("size_below_max", "PASS", f"Size {_mb(size_bytes)} (< {_mb(max_bytes)} limit)")
    return CheckResult(
        "size_below_max",
        "FAIL",
        f"Size {size_bytes} bytes exceeds {_mb(max_bytes)} limit",
    )


def check_size_above_min(size_bytes: int, min_bytes: int) -> CheckResult:
    if size_bytes > min_bytes:
        return CheckResult("size_above_min", "PASS", f"Size {_mb(size_bytes)} (> {_mb(min_bytes)} minimum)")
    return CheckResult(
        "size_above_min",
        "FAIL",
        f"Size {size_bytes // 1024}KB is not above the {_mb(min_bytes)} minimum; likely missing dependencies",
    )


def check_shared_libs(entries: Sequence[str], descriptor: PackageDescriptor) -> list[CheckResult]:
    entry_set = set(entries)
    results: list[CheckResult] = []
    for lib_name in descriptor.required_shared_libs:
        entry = descriptor.shared_lib_entry(lib_name)
        if entry in entry_set:
            results.append(CheckResult(f"shared_lib:{lib_name}", "PASS", f"Required {entry} found"))
        else:
            results.append(CheckResult(f"shared_lib:{lib_name}", "FAIL", f"Required {entry} missing"))
    return results


def entries_contain_module(entries: Sequence[str], import_name: str) -> bool:
    """True when any path component is the package dir, module file or extension module."""

    target = import_name.lower()
    for entry in entries:
        for component in _components(entry):
            lowered = component.lower()
            if lowered == target or lowered == f"{target}.py":
                return True
            if lowered.startswith(f"{target}.") and lowered.endswith((".so", ".pyd")):
                return True
    return False


def check_dependencies_present(entries: Sequence[str], dependency_set: DependencySet) -> list[CheckResult]:
    results: list[CheckResult] = []
    for spec in dependency_set.runtime:
        check_id = f"dependency:{spec.import_name}"
        if entries_contain_module(entries, spec.import_name):
            results.append(
                CheckResult(check_id, "PASS", f"Dependency {spec.declared_name} present as {spec.import_name}")
            )
        else:
            results.append(
                CheckResult(
                    check_id,
                    "FAIL",
                    f"Dependency {spec.declared_name} ({spec.source_constraint or 'any'}) "
                    f"missing: no {spec.import_name} in archive",
                )
            )
    return results


def disallowed_entries(entries: Sequence[str], build_config: BuildConfig) -> list[str]:
    offenders: list[str] = []
    for entry in entries:
        components = _components(entry)
        if not components:
            continue
        dir_parts = components if entry.endswith("/") else components[:-1]
        if any(is_noise_dir(part, build_config) for part in dir_parts):
            offenders.append(entry)
        elif not entry.endswith("/") and is_noise_file(components[-1], build_config):
            offenders.append(entry)
    return offenders


def check_no_disallowed_paths(entries: Sequence[str], build_config: BuildConfig) -> CheckResult:
    offenders = disallowed_entries(entries, build_config)
    if not offenders:
        return CheckResult(
            "no_disallowed_paths",
            "PASS",
            "No bytecode caches, compiled files, package metadata or test directories in archive",
        )
    preview = ", ".join(offenders[:5])
    more = f" (+{len(offenders) - 5} more)" if len(offenders) > 5 else ""
    return CheckResult("no_disallowed_paths", "FAIL", f"Disallowed paths in archive: {preview}{more}")


def check_no_dev_dependencies(entries: Sequence[str], dev_names: Sequence[str]) -> CheckResult:
    top_levels = {_top_level(entry).lower() for entry in entries}
    present = sorted(
        {name for name in dev_names if name.lower() in top_levels or f"{name.lower()}.py" in top_levels}
    )
    if not present:
        return CheckResult("no_dev_dependencies", "PASS", "No development-only dependencies in archive")
    return CheckResult(
        "no_dev_dependencies",
        "FAIL",
        f"Development-only dependencies in archive: {', '.join(present)}",
    )


def check_renamed_source_absent(entries: Sequence[str], descriptor: PackageDescriptor) -> CheckResult:
    if descriptor.source_handler in entries:
        return CheckResult(
            "renamed_source_absent",
            "FAIL",
            f"Pre-rename handler {descriptor.source_handler} still present alongside {descriptor.published_handler}",
        )
    return CheckResult(
        "renamed_source_absent",
        "PASS",
        f"Pre-rename handler {descriptor.source_handler} absent",
    )


def check_archive_integrity(path: Path) -> CheckResult:
    """Decompress every member and compare CRCs."""

    try:
        with zipfile.ZipFile(path) as archive:
            bad_member = archive.testzip()
    except (zipfile.BadZipFile, zlib.error, EOFError, OSError) as exc:
        return CheckResult("archive_integrity", "FAIL", f"Archive is corrupted: {exc}", group="integrity")
    if bad_member is not None:
        return CheckResult(
            "archive_integrity",
            "FAIL",
            f"Archive is corrupted: bad CRC for {bad_member}",
            group="integrity",
        )
    return CheckResult("archive_integrity", "PASS", "Archive integrity verified (not corrupted)", group="integrity")
