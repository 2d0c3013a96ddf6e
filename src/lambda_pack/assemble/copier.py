"""Copy handler and shared-library sources into the workspace and apply the handler rename."""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path

from lambda_pack.errors import PackagingError
from lambda_pack.registry.descriptors import SHARED_LIB_DIR, PackageDescriptor

LOGGER = logging.getLogger(__name__)

SOURCE_SUFFIX = ".py"


@dataclass(frozen=True, slots=True)
class AssembleResult:
    """Files placed into the workspace by the assembler."""

    handler_files: tuple[str, ...]
    shared_lib_files: tuple[str, ...]
    published_handler_path: Path
    renamed_from: str | None


def _source_files(directory: Path) -> list[Path]:
    return sorted(path for path in directory.iterdir() if path.is_file() and path.suffix == SOURCE_SUFFIX)


def copy_handler_files(source_dir: Path, workspace: Path) -> list[str]:
    """Copy every top-level handler source file into the workspace root."""

    handler_files = _source_files(source_dir)
    if not handler_files:
        raise PackagingError(f"No handler files (*{SOURCE_SUFFIX}) found in {source_dir}")
    for path in handler_files:
        shutil.copy2(path, workspace / path.name)
    return [path.name for path in handler_files]


def copy_shared_libs(lib_dir: Path, workspace: Path, descriptor: PackageDescriptor) -> list[str]:
    """Copy shared-library sources under ``lib/`` and confirm every required one arrived."""

    target_dir = workspace / SHARED_LIB_DIR
    target_dir.mkdir(parents=True, exist_ok=True)
    copied = _source_files(lib_dir)
    for path in copied:
        shutil.copy2(path, target_dir / path.name)

    missing = [lib for lib in descriptor.required_shared_libs if not (target_dir / lib).is_file()]
    if missing:
        raise PackagingError(
            f"Required shared lib missing for {descriptor.name}: {', '.join(missing)} (looked in {lib_dir})"
        )
    return [path.name for path in copied]


def apply_handler_rename(workspace: Path, descriptor: PackageDescriptor) -> Path:
    """Rename the source handler to its published name, in place."""

    published_path = workspace / descriptor.published_handler
    if descriptor.renames_handler:
        source_path = workspace / descriptor.source_handler
        if not source_path.is_file():
            raise PackagingError(
                f"Handler rename source missing for {descriptor.name}: "
                f"{descriptor.source_handler} -> {descriptor.published_handler}"
            )
        source_path.replace(published_path)
    if not published_path.is_file():
        raise PackagingError(f"Published handler missing for {descriptor.name}: {descriptor.published_handler}")
    return published_path


def assemble_package(
    descriptor: PackageDescriptor,
    source_dir: Path,
    lib_dir: Path,
    workspace: Path,
    logger: logging.Logger | None = None,
) -> AssembleResult:
    """Place handler and shared-library sources into ``workspace``."""

    effective_logger = logger or LOGGER
    handler_files = copy_handler_files(source_dir, workspace)
    shared_lib_files = copy_shared_libs(lib_dir, workspace, descriptor)
    published_path = apply_handler_rename(workspace, descriptor)

    effective_logger.info(
        "assemble.complete package=%s handlers=%s shared_libs=%s published=%s renamed_from=%s",
        descriptor.name,
        len(handler_files),
        len(shared_lib_files),
        descriptor.published_handler,
        descriptor.source_handler if descriptor.renames_handler else None,
    )
    return AssembleResult(
        handler_files=tuple(handler_files),
        shared_lib_files=tuple(shared_lib_files),
        published_handler_path=published_path,
        renamed_from=descriptor.source_handler if descriptor.renames_handler else None,
    )
