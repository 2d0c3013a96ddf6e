"""Remove build-time noise from a populated workspace."""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path

from lambda_pack.config import BuildConfig

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CleanResult:
    """Counts of removed workspace paths."""

    removed_dirs: int
    removed_files: int


def is_noise_dir(name: str, config: BuildConfig) -> bool:
    return name in config.noise_dir_names or name.endswith(tuple(config.noise_dir_suffixes))


def is_noise_file(name: str, config: BuildConfig) -> bool:
    return name.endswith(tuple(config.noise_file_suffixes))


def clean_workspace(
    workspace: Path,
    config: BuildConfig,
    export_file_name: str | None = None,
    logger: logging.Logger | None = None,
) -> CleanResult:
    """Delete bytecode caches, package metadata, test directories and leftover exports."""

    effective_logger = logger or LOGGER
    removed_dirs = 0
    removed_files = 0

    for current_root, dir_names, file_names in os.walk(workspace, topdown=True):
        root_path = Path(current_root)
        for dir_name in sorted(dir_names):
            if is_noise_dir(dir_name, config):
                shutil.rmtree(root_path / dir_name)
                dir_names.remove(dir_name)
                removed_dirs += 1
        for file_name in file_names:
            if is_noise_file(file_name, config):
                (root_path / file_name).unlink()
                removed_files += 1

    if export_file_name:
        export_path = workspace / export_file_name
        if export_path.is_file():
            export_path.unlink()
            removed_files += 1

    effective_logger.info(
        "build.clean_complete workspace=%s removed_dirs=%s removed_files=%s",
        workspace,
        removed_dirs,
        removed_files,
    )
    return CleanResult(removed_dirs=removed_dirs, removed_files=removed_files)
