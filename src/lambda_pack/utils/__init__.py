"""Shared utility helpers."""

from lambda_pack.utils.paths import (
    atomic_temp_path,
    ensure_directories,
    remove_path,
    reset_directory,
    write_json_atomically,
    write_parquet_atomically,
)
from lambda_pack.utils.process import CommandResult, run_command
from lambda_pack.utils.time_utils import ZIP_EPOCH, elapsed_since, now_utc

__all__ = [
    "atomic_temp_path",
    "ensure_directories",
    "remove_path",
    "reset_directory",
    "write_json_atomically",
    "write_parquet_atomically",
    "CommandResult",
    "run_command",
    "ZIP_EPOCH",
    "elapsed_since",
    "now_utc",
]
