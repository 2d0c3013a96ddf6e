"""Workspace cleanup and archive creation."""

from lambda_pack.build.archive import (
    Artifact,
    build_artifact,
    discard_artifact,
    entries_frame,
    promote_artifact,
    read_artifact,
    write_archive,
)
from lambda_pack.build.cleaner import CleanResult, clean_workspace, is_noise_dir, is_noise_file

__all__ = [
    "Artifact",
    "build_artifact",
    "discard_artifact",
    "entries_frame",
    "promote_artifact",
    "read_artifact",
    "write_archive",
    "CleanResult",
    "clean_workspace",
    "is_noise_dir",
    "is_noise_file",
]
