"""Workspace assembly helpers."""

from lambda_pack.assemble.copier import (
    AssembleResult,
    apply_handler_rename,
    assemble_package,
    copy_handler_files,
    copy_shared_libs,
)

__all__ = [
    "AssembleResult",
    "apply_handler_rename",
    "assemble_package",
    "copy_handler_files",
    "copy_shared_libs",
]
