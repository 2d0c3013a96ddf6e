"""Deterministic zip archives of a workspace root, staged until validated."""

from __future__ import annotations

import logging
import os
import stat
import zipfile
from dataclasses import dataclass
from pathlib import Path

import polars as pl

from lambda_pack.utils.paths import atomic_temp_path
from lambda_pack.utils.time_utils import ZIP_EPOCH

LOGGER = logging.getLogger(__name__)

DIR_MODE = 0o40755
EXEC_FILE_MODE = 0o100755
FILE_MODE = 0o100644


@dataclass(frozen=True, slots=True)
class Artifact:
    """A produced archive and its flat entry listing."""

    path: Path
    size_bytes: int
    entries: tuple[str, ...]

    @property
    def size_mb(self) -> float:
        return self.size_bytes / (1024 * 1024)

    @property
    def file_entries(self) -> tuple[str, ...]:
        return tuple(entry for entry in self.entries if not entry.endswith("/"))


def _iter_tree(root: Path) -> tuple[list[str], list[str]]:
    """Return sorted relative directory and file paths under ``root``."""

    dirs: list[str] = []
    files: list[str] = []
    for current_root, dir_names, file_names in os.walk(root):
        dir_names.sort()
        rel_root = Path(current_root).relative_to(root)
        for dir_name in dir_names:
            dirs.append((rel_root / dir_name).as_posix())
        for file_name in file_names:
            files.append((rel_root / file_name).as_posix())
    return sorted(dirs), sorted(files)


def _file_mode(path: Path) -> int:
    return EXEC_FILE_MODE if path.stat().st_mode & stat.S_IXUSR else FILE_MODE


def write_archive(workspace: Path, output_path: Path, compression_level: int = 9) -> Path:
    """Zip the contents of ``workspace`` with entries relative to it.

    Entries are sorted and carry a fixed timestamp and normalized permission
    bits, so the same tree always yields the same bytes.
    """

    dirs, files = _iter_tree(workspace)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(output_path, "w", zipfile.ZIP_DEFLATED, compresslevel=compression_level) as archive:
        for rel_dir in dirs:
            info = zipfile.ZipInfo(f"{rel_dir}/", date_time=ZIP_EPOCH)
            info.compress_type = zipfile.ZIP_STORED
            info.external_attr = DIR_MODE << 16
            archive.writestr(info, b"")
        for rel_file in files:
            source = workspace / rel_file
            info = zipfile.ZipInfo(rel_file, date_time=ZIP_EPOCH)
            info.compress_type = zipfile.ZIP_DEFLATED
            info.external_attr = _file_mode(source) << 16
            archive.writestr(info, source.read_bytes(), compresslevel=compression_level)
    return output_path


def read_artifact(path: Path) -> Artifact:
    """Describe an existing archive; raises ``zipfile.BadZipFile`` when unreadable."""

    with zipfile.ZipFile(path) as archive:
        entries = tuple(archive.namelist())
    return Artifact(path=path, size_bytes=path.stat().st_size, entries=entries)


def staging_path(output_dir: Path, archive_name: str) -> Path:
    """Hidden sibling path the archive lives at until it passes validation."""

    return atomic_temp_path(output_dir / archive_name)


def build_artifact(
    workspace: Path,
    output_dir: Path,
    archive_name: str,
    compression_level: int = 9,
    logger: logging.Logger | None = None,
) -> Artifact:
    """Write a staged archive of ``workspace`` into ``output_dir``."""

    effective_logger = logger or LOGGER
    staged = staging_path(output_dir, archive_name)
    try:
        write_archive(workspace, staged, compression_level=compression_level)
    except BaseException:
        if staged.exists():
            staged.unlink()
        raise
    artifact = read_artifact(staged)
    effective_logger.info(
        "build.archive_staged path=%s size_bytes=%s entries=%s",
        staged,
        artifact.size_bytes,
        len(artifact.entries),
    )
    return artifact


def promote_artifact(artifact: Artifact, final_path: Path) -> Artifact:
    """Atomically move a validated staged archive to its published path."""

    os.replace(artifact.path, final_path)
    return Artifact(path=final_path, size_bytes=artifact.size_bytes, entries=artifact.entries)


def discard_artifact(artifact: Artifact) -> None:
    """Remove a rejected staged archive."""

    if artifact.path.exists():
        artifact.path.unlink()


def entries_frame(path: Path) -> pl.DataFrame:
    """Return one row per archive entry with sizes and CRC."""

    with zipfile.ZipFile(path) as archive:
        rows = [
            {
                "entry": info.filename,
                "is_dir": info.is_dir(),
                "compressed_size": info.compress_size,
                "file_size": info.file_size,
                "crc32": f"{info.CRC:08x}",
            }
            for info in archive.infolist()
        ]
    return pl.DataFrame(
        rows,
        schema={
            "entry": pl.String,
            "is_dir": pl.Boolean,
            "compressed_size": pl.Int64,
            "file_size": pl.Int64,
            "crc32": pl.String,
        },
    )
