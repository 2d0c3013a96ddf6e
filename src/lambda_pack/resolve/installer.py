"""Export, install and verify third-party dependencies into a build workspace."""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, replace
from pathlib import Path

from packaging.markers import default_environment
from packaging.requirements import Requirement
from packaging.utils import canonicalize_name

from lambda_pack.config import ResolverConfig
from lambda_pack.errors import DependencyResolutionError, InstallVerificationError
from lambda_pack.resolve.manifest import (
    POETRY_LOCK_FILE,
    DependencySet,
    load_dependency_set,
    parse_requirement_lines,
    read_manifest_text,
)
from lambda_pack.utils.process import CommandResult, run_command

LOGGER = logging.getLogger(__name__)

INSTALLED_METADATA_SUFFIXES: tuple[str, ...] = (".dist-info", ".egg-info")


@dataclass(frozen=True, slots=True)
class ResolveResult:
    """Outcome of dependency materialization for one workspace."""

    dependency_set: DependencySet
    requirements_path: Path
    exported_count: int
    installed_count: int
    lock_generated: bool


def _require_success(result: CommandResult, step: str) -> CommandResult:
    if not result.ok:
        raise DependencyResolutionError(
            f"{step} failed with exit code {result.returncode}: {' '.join(result.args)}",
            detail=result.output,
        )
    return result


def generate_lock(
    source_dir: Path,
    config: ResolverConfig,
    logger: logging.Logger | None = None,
) -> bool:
    """Run ``poetry lock`` when the source has no lock file. Return True if one was generated."""

    effective_logger = logger or LOGGER
    if (source_dir / POETRY_LOCK_FILE).exists():
        return False
    if not config.lock_if_missing:
        raise DependencyResolutionError(f"{POETRY_LOCK_FILE} missing in {source_dir} and lock generation is disabled")
    effective_logger.info("resolve.lock_start source_dir=%s", source_dir)
    _require_success(
        run_command([config.poetry_executable, "lock"], cwd=source_dir, logger=effective_logger),
        "poetry lock",
    )
    return True


def export_requirements(
    source_dir: Path,
    workspace: Path,
    config: ResolverConfig,
    logger: logging.Logger | None = None,
) -> Path:
    """Export the locked non-development dependencies to a flat list inside the workspace."""

    effective_logger = logger or LOGGER
    output_path = workspace / config.export_file_name
    args = [
        config.poetry_executable,
        "export",
        "--without",
        "dev",
        "-f",
        "requirements.txt",
        "-o",
        str(output_path),
    ]
    if config.without_hashes:
        args.append("--without-hashes")
    _require_success(run_command(args, cwd=source_dir, logger=effective_logger), "poetry export")
    if not output_path.is_file():
        raise DependencyResolutionError(f"poetry export reported success but wrote no file: {output_path}")
    effective_logger.info("resolve.export_complete output=%s", output_path)
    return output_path


def install_requirements(
    requirements_path: Path,
    workspace: Path,
    config: ResolverConfig,
    logger: logging.Logger | None = None,
) -> CommandResult:
    """Install a flat requirement list into the workspace package-search path."""

    effective_logger = logger or LOGGER
    python = config.python_executable or sys.executable
    args = [
        python,
        "-m",
        "pip",
        "install",
        "-r",
        str(requirements_path.resolve()),
        "--target",
        str(workspace),
        "--no-cache-dir",
        "--quiet",
        *config.pip_extra_args,
    ]
    result = _require_success(run_command(args, cwd=workspace, logger=effective_logger), "pip install")
    effective_logger.info("resolve.install_complete requirements=%s", requirements_path)
    return result


def count_installed_packages(workspace: Path) -> int:
    """Count package metadata directories at the top of the workspace."""

    if not workspace.is_dir():
        return 0
    return sum(
        1
        for entry in workspace.iterdir()
        if entry.is_dir() and entry.name.endswith(INSTALLED_METADATA_SUFFIXES)
    )


def target_environment(target_python_version: str) -> dict[str, str]:
    environment = dict(default_environment())
    environment["python_version"] = target_python_version
    environment["python_full_version"] = f"{target_python_version}.0"
    return environment


def marker_context(requirements: list[Requirement], target_python_version: str) -> list[str]:
    """Evaluate each requirement marker against the target interpreter version."""

    environment = target_environment(target_python_version)

    lines: list[str] = []
    for requirement in requirements:
        if requirement.marker is None:
            lines.append(f"{requirement.name} (no marker) -> True")
            continue
        evaluated = requirement.marker.evaluate(environment)
        lines.append(f"{requirement.name} ; {requirement.marker} -> {evaluated}")
    lines.append(f"evaluated with python_version={target_python_version} sys_platform={environment['sys_platform']}")
    return lines


def verify_install(
    workspace: Path,
    requirements_path: Path,
    install_result: CommandResult,
    config: ResolverConfig,
    logger: logging.Logger | None = None,
) -> tuple[int, int]:
    """Fail when a non-empty exported list produced zero installed packages.

    Returns ``(exported_count, installed_count)``.
    """

    effective_logger = logger or LOGGER
    requirements = parse_requirement_lines(read_manifest_text(requirements_path), source=str(requirements_path))
    installed = count_installed_packages(workspace)
    effective_logger.info(
        "resolve.verify exported=%s installed=%s workspace=%s",
        len(requirements),
        installed,
        workspace,
    )
    if requirements and installed == 0:
        raise InstallVerificationError(
            f"pip install reported success but installed 0 of {len(requirements)} exported requirements "
            f"into {workspace}",
            exported_requirements=[str(requirement) for requirement in requirements],
            marker_context=marker_context(requirements, config.target_python_version),
            detail=install_result.output or None,
        )
    return len(requirements), installed


def installable_dependency_set(
    dependency_set: DependencySet,
    requirements_path: Path,
    target_python_version: str,
    logger: logging.Logger | None = None,
) -> DependencySet:
    """Keep only runtime dependencies that the installed list actually carries for the target."""

    effective_logger = logger or LOGGER
    environment = target_environment(target_python_version)
    requirements = parse_requirement_lines(read_manifest_text(requirements_path), source=str(requirements_path))
    installable = {
        canonicalize_name(requirement.name)
        for requirement in requirements
        if requirement.marker is None or requirement.marker.evaluate(environment)
    }
    kept = tuple(spec for spec in dependency_set.runtime if canonicalize_name(spec.declared_name) in installable)
    skipped = [spec.declared_name for spec in dependency_set.runtime if spec not in kept]
    if skipped:
        effective_logger.info(
            "resolve.runtime_skipped names=%s python_version=%s",
            ",".join(skipped),
            target_python_version,
        )
    return replace(dependency_set, runtime=kept)


def resolve_dependencies(
    source_dir: Path,
    workspace: Path,
    config: ResolverConfig,
    logger: logging.Logger | None = None,
) -> ResolveResult:
    """Materialize the source manifest's dependencies into ``workspace``."""

    effective_logger = logger or LOGGER
    dependency_set = load_dependency_set(
        source_dir,
        overrides=config.import_name_overrides,
        logger=effective_logger,
    )

    lock_generated = False
    if dependency_set.kind == "requirements":
        requirements_path = dependency_set.manifest_path
    else:
        lock_generated = generate_lock(source_dir, config, logger=effective_logger)
        requirements_path = export_requirements(source_dir, workspace, config, logger=effective_logger)

    install_result = install_requirements(requirements_path, workspace, config, logger=effective_logger)
    exported_count, installed_count = verify_install(
        workspace,
        requirements_path,
        install_result,
        config,
        logger=effective_logger,
    )
    dependency_set = installable_dependency_set(
        dependency_set,
        requirements_path,
        config.target_python_version,
        logger=effective_logger,
    )
    return ResolveResult(
        dependency_set=dependency_set,
        requirements_path=requirements_path,
        exported_count=exported_count,
        installed_count=installed_count,
        lock_generated=lock_generated,
    )
