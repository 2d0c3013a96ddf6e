"""Import-resolution checks run in a clean interpreter against an extracted archive."""

from __future__ import annotations

import logging
import sys
import zipfile
from collections.abc import Sequence
from pathlib import Path

from lambda_pack.config import ValidationConfig
from lambda_pack.registry.descriptors import PackageDescriptor
from lambda_pack.utils.paths import reset_directory
from lambda_pack.utils.process import CommandResult, run_command
from lambda_pack.validate.reports import CheckResult
from lambda_pack.validate.rules import (
    ErrorClassificationRule,
    build_classification_rules,
    classify_import_error,
    last_error_line,
)

LOGGER = logging.getLogger(__name__)

# The extract dir is the only non-stdlib import root: -I drops env/user paths,
# -S drops site-packages, -B keeps the scratch tree free of bytecode.
IMPORT_PROBE = "import importlib, sys; sys.path.insert(0, sys.argv[1]); importlib.import_module(sys.argv[2])"
INTERPRETER_FLAGS: tuple[str, ...] = ("-I", "-S", "-B")


def extract_archive(archive_path: Path, scratch_dir: Path) -> Path:
    """Unpack ``archive_path`` into a freshly reset ``scratch_dir``."""

    reset_directory(scratch_dir)
    with zipfile.ZipFile(archive_path) as archive:
        archive.extractall(scratch_dir)
    return scratch_dir


def run_import_probe(
    module: str,
    extract_dir: Path,
    config: ValidationConfig,
    logger: logging.Logger | None = None,
) -> CommandResult:
    python = config.import_python_executable or sys.executable
    return run_command(
        [python, *INTERPRETER_FLAGS, "-c", IMPORT_PROBE, str(extract_dir), module],
        cwd=extract_dir,
        timeout=config.import_timeout_sec,
        logger=logger,
    )


def check_module_import(
    check_id: str,
    module: str,
    extract_dir: Path,
    rules: Sequence[ErrorClassificationRule],
    config: ValidationConfig,
    logger: logging.Logger | None = None,
) -> CheckResult:
    """Import ``module`` and classify any failure with ``rules``."""

    effective_logger = logger or LOGGER
    result = run_import_probe(module, extract_dir, config, logger=effective_logger)
    if result.ok:
        return CheckResult(check_id, "PASS", f"Module {module} imports successfully", group="import")

    error_text = result.output
    classification = classify_import_error(error_text, rules)
    effective_logger.info(
        "validate.import_failed module=%s verdict=%s rule=%s missing_module=%s",
        module,
        classification.verdict,
        classification.rule,
        classification.missing_module,
    )
    return CheckResult(
        check_id,
        classification.verdict,
        f"Module {module} import raised [{classification.rule}]: {last_error_line(error_text)}",
        group="import",
    )


def run_import_checks(
    archive_path: Path,
    descriptor: PackageDescriptor,
    config: ValidationConfig,
    scratch_dir: Path,
    logger: logging.Logger | None = None,
) -> list[CheckResult]:
    """Import the handler, each required shared library and each key dependency."""

    effective_logger = logger or LOGGER
    extract_archive(archive_path, scratch_dir)

    rules = build_classification_rules(config.runtime_config_signatures, config.runtime_allowlist)
    # Key dependencies must be bundled, so a runtime-provided name is no excuse.
    strict_rules = build_classification_rules(config.runtime_config_signatures, ())

    results = [
        check_module_import(
            "import_handler",
            descriptor.handler_module,
            scratch_dir,
            rules,
            config,
            logger=effective_logger,
        )
    ]
    for lib_name in descriptor.required_shared_libs:
        results.append(
            check_module_import(
                f"import_shared_lib:{lib_name}",
                descriptor.shared_lib_module(lib_name),
                scratch_dir,
                rules,
                config,
                logger=effective_logger,
            )
        )
    for dependency in config.key_dependencies:
        results.append(
            check_module_import(
                f"import_key_dependency:{dependency}",
                dependency,
                scratch_dir,
                strict_rules,
                config,
                logger=effective_logger,
            )
        )
    return results
