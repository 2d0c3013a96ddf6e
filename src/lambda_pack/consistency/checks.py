"""Cross-file audit: declared infrastructure configuration versus built archives."""

from __future__ import annotations

import logging
import re
import shutil
import zipfile
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from lambda_pack.build.archive import read_artifact
from lambda_pack.config import AppSettings, ConsistencyConfig
from lambda_pack.registry.descriptors import PackageRegistry, build_registry
from lambda_pack.utils.process import run_command
from lambda_pack.validate.reports import CheckResult, ValidationReport, Verdict, format_check_line, format_summary_line

LOGGER = logging.getLogger(__name__)

TERRAFORM_GLOB = "lambda.*.tf"
HANDLER_PATTERN = re.compile(r'handler\s*=\s*"([^"]*)"')
RUNTIME_PATTERN = re.compile(r'runtime\s*=\s*"python([0-9]+\.[0-9]+)"')
DOCKER_PYTHON_PATTERN = re.compile(r"python:([0-9]+\.[0-9]+)")
SSM_PYTHON_PATTERN = re.compile(r"python([0-9]+\.[0-9]+)")
SEMVER_TAG_PATTERN = re.compile(r"v[0-9]+\.[0-9]+\.[0-9]+")
POWERTOOLS_LAYER_REF = "data.aws_ssm_parameter.powertools_layer.value"
POWERTOOLS_DATA_SOURCE = re.compile(r"aws_ssm_parameter.*powertools_layer")
POWERTOOLS_PATH_PATTERN = re.compile(r"/aws/service/powertools/[^\"]+")
POWERTOOLS_PATH_FORMAT = re.compile(r"^/aws/service/powertools/python/(x86_64|arm64)/python[0-9]+\.[0-9]+/latest$")
SECRETS_PATTERN = (
    r'(AWS_ACCESS_KEY|AWS_SECRET_KEY|AKIA[0-9A-Z]{16}|password\s*=\s*"[^"]+"|secret\s*=\s*"[^"]+")'
)
SECRETS_EXCLUDES: tuple[str, ...] = (":!upstream/", ":!*.md", ":!*.lock")


@dataclass(frozen=True, slots=True)
class ConsistencySection:
    """Titled group of audit assertions."""

    title: str
    checks: tuple[CheckResult, ...]


@dataclass(frozen=True, slots=True)
class ConsistencyResult:
    """All audit sections for one repository checkout."""

    repo_root: Path
    sections: tuple[ConsistencySection, ...]

    @property
    def report(self) -> ValidationReport:
        return ValidationReport.from_checks(check for section in self.sections for check in section.checks)

    @property
    def exit_code(self) -> int:
        return 0 if self.report.passed else 1


def _check(check_id: str, verdict: Verdict, message: str) -> CheckResult:
    return CheckResult(check_id, verdict, message, group="consistency")


def _read(path: Path) -> str:
    return path.read_text(encoding="utf-8", errors="replace")


def _terraform_files(repo_root: Path) -> list[Path]:
    return sorted(repo_root.glob(TERRAFORM_GLOB))


def check_required_files(repo_root: Path, config: ConsistencyConfig) -> list[CheckResult]:
    results: list[CheckResult] = []
    for rel_path in config.required_files:
        if (repo_root / rel_path).is_file():
            results.append(_check(f"file:{rel_path}", "PASS", f"{rel_path} exists"))
        else:
            results.append(_check(f"file:{rel_path}", "FAIL", f"{rel_path} missing"))
    return results


def check_terraform_archives(
    repo_root: Path,
    config: ConsistencyConfig,
    registry: PackageRegistry,
    min_size_bytes: int,
) -> list[CheckResult]:
    """Every archive referenced from terraform exists and each package archive clears the floor."""

    results: list[CheckResult] = []
    ref_pattern = re.compile(rf"{re.escape(config.archive_dir)}/[A-Za-z0-9_\-]+\.zip")
    for tf_path in _terraform_files(repo_root):
        for zip_ref in sorted(set(ref_pattern.findall(_read(tf_path)))):
            check_id = f"tf_archive:{tf_path.name}:{zip_ref}"
            if (repo_root / zip_ref).is_file():
                results.append(_check(check_id, "PASS", f"{tf_path.name} -> {zip_ref} exists"))
            else:
                results.append(_check(check_id, "FAIL", f"{tf_path.name} -> {zip_ref} missing"))

    for descriptor in registry.values():
        zip_path = repo_root / config.archive_dir / descriptor.archive_name
        if not zip_path.is_file():
            continue
        size = zip_path.stat().st_size
        check_id = f"archive_size:{descriptor.archive_name}"
        if size > min_size_bytes:
            results.append(
                _check(check_id, "PASS", f"{descriptor.archive_name} is {size / (1024 * 1024):.2f}MB (> minimum)")
            )
        else:
            results.append(
                _check(
                    check_id,
                    "FAIL",
                    f"{descriptor.archive_name} is only {size // 1024}KB; likely missing dependencies",
                )
            )
    return results


def check_handler_consistency(
    repo_root: Path,
    config: ConsistencyConfig,
    registry: PackageRegistry,
) -> list[CheckResult]:
    """Terraform handler strings and archive entry points agree with the registry."""

    results: list[CheckResult] = []
    for descriptor in registry.values():
        expected_handler = f"{descriptor.handler_module}.lambda_handler"
        tf_name = config.terraform_files.get(descriptor.name)
        if tf_name is None:
            results.append(
                _check(f"tf_handler:{descriptor.name}", "WARN", f"No terraform file mapped for {descriptor.name}")
            )
        elif not (repo_root / tf_name).is_file():
            results.append(_check(f"tf_handler:{descriptor.name}", "FAIL", f"{tf_name} missing"))
        else:
            match = HANDLER_PATTERN.search(_read(repo_root / tf_name))
            actual = match.group(1) if match else ""
            if actual == expected_handler:
                results.append(_check(f"tf_handler:{descriptor.name}", "PASS", f'{tf_name} handler = "{actual}"'))
            else:
                results.append(
                    _check(
                        f"tf_handler:{descriptor.name}",
                        "FAIL",
                        f'{tf_name} handler mismatch: expected "{expected_handler}", got "{actual}"',
                    )
                )

        zip_path = repo_root / config.archive_dir / descriptor.archive_name
        if not zip_path.is_file():
            continue
        check_id = f"archive_handler:{descriptor.name}"
        try:
            entries = read_artifact(zip_path).entries
        except zipfile.BadZipFile as exc:
            results.append(_check(check_id, "FAIL", f"{descriptor.archive_name} unreadable: {exc}"))
            continue
        if descriptor.published_handler in entries:
            results.append(
                _check(check_id, "PASS", f"{descriptor.archive_name} contains {descriptor.published_handler}")
            )
        else:
            results.append(
                _check(check_id, "FAIL", f"{descriptor.archive_name} missing {descriptor.published_handler}")
            )
    return results


def _version_check(check_id: str, label: str, found: str | None, expected: str) -> CheckResult:
    if found == expected:
        return _check(check_id, "PASS", f"{label} = python{found}")
    return _check(check_id, "FAIL", f"{label} = python{found or 'unknown'} (expected {expected})")


def check_runtime_versions(repo_root: Path, config: ConsistencyConfig) -> list[CheckResult]:
    """Every file that pins the runtime version pins the expected one."""

    expected = config.expected_python
    results: list[CheckResult] = []
    for tf_path in _terraform_files(repo_root):
        match = RUNTIME_PATTERN.search(_read(tf_path))
        if match:
            results.append(_version_check(f"runtime:{tf_path.name}", f"{tf_path.name} runtime", match.group(1), expected))

    dockerfile = repo_root / config.dockerfile
    if dockerfile.is_file():
        match = DOCKER_PYTHON_PATTERN.search(_read(dockerfile))
        results.append(
            _version_check(
                f"runtime:{config.dockerfile}",
                "Dockerfile base image",
                match.group(1) if match else None,
                expected,
            )
        )

    ssm_file = repo_root / config.powertools_data_file
    if ssm_file.is_file():
        match = SSM_PYTHON_PATTERN.search(_read(ssm_file))
        results.append(
            _version_check(
                f"runtime:{config.powertools_data_file}",
                "SSM Powertools path",
                match.group(1) if match else None,
                expected,
            )
        )
    return results


def check_upstream_versions(repo_root: Path, config: ConsistencyConfig) -> list[CheckResult]:
    """Every version-pin location references the expected upstream tag."""

    expected = config.expected_upstream
    pin_pattern = re.compile(rf"(--branch|default:).*{re.escape(expected)}")
    results: list[CheckResult] = []
    for rel_path in config.version_locations:
        path = repo_root / rel_path
        if not path.is_file():
            continue
        text = _read(path)
        if pin_pattern.search(text):
            results.append(_check(f"upstream:{rel_path}", "PASS", f"{rel_path} references {expected}"))
        else:
            found = SEMVER_TAG_PATTERN.search(text)
            results.append(
                _check(
                    f"upstream:{rel_path}",
                    "FAIL",
                    f"{rel_path} references {found.group(0) if found else 'unknown'} (expected {expected})",
                )
            )
    return results


def check_terraform_tooling(repo_root: Path, logger: logging.Logger | None = None) -> list[CheckResult]:
    """Run terraform init/validate/fmt when the binary is available."""

    terraform = shutil.which("terraform")
    if terraform is None:
        return [_check("terraform", "WARN", "terraform not found; skipping terraform validation")]

    results: list[CheckResult] = []
    init = run_command([terraform, "init", "-backend=false", "-no-color"], cwd=repo_root, logger=logger)
    if init.ok:
        results.append(_check("terraform_init", "PASS", "terraform init succeeds"))
    else:
        results.append(_check("terraform_init", "FAIL", "terraform init failed"))

    validate = run_command([terraform, "validate", "-no-color"], cwd=repo_root, logger=logger)
    if validate.ok and "Success" in validate.output:
        results.append(_check("terraform_validate", "PASS", "terraform validate succeeds"))
    else:
        results.append(_check("terraform_validate", "FAIL", f"terraform validate failed: {validate.output}"))

    fmt = run_command([terraform, "fmt", "-check", "-recursive", "-no-color"], cwd=repo_root, logger=logger)
    if fmt.ok and not fmt.output.strip():
        results.append(_check("terraform_fmt", "PASS", "terraform fmt check passes"))
    else:
        results.append(_check("terraform_fmt", "FAIL", f"terraform fmt check failed; unformatted files: {fmt.output}"))
    return results


def check_layer_configuration(repo_root: Path, config: ConsistencyConfig) -> list[CheckResult]:
    results: list[CheckResult] = []
    for tf_path in _terraform_files(repo_root):
        if POWERTOOLS_LAYER_REF in _read(tf_path):
            results.append(_check(f"layer:{tf_path.name}", "PASS", f"{tf_path.name} has powertools layer configured"))
        else:
            results.append(_check(f"layer:{tf_path.name}", "FAIL", f"{tf_path.name} missing powertools layer"))

    data_file = repo_root / config.powertools_data_file
    if not data_file.is_file():
        return results
    text = _read(data_file)
    if POWERTOOLS_DATA_SOURCE.search(text):
        results.append(_check("layer_data_source", "PASS", f"{config.powertools_data_file} defines SSM data source"))
    else:
        results.append(_check("layer_data_source", "FAIL", f"{config.powertools_data_file} missing SSM data source"))

    path_match = POWERTOOLS_PATH_PATTERN.search(text)
    ssm_path = path_match.group(0) if path_match else ""
    if POWERTOOLS_PATH_FORMAT.match(ssm_path):
        results.append(_check("layer_ssm_path", "PASS", f"SSM path format valid: {ssm_path}"))
    else:
        results.append(_check("layer_ssm_path", "FAIL", f"SSM path format unexpected: {ssm_path or '<none>'}"))
    return results


def check_workflows(repo_root: Path, config: ConsistencyConfig, registry: PackageRegistry) -> list[CheckResult]:
    """CI workflows cover every registered package and declare permissions."""

    results: list[CheckResult] = []
    for rel_path in config.workflow_files:
        path = repo_root / rel_path
        if not path.is_file():
            continue
        text = _read(path)
        missing = [name for name in registry if name not in text]
        if missing:
            results.append(
                _check(f"workflow_packages:{rel_path}", "FAIL", f"{rel_path} missing packages: {', '.join(missing)}")
            )
        else:
            results.append(_check(f"workflow_packages:{rel_path}", "PASS", f"{rel_path} covers all packages"))
        if "permissions:" in text:
            results.append(_check(f"workflow_permissions:{rel_path}", "PASS", f"{rel_path} has permissions configured"))
        else:
            results.append(_check(f"workflow_permissions:{rel_path}", "FAIL", f"{rel_path} missing permissions block"))
    return results


def check_docs(repo_root: Path, config: ConsistencyConfig) -> list[CheckResult]:
    results: list[CheckResult] = []
    for rel_path in config.doc_files:
        path = repo_root / rel_path
        if not path.is_file():
            continue
        if config.expected_upstream in _read(path):
            results.append(_check(f"docs:{rel_path}", "PASS", f"{rel_path} references {config.expected_upstream}"))
        else:
            results.append(_check(f"docs:{rel_path}", "WARN", f"{rel_path} may need upstream version update"))
    for assertion in config.doc_assertions:
        path = repo_root / assertion.file
        text = _read(path) if path.is_file() else ""
        missing = [pattern for pattern in assertion.patterns if re.search(pattern, text) is None]
        check_id = f"doc_content:{assertion.file}"
        if missing:
            absent = ", ".join(missing)
            message = f"{assertion.file} {assertion.description}: missing {absent}"
            results.append(_check(check_id, assertion.verdict_on_miss, message))
        else:
            results.append(_check(check_id, "PASS", f"{assertion.file} {assertion.description}"))
    return results


def check_git_hygiene(
    repo_root: Path,
    config: ConsistencyConfig,
    registry: PackageRegistry,
    logger: logging.Logger | None = None,
) -> list[CheckResult]:
    """Archives tracked, upstream checkout untracked, no secret-looking strings."""

    probe = run_command(["git", "-C", str(repo_root), "rev-parse", "--is-inside-work-tree"], logger=logger)
    if not probe.ok:
        return [_check("git", "WARN", "not a git checkout; skipping git hygiene checks")]

    def is_tracked(rel_path: str) -> bool:
        return run_command(
            ["git", "-C", str(repo_root), "ls-files", "--error-unmatch", rel_path],
            logger=logger,
        ).ok

    results: list[CheckResult] = []
    for descriptor in registry.values():
        rel_path = f"{config.archive_dir}/{descriptor.archive_name}"
        if is_tracked(rel_path):
            results.append(_check(f"git_tracked:{rel_path}", "PASS", f"{rel_path} is git-tracked"))
        else:
            results.append(_check(f"git_tracked:{rel_path}", "FAIL", f"{rel_path} is NOT git-tracked"))

    for rel_dir in config.untracked_dirs:
        if is_tracked(rel_dir):
            results.append(_check(f"git_untracked:{rel_dir}", "FAIL", f"{rel_dir} is git-tracked (should be ignored)"))
        else:
            results.append(_check(f"git_untracked:{rel_dir}", "PASS", f"{rel_dir} is not git-tracked"))

    grep = run_command(
        ["git", "-C", str(repo_root), "grep", "-lE", SECRETS_PATTERN, "--", ".", *SECRETS_EXCLUDES],
        logger=logger,
    )
    hits = grep.stdout.strip()
    if grep.returncode == 1 or not hits:
        results.append(_check("git_secrets", "PASS", "No secrets detected in tracked files"))
    else:
        results.append(_check("git_secrets", "FAIL", f"Possible secrets in: {', '.join(hits.splitlines())}"))
    return results


def run_consistency_checks(
    repo_root: Path,
    settings: AppSettings,
    *,
    registry: PackageRegistry | None = None,
    logger: logging.Logger | None = None,
) -> ConsistencyResult:
    """Run every audit section in order."""

    effective_logger = logger or LOGGER
    package_registry = registry or build_registry(settings)
    config = settings.consistency

    section_builders: list[tuple[str, Callable[[], list[CheckResult]]]] = [
        ("FILE EXISTENCE", lambda: check_required_files(repo_root, config)),
        (
            "TERRAFORM -> LAMBDA ZIP CONSISTENCY",
            lambda: check_terraform_archives(
                repo_root,
                config,
                package_registry,
                settings.validation.min_size_bytes,
            ),
        ),
        ("HANDLER NAME CONSISTENCY", lambda: check_handler_consistency(repo_root, config, package_registry)),
        ("PYTHON RUNTIME CONSISTENCY", lambda: check_runtime_versions(repo_root, config)),
        ("UPSTREAM VERSION CONSISTENCY", lambda: check_upstream_versions(repo_root, config)),
        ("TERRAFORM INTEGRITY", lambda: check_terraform_tooling(repo_root, logger=effective_logger)),
        ("LAMBDA LAYER CONFIGURATION", lambda: check_layer_configuration(repo_root, config)),
        ("CI/CD WORKFLOW CONSISTENCY", lambda: check_workflows(repo_root, config, package_registry)),
        ("DOCUMENTATION CROSS-REFERENCES", lambda: check_docs(repo_root, config)),
        ("GIT HYGIENE", lambda: check_git_hygiene(repo_root, config, package_registry, logger=effective_logger)),
    ]

    sections = tuple(ConsistencySection(title=title, checks=tuple(build())) for title, build in section_builders)
    result = ConsistencyResult(repo_root=repo_root, sections=sections)
    counts = result.report.counts()
    effective_logger.info(
        "consistency.complete repo_root=%s passed=%s failed=%s warned=%s",
        repo_root,
        counts["PASS"],
        counts["FAIL"],
        counts["WARN"],
    )
    return result


def format_consistency_report(result: ConsistencyResult) -> str:
    """Render sections, PASS/WARN/FAIL lines and the summary line."""

    lines = [f"Consistency checks: {result.repo_root}"]
    for section in result.sections:
        lines.append("")
        lines.append(f"--- {section.title} ---")
        lines.extend(format_check_line(check) for check in section.checks)
    lines.append("")
    lines.append(format_summary_line(result.report))
    lines.append(f"STATUS: {'PASSED' if result.exit_code == 0 else 'FAILED'}")
    return "\n".join(lines)
