"""Cross-file consistency audit of declared configuration against built archives."""

from lambda_pack.consistency.checks import (
    ConsistencyResult,
    ConsistencySection,
    check_docs,
    check_git_hygiene,
    check_handler_consistency,
    check_layer_configuration,
    check_required_files,
    check_runtime_versions,
    check_terraform_archives,
    check_terraform_tooling,
    check_upstream_versions,
    check_workflows,
    format_consistency_report,
    run_consistency_checks,
)

__all__ = [
    "ConsistencyResult",
    "ConsistencySection",
    "check_docs",
    "check_git_hygiene",
    "check_handler_consistency",
    "check_layer_configuration",
    "check_required_files",
    "check_runtime_versions",
    "check_terraform_archives",
    "check_terraform_tooling",
    "check_upstream_versions",
    "check_workflows",
    "format_consistency_report",
    "run_consistency_checks",
]
