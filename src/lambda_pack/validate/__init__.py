"""Archive validation: structural checks, import checks and error classification."""

from lambda_pack.validate.engine import run_structural_checks, validate_artifact
from lambda_pack.validate.imports import check_module_import, extract_archive, run_import_checks
from lambda_pack.validate.reports import (
    VERDICT_VALUES,
    CheckResult,
    ValidationReport,
    Verdict,
    format_report,
    format_summary_line,
    report_frame,
    report_payload,
)
from lambda_pack.validate.rules import (
    Classification,
    ErrorClassificationRule,
    build_classification_rules,
    classify_import_error,
    is_runtime_provided,
    missing_module_name,
)

__all__ = [
    "run_structural_checks",
    "validate_artifact",
    "check_module_import",
    "extract_archive",
    "run_import_checks",
    "VERDICT_VALUES",
    "CheckResult",
    "ValidationReport",
    "Verdict",
    "format_report",
    "format_summary_line",
    "report_frame",
    "report_payload",
    "Classification",
    "ErrorClassificationRule",
    "build_classification_rules",
    "classify_import_error",
    "is_runtime_provided",
    "missing_module_name",
]
