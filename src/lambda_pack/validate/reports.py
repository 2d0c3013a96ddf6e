"""Check results, aggregated reports and their text/tabular renderings."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Literal

import polars as pl

Verdict = Literal["PASS", "WARN", "FAIL"]
VERDICT_VALUES: tuple[Verdict, ...] = ("PASS", "WARN", "FAIL")

CheckGroup = Literal["structural", "integrity", "import", "consistency"]


@dataclass(frozen=True, slots=True)
class CheckResult:
    """Verdict of one named check."""

    check_id: str
    verdict: Verdict
    message: str
    group: CheckGroup = "structural"

    @property
    def failed(self) -> bool:
        return self.verdict == "FAIL"


@dataclass(frozen=True, slots=True)
class ValidationReport:
    """Ordered check results; overall verdict is FAIL if any check failed."""

    checks: tuple[CheckResult, ...] = ()

    @classmethod
    def from_checks(cls, checks: Iterable[CheckResult]) -> "ValidationReport":
        return cls(checks=tuple(checks))

    @property
    def overall(self) -> Verdict:
        if any(check.verdict == "FAIL" for check in self.checks):
            return "FAIL"
        if any(check.verdict == "WARN" for check in self.checks):
            return "WARN"
        return "PASS"

    @property
    def passed(self) -> bool:
        return self.overall != "FAIL"

    @property
    def failed_checks(self) -> tuple[CheckResult, ...]:
        return tuple(check for check in self.checks if check.verdict == "FAIL")

    def counts(self) -> dict[Verdict, int]:
        """Return PASS/WARN/FAIL counts."""

        counts: dict[Verdict, int] = {verdict: 0 for verdict in VERDICT_VALUES}
        for check in self.checks:
            counts[check.verdict] += 1
        return counts


def format_check_line(check: CheckResult) -> str:
    return f"  {check.verdict}: {check.message}"


def format_summary_line(report: ValidationReport) -> str:
    counts = report.counts()
    return f"{counts['PASS']} passed, {counts['FAIL']} failed, {counts['WARN']} warnings"


def format_report(report: ValidationReport, title: str | None = None) -> str:
    """Render a report as PASS/WARN/FAIL lines followed by the summary line."""

    lines: list[str] = []
    if title:
        lines.append(title)
    lines.extend(format_check_line(check) for check in report.checks)
    lines.append(format_summary_line(report))
    return "\n".join(lines)


def report_payload(report: ValidationReport) -> dict[str, Any]:
    """JSON-ready report dictionary."""

    return {
        "overall": report.overall,
        "counts": report.counts(),
        "checks": [
            {
                "check_id": check.check_id,
                "group": check.group,
                "verdict": check.verdict,
                "message": check.message,
            }
            for check in report.checks
        ],
    }


def report_frame(report: ValidationReport) -> pl.DataFrame:
    """One row per check, in execution order."""

    return pl.DataFrame(
        [
            {
                "position": position,
                "check_id": check.check_id,
                "group": check.group,
                "verdict": check.verdict,
                "message": check.message,
            }
            for position, check in enumerate(report.checks)
        ],
        schema={
            "position": pl.Int64,
            "check_id": pl.String,
            "group": pl.String,
            "verdict": pl.String,
            "message": pl.String,
        },
    )
