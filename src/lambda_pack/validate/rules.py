"""Ordered rules that turn import-failure text into a PASS/WARN/FAIL verdict."""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from lambda_pack.validate.reports import Verdict

ErrorPredicate = Callable[[str], bool]

RUNTIME_CONFIG_RULE = "runtime_config_missing"
RUNTIME_PROVIDED_RULE = "runtime_provided_module_missing"
MODULE_NOT_FOUND_RULE = "module_not_found"
UNEXPECTED_ERROR_RULE = "unexpected_error"

MODULE_NOT_FOUND_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"No module named ['\"](?P<module>[^'\"]+)['\"]"),
    re.compile(r"module not found:?\s*['\"]?(?P<module>[A-Za-z_][\w.]*)", re.IGNORECASE),
)


@dataclass(frozen=True, slots=True)
class ErrorClassificationRule:
    """A named predicate over error text and the verdict it assigns."""

    name: str
    predicate: ErrorPredicate
    verdict: Verdict


@dataclass(frozen=True, slots=True)
class Classification:
    """Verdict for one error text and the rule that produced it."""

    verdict: Verdict
    rule: str
    missing_module: str | None = None


def missing_module_name(error_text: str) -> str | None:
    """Return the module named by the last "module not found" message, if any."""

    found: tuple[int, str] | None = None
    for pattern in MODULE_NOT_FOUND_PATTERNS:
        for match in pattern.finditer(error_text):
            if found is None or match.start() >= found[0]:
                found = (match.start(), match.group("module"))
    return found[1] if found else None


def is_runtime_provided(module: str, allowlist: Sequence[str]) -> bool:
    """True when ``module`` is an allowlisted name or one of its submodules."""

    return any(module == name or module.startswith(f"{name}.") for name in allowlist)


def _runtime_config_predicate(signatures: Sequence[str]) -> ErrorPredicate:
    lowered = tuple(signature.lower() for signature in signatures if signature)

    def predicate(error_text: str) -> bool:
        text = error_text.lower()
        return any(signature in text for signature in lowered)

    return predicate


def _runtime_provided_predicate(allowlist: Sequence[str]) -> ErrorPredicate:
    names = tuple(allowlist)

    def predicate(error_text: str) -> bool:
        module = missing_module_name(error_text)
        return module is not None and is_runtime_provided(module, names)

    return predicate


def _module_not_found(error_text: str) -> bool:
    return missing_module_name(error_text) is not None


def _any_error(error_text: str) -> bool:
    return True


def build_classification_rules(
    runtime_config_signatures: Sequence[str],
    runtime_allowlist: Sequence[str],
) -> tuple[ErrorClassificationRule, ...]:
    """Return the rule list in priority order; the last rule matches everything."""

    return (
        ErrorClassificationRule(
            name=RUNTIME_CONFIG_RULE,
            predicate=_runtime_config_predicate(runtime_config_signatures),
            verdict="PASS",
        ),
        ErrorClassificationRule(
            name=RUNTIME_PROVIDED_RULE,
            predicate=_runtime_provided_predicate(runtime_allowlist),
            verdict="WARN",
        ),
        ErrorClassificationRule(name=MODULE_NOT_FOUND_RULE, predicate=_module_not_found, verdict="FAIL"),
        ErrorClassificationRule(name=UNEXPECTED_ERROR_RULE, predicate=_any_error, verdict="FAIL"),
    )


def classify_import_error(
    error_text: str,
    rules: Sequence[ErrorClassificationRule],
) -> Classification:
    """Apply ``rules`` in order; the first match wins.

    Text that no rule matches is an unexpected failure, never a pass.
    """

    module = missing_module_name(error_text)
    for rule in rules:
        if rule.predicate(error_text):
            return Classification(verdict=rule.verdict, rule=rule.name, missing_module=module)
    return Classification(verdict="FAIL", rule=UNEXPECTED_ERROR_RULE, missing_module=module)


def last_error_line(error_text: str) -> str:
    """Final non-empty line of a traceback, which names the raised exception."""

    for line in reversed(error_text.strip().splitlines()):
        if line.strip():
            return line.strip()
    return "<no error output>"
