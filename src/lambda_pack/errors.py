"""Fatal error taxonomy for the build pipeline."""

from __future__ import annotations

from typing import Sequence


class LambdaPackError(Exception):
    """Base class for every fatal pipeline error.

    ``stage`` names the pipeline stage (or check) that failed and ``detail``
    carries the specific missing artifact or tool diagnostic.
    """

    stage: str = "pipeline"

    def __init__(self, message: str, *, detail: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail

    def render(self) -> str:
        """Return the stage-qualified message followed by any verbatim detail."""

        text = f"[{self.stage}] {self.message}"
        if self.detail:
            text = f"{text}\n{self.detail.rstrip()}"
        return text


class InputError(LambdaPackError):
    """Invalid invocation: unknown package or missing source directories."""

    stage = "input"


class PackageNotFoundError(InputError):
    """Package name has no registry descriptor."""

    def __init__(self, name: str, known: Sequence[str]) -> None:
        known_rendered = ", ".join(sorted(known)) or "<none>"
        super().__init__(f"Unknown package name: {name} (valid packages: {known_rendered})")
        self.name = name
        self.known = tuple(sorted(known))


class DependencyResolutionError(LambdaPackError):
    """Lock, export or install tool failed; ``detail`` is the tool output as emitted."""

    stage = "resolve"


class InstallVerificationError(LambdaPackError):
    """Installer reported success but no package metadata landed in the workspace."""

    stage = "resolve"

    def __init__(
        self,
        message: str,
        *,
        exported_requirements: Sequence[str],
        marker_context: Sequence[str],
        detail: str | None = None,
    ) -> None:
        super().__init__(message, detail=detail)
        self.exported_requirements = tuple(exported_requirements)
        self.marker_context = tuple(marker_context)

    def render(self) -> str:
        lines = [f"[{self.stage}] {self.message}"]
        if self.marker_context:
            lines.append("Evaluated requirement markers:")
            lines.extend(f"  {line}" for line in self.marker_context)
        if self.detail:
            lines.append(self.detail.rstrip())
        return "\n".join(lines)


class PackagingError(LambdaPackError):
    """Handler or required shared library missing while assembling the workspace."""

    stage = "assemble"


class StructuralValidationFailure(LambdaPackError):
    """One or more size/layout/content checks failed."""

    stage = "validate"

    def __init__(self, failed_checks: Sequence[str], *, detail: str | None = None) -> None:
        super().__init__(f"Validation failed: {', '.join(failed_checks)}", detail=detail)
        self.failed_checks = tuple(failed_checks)


class ImportResolutionFailure(LambdaPackError):
    """An import check was classified FAIL."""

    stage = "validate"

    def __init__(self, module: str, error_text: str) -> None:
        super().__init__(f"Import of {module} failed", detail=error_text)
        self.module = module
        self.error_text = error_text
