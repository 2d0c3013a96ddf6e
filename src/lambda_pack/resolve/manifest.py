"""Read upstream dependency manifests into an ordered dependency set."""

from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal, Mapping

from packaging.requirements import InvalidRequirement, Requirement

from lambda_pack.errors import DependencyResolutionError

LOGGER = logging.getLogger(__name__)

ManifestKind = Literal["requirements", "pyproject"]

REQUIREMENTS_FILE = "requirements.txt"
PYPROJECT_FILE = "pyproject.toml"
POETRY_LOCK_FILE = "poetry.lock"


@dataclass(frozen=True, slots=True)
class DependencySpec:
    """One declared dependency and the module name expected inside the archive."""

    declared_name: str
    import_name: str
    source_constraint: str


@dataclass(frozen=True, slots=True)
class DependencySet:
    """Ordered runtime and development dependencies of one manifest."""

    kind: ManifestKind
    manifest_path: Path
    runtime: tuple[DependencySpec, ...]
    development: tuple[DependencySpec, ...] = ()

    @property
    def runtime_import_names(self) -> tuple[str, ...]:
        return tuple(spec.import_name for spec in self.runtime)

    @property
    def development_import_names(self) -> tuple[str, ...]:
        return tuple(spec.import_name for spec in self.development)


def normalize_import_name(declared_name: str, overrides: Mapping[str, str] | None = None) -> str:
    """Case-fold and map hyphens to underscores; configured overrides take precedence."""

    folded = declared_name.strip().lower()
    if overrides:
        lowered = {key.lower(): value for key, value in overrides.items()}
        if folded in lowered:
            return lowered[folded]
    return folded.replace("-", "_")


def _logical_lines(text: str) -> list[str]:
    """Join backslash continuations and drop comments and blank lines."""

    lines: list[str] = []
    pending = ""
    for raw_line in text.splitlines():
        line = raw_line.rstrip()
        if line.endswith("\\"):
            pending += line[:-1] + " "
            continue
        line = pending + line
        pending = ""
        if " #" in line:
            line = line.split(" #", 1)[0]
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        lines.append(line)
    if pending.strip():
        lines.append(pending.strip())
    return lines


def parse_requirement_lines(text: str, *, source: str = REQUIREMENTS_FILE) -> list[Requirement]:
    """Parse a flat pinned list, skipping pip option lines and per-line hash options."""

    requirements: list[Requirement] = []
    for line in _logical_lines(text):
        if line.startswith("-"):
            continue
        spec_text = line.split(" --", 1)[0].strip()
        try:
            requirements.append(Requirement(spec_text))
        except InvalidRequirement as exc:
            raise DependencyResolutionError(
                f"Invalid requirement in {source}: {spec_text}",
                detail=str(exc),
            ) from exc
    return requirements


def _requirement_constraint(requirement: Requirement) -> str:
    constraint = str(requirement.specifier)
    if requirement.marker is not None:
        constraint = f"{constraint}; {requirement.marker}".strip()
    return constraint


def _spec_from_requirement(requirement: Requirement, overrides: Mapping[str, str] | None) -> DependencySpec:
    return DependencySpec(
        declared_name=requirement.name,
        import_name=normalize_import_name(requirement.name, overrides),
        source_constraint=_requirement_constraint(requirement),
    )


def _poetry_constraint(value: Any) -> str:
    """Render a poetry dependency value (string or table) as one constraint string."""

    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        parts = [str(value.get("version", "*"))]
        if "python" in value:
            parts.append(f"python={value['python']}")
        if "markers" in value:
            parts.append(f"markers={value['markers']}")
        return "; ".join(parts)
    if isinstance(value, list):
        return " | ".join(_poetry_constraint(item) for item in value)
    return str(value)


def _poetry_specs(table: Mapping[str, Any], overrides: Mapping[str, str] | None) -> list[DependencySpec]:
    specs: list[DependencySpec] = []
    for name, value in table.items():
        if name.lower() == "python":
            continue
        if isinstance(value, dict) and value.get("optional"):
            continue
        specs.append(
            DependencySpec(
                declared_name=name,
                import_name=normalize_import_name(name, overrides),
                source_constraint=_poetry_constraint(value),
            )
        )
    return specs


def _pep621_specs(entries: list[str], overrides: Mapping[str, str] | None, source: str) -> list[DependencySpec]:
    specs: list[DependencySpec] = []
    for entry in entries:
        try:
            specs.append(_spec_from_requirement(Requirement(entry), overrides))
        except InvalidRequirement as exc:
            raise DependencyResolutionError(f"Invalid requirement in {source}: {entry}", detail=str(exc)) from exc
    return specs


def _dedupe(specs: list[DependencySpec]) -> tuple[DependencySpec, ...]:
    seen: set[str] = set()
    ordered: list[DependencySpec] = []
    for spec in specs:
        key = spec.declared_name.lower()
        if key in seen:
            continue
        seen.add(key)
        ordered.append(spec)
    return tuple(ordered)


def read_manifest_text(path: Path) -> str:
    """Read a manifest or exported list as UTF-8 text."""

    try:
        return path.read_text(encoding="utf-8")
    except (UnicodeDecodeError, OSError) as exc:
        raise DependencyResolutionError(f"Unreadable manifest: {path}", detail=str(exc)) from exc


def read_requirements_manifest(path: Path, overrides: Mapping[str, str] | None = None) -> DependencySet:
    """Build a dependency set from a flat pinned list."""

    requirements = parse_requirement_lines(read_manifest_text(path), source=str(path))
    return DependencySet(
        kind="requirements",
        manifest_path=path,
        runtime=_dedupe([_spec_from_requirement(req, overrides) for req in requirements]),
    )


def read_pyproject_manifest(path: Path, overrides: Mapping[str, str] | None = None) -> DependencySet:
    """Build a dependency set from a poetry or PEP 621 ``pyproject.toml``."""

    try:
        with path.open("rb") as handle:
            document = tomllib.load(handle)
    except (tomllib.TOMLDecodeError, OSError) as exc:
        raise DependencyResolutionError(f"Unreadable manifest: {path}", detail=str(exc)) from exc

    runtime: list[DependencySpec] = []
    development: list[DependencySpec] = []

    poetry = document.get("tool", {}).get("poetry", {})
    runtime.extend(_poetry_specs(poetry.get("dependencies", {}), overrides))
    development.extend(_poetry_specs(poetry.get("dev-dependencies", {}), overrides))
    for group in poetry.get("group", {}).values():
        development.extend(_poetry_specs(group.get("dependencies", {}), overrides))

    project = document.get("project", {})
    runtime.extend(_pep621_specs(project.get("dependencies", []), overrides, str(path)))
    for extra_entries in project.get("optional-dependencies", {}).values():
        development.extend(_pep621_specs(extra_entries, overrides, str(path)))

    return DependencySet(
        kind="pyproject",
        manifest_path=path,
        runtime=_dedupe(runtime),
        development=_dedupe(development),
    )


def detect_manifest(source_dir: Path) -> tuple[ManifestKind, Path] | None:
    """Return the manifest that drives resolution; a flat pinned list wins."""

    requirements_path = source_dir / REQUIREMENTS_FILE
    if requirements_path.is_file():
        return "requirements", requirements_path
    pyproject_path = source_dir / PYPROJECT_FILE
    if pyproject_path.is_file():
        return "pyproject", pyproject_path
    return None


def load_dependency_set(
    source_dir: Path,
    overrides: Mapping[str, str] | None = None,
    logger: logging.Logger | None = None,
) -> DependencySet:
    """Read whichever manifest ``source_dir`` carries."""

    effective_logger = logger or LOGGER
    detected = detect_manifest(source_dir)
    if detected is None:
        raise DependencyResolutionError(
            f"No dependency manifest in {source_dir}: expected {REQUIREMENTS_FILE} or {PYPROJECT_FILE}"
        )
    kind, path = detected
    if kind == "requirements":
        dependency_set = read_requirements_manifest(path, overrides)
    else:
        dependency_set = read_pyproject_manifest(path, overrides)
    effective_logger.info(
        "resolve.manifest_loaded kind=%s path=%s runtime=%s development=%s",
        dependency_set.kind,
        path,
        len(dependency_set.runtime),
        len(dependency_set.development),
    )
    return dependency_set
