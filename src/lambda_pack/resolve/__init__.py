"""Dependency manifest reading and installation."""

from lambda_pack.resolve.installer import (
    ResolveResult,
    count_installed_packages,
    export_requirements,
    generate_lock,
    install_requirements,
    installable_dependency_set,
    marker_context,
    resolve_dependencies,
    verify_install,
)
from lambda_pack.resolve.manifest import (
    DependencySet,
    DependencySpec,
    ManifestKind,
    detect_manifest,
    load_dependency_set,
    normalize_import_name,
    parse_requirement_lines,
    read_manifest_text,
)

__all__ = [
    "ResolveResult",
    "count_installed_packages",
    "export_requirements",
    "generate_lock",
    "install_requirements",
    "installable_dependency_set",
    "marker_context",
    "resolve_dependencies",
    "verify_install",
    "DependencySet",
    "DependencySpec",
    "ManifestKind",
    "detect_manifest",
    "load_dependency_set",
    "normalize_import_name",
    "parse_requirement_lines",
    "read_manifest_text",
]
