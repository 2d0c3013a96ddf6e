"""Configuration models and loading logic."""

from __future__ import annotations

import os
from pathlib import Path
from typing import ClassVar, Literal

from pydantic import BaseModel, Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

DEFAULT_SETTINGS_FILE = Path("configs/settings.yaml")
SETTINGS_FILE_ENV = "LAMBDA_PACK_SETTINGS_FILE"

UPSTREAM_SHARED_LIBS: tuple[str, ...] = ("waflibv2.py", "solution_metrics.py")


class ProjectConfig(BaseModel):
    """Project metadata settings."""

    name: str = "lambda_pack"
    env: str = "dev"


class PathsConfig(BaseModel):
    """Filesystem roots used by the build pipeline."""

    workspace_root: Path = Path("/tmp")
    output_root: Path = Path("./lambda")
    artifacts_root: Path = Path("./artifacts")
    logs_root: Path = Path("./logs")

    def resolved(self, project_root: Path) -> "PathsConfig":
        """Return a copy with project-relative paths resolved to absolute paths."""

        updates: dict[str, Path] = {}
        for field_name in type(self).model_fields:
            value = getattr(self, field_name)
            updates[field_name] = value if value.is_absolute() else (project_root / value).resolve()
        return self.model_copy(update=updates)


class PackageConfig(BaseModel):
    """Naming contract for one deployable package."""

    published_handler: str
    source_handler: str
    required_shared_libs: list[str] = Field(default_factory=lambda: list(UPSTREAM_SHARED_LIBS))


def _default_packages() -> dict[str, PackageConfig]:
    return {
        "log_parser": PackageConfig(
            published_handler="log-parser.py",
            source_handler="log_parser.py",
        ),
        "reputation_lists_parser": PackageConfig(
            published_handler="reputation-lists.py",
            source_handler="reputation_lists.py",
        ),
    }


class ResolverConfig(BaseModel):
    """Dependency export and install settings."""

    python_executable: str | None = None
    poetry_executable: str = "poetry"
    pip_extra_args: list[str] = Field(default_factory=list)
    export_file_name: str = "requirements.txt"
    lock_if_missing: bool = True
    without_hashes: bool = True
    target_python_version: str = "3.12"
    import_name_overrides: dict[str, str] = Field(
        default_factory=lambda: {
            "pyyaml": "yaml",
            "python-dateutil": "dateutil",
            "beautifulsoup4": "bs4",
            "pillow": "PIL",
            "scikit-learn": "sklearn",
        }
    )


class BuildConfig(BaseModel):
    """Workspace cleanup and archive settings."""

    noise_dir_names: list[str] = Field(default_factory=lambda: ["__pycache__", "tests", "test"])
    noise_dir_suffixes: list[str] = Field(default_factory=lambda: [".dist-info", ".egg-info"])
    noise_file_suffixes: list[str] = Field(default_factory=lambda: [".pyc", ".pyo"])
    compression_level: int = Field(default=9, ge=0, le=9)


class ValidationConfig(BaseModel):
    """Thresholds and allowlists for the archive validation battery."""

    max_size_mb: float = Field(default=50.0, gt=0.0)
    min_size_mb: float = Field(default=1.0, ge=0.0)
    runtime_allowlist: list[str] = Field(
        default_factory=lambda: ["boto3", "botocore", "s3transfer", "aws_lambda_powertools", "awslambdaric"]
    )
    runtime_config_signatures: list[str] = Field(
        default_factory=lambda: [
            "NoRegionError",
            "You must specify a region",
            "NoCredentialsError",
            "Unable to locate credentials",
            "EndpointConnectionError",
            "Could not connect to the endpoint URL",
        ]
    )
    dev_dependency_names: list[str] = Field(
        default_factory=lambda: [
            "pytest",
            "_pytest",
            "moto",
            "coverage",
            "mypy",
            "black",
            "flake8",
            "pylint",
            "isort",
        ]
    )
    key_dependencies: list[str] = Field(default_factory=list)
    import_python_executable: str | None = None
    import_timeout_sec: float = Field(default=60.0, gt=0.0)

    @property
    def max_size_bytes(self) -> int:
        return int(self.max_size_mb * 1024 * 1024)

    @property
    def min_size_bytes(self) -> int:
        return int(self.min_size_mb * 1024 * 1024)


class DocAssertion(BaseModel):
    """Content every listed pattern must match in one documentation file."""

    file: str
    patterns: list[str]
    description: str
    verdict_on_miss: Literal["FAIL", "WARN"] = "FAIL"


class ConsistencyConfig(BaseModel):
    """Expected values for the cross-file consistency audit."""

    expected_python: str = "3.12"
    expected_upstream: str = "v4.1.2"
    archive_dir: str = "lambda"
    terraform_files: dict[str, str] = Field(
        default_factory=lambda: {
            "log_parser": "lambda.log-parser.tf",
            "reputation_lists_parser": "lambda.reputation-list.tf",
        }
    )
    required_files: list[str] = Field(
        default_factory=lambda: [
            "lambda/log_parser.zip",
            "lambda/reputation_lists_parser.zip",
            "data.powertools-layer.tf",
            "lambda.log-parser.tf",
            "lambda.reputation-list.tf",
            "scripts/Dockerfile.lambda-builder",
            "Makefile",
            ".github/workflows/test.yml",
            ".github/workflows/build-lambda-packages.yml",
            "docs/TESTING.md",
            "docs/DECISIONS.md",
            "docs/RETROSPECTIVE.md",
            "docs/CHANGELOG.md",
            "docs/ARCHITECTURE.md",
            "docs/QUICKSTART.md",
        ]
    )
    version_locations: list[str] = Field(
        default_factory=lambda: [
            ".github/workflows/test.yml",
            ".github/workflows/build-lambda-packages.yml",
            "Makefile",
        ]
    )
    workflow_files: list[str] = Field(
        default_factory=lambda: [
            ".github/workflows/test.yml",
            ".github/workflows/build-lambda-packages.yml",
        ]
    )
    dockerfile: str = "scripts/Dockerfile.lambda-builder"
    powertools_data_file: str = "data.powertools-layer.tf"
    doc_files: list[str] = Field(default_factory=lambda: ["docs/CHANGELOG.md", "docs/QUICKSTART.md"])
    doc_assertions: list[DocAssertion] = Field(
        default_factory=lambda: [
            DocAssertion(
                file="docs/DECISIONS.md",
                patterns=[r"/aws/service/powertools"],
                description="documents the powertools SSM parameter path",
            ),
            DocAssertion(
                file="docs/RETROSPECTIVE.md",
                patterns=["Version Dependencies"],
                description="has a Version Dependencies section",
            ),
            DocAssertion(
                file="docs/TESTING.md",
                patterns=[r"25/25", r"24/24"],
                description="reports current import test counts",
                verdict_on_miss="WARN",
            ),
        ]
    )
    untracked_dirs: list[str] = Field(default_factory=lambda: ["upstream/"])


class AppSettings(BaseSettings):
    """Top-level application settings."""

    _yaml_file_override: ClassVar[Path | None] = None

    project: ProjectConfig = Field(default_factory=ProjectConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    packages: dict[str, PackageConfig] = Field(default_factory=_default_packages)
    resolver: ResolverConfig = Field(default_factory=ResolverConfig)
    build: BuildConfig = Field(default_factory=BuildConfig)
    validation: ValidationConfig = Field(default_factory=ValidationConfig)
    consistency: ConsistencyConfig = Field(default_factory=ConsistencyConfig)

    model_config = SettingsConfigDict(
        env_prefix="LAMBDA_PACK_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Use YAML defaults while allowing env vars to override values."""

        yaml_file = resolve_settings_file(cls._yaml_file_override)
        yaml_settings = YamlConfigSettingsSource(settings_cls, yaml_file=yaml_file)
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            yaml_settings,
            file_secret_settings,
        )

    def as_dict(self) -> dict[str, object]:
        """Return settings as a standard nested dictionary."""

        return self.model_dump(mode="json")


def find_project_root(start: Path | None = None) -> Path:
    """Locate the project root by traversing upward for config markers."""

    current = (start or Path.cwd()).resolve()
    for candidate in (current, *current.parents):
        if (candidate / "configs/settings.yaml").exists():
            return candidate
    return current


def resolve_settings_file(override: Path | None = None) -> Path:
    """Resolve settings file from explicit override, env var, or default."""

    chosen = override
    if chosen is None:
        env_value = os.getenv(SETTINGS_FILE_ENV)
        if env_value:
            chosen = Path(env_value)
    if chosen is None:
        chosen = DEFAULT_SETTINGS_FILE

    if not chosen.is_absolute():
        chosen = (find_project_root() / chosen).resolve()
    return chosen


def load_settings(config_file: Path | None = None) -> AppSettings:
    """Load settings with YAML defaults and environment variable overrides."""

    settings_file = resolve_settings_file(config_file)
    project_root = settings_file.parent.parent.resolve()
    AppSettings._yaml_file_override = settings_file
    try:
        settings = AppSettings()
    finally:
        AppSettings._yaml_file_override = None
    resolved_paths = settings.paths.resolved(project_root=project_root)
    return settings.model_copy(update={"paths": resolved_paths})
