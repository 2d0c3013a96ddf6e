"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import os
from collections.abc import Callable, Sequence
from pathlib import Path

import pytest

from lambda_pack.config import (
    AppSettings,
    PackageConfig,
    PathsConfig,
    ValidationConfig,
)
from lambda_pack.registry.descriptors import PackageDescriptor
from lambda_pack.resolve.manifest import parse_requirement_lines
from lambda_pack.utils.process import CommandResult

HANDLER_SOURCE = '''import depa


def lambda_handler(event, context):
    return {"value": depa.VALUE}
'''

SHARED_LIB_SOURCE = "SHARED = True\n"


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path_factory: pytest.TempPathFactory, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the repo settings YAML and stray env overrides out of tests."""

    for key in list(os.environ):
        if key.startswith("LAMBDA_PACK_"):
            monkeypatch.delenv(key, raising=False)
    absent = tmp_path_factory.mktemp("settings") / "absent.yaml"
    monkeypatch.setenv("LAMBDA_PACK_SETTINGS_FILE", str(absent))


@pytest.fixture
def pkg1_descriptor() -> PackageDescriptor:
    return PackageDescriptor(
        name="pkg1",
        published_handler="pkg1.py",
        source_handler="pkg1.py",
        required_shared_libs=("shared.py",),
    )


@pytest.fixture
def renamed_descriptor() -> PackageDescriptor:
    return PackageDescriptor(
        name="log_parser",
        published_handler="log-parser.py",
        source_handler="log_parser.py",
        required_shared_libs=("shared.py",),
    )


@pytest.fixture
def settings(tmp_path: Path) -> AppSettings:
    return AppSettings(
        paths=PathsConfig(
            workspace_root=tmp_path / "work",
            output_root=tmp_path / "out",
            artifacts_root=tmp_path / "artifacts",
            logs_root=tmp_path / "logs",
        ),
        packages={
            "pkg1": PackageConfig(
                published_handler="pkg1.py",
                source_handler="pkg1.py",
                required_shared_libs=["shared.py"],
            ),
            "log_parser": PackageConfig(
                published_handler="log-parser.py",
                source_handler="log_parser.py",
                required_shared_libs=["shared.py"],
            ),
        },
        validation=ValidationConfig(min_size_mb=0.0),
    )


@pytest.fixture
def make_source_tree(tmp_path: Path) -> Callable[..., Path]:
    """Factory for an upstream tree holding ``source/<package>/`` and ``source/lib/``."""

    def _make(
        package: str = "pkg1",
        handler_name: str = "pkg1.py",
        handler_source: str = HANDLER_SOURCE,
        requirements: str | None = "depA==1.0\n",
        shared_libs: Sequence[str] = ("shared.py",),
        root_name: str = "upstream",
    ) -> Path:
        root = tmp_path / root_name
        package_dir = root / "source" / package
        lib_dir = root / "source" / "lib"
        package_dir.mkdir(parents=True, exist_ok=True)
        lib_dir.mkdir(parents=True, exist_ok=True)
        (package_dir / handler_name).write_text(handler_source, encoding="utf-8")
        if requirements is not None:
            (package_dir / "requirements.txt").write_text(requirements, encoding="utf-8")
        for lib_name in shared_libs:
            (lib_dir / lib_name).write_text(SHARED_LIB_SOURCE, encoding="utf-8")
        return root

    return _make


def _option_value(args: Sequence[str], option: str) -> str:
    return args[list(args).index(option) + 1]


def fake_pip_install(args: Sequence[str], install: bool = True) -> CommandResult:
    """Emulate ``pip install -r FILE --target DIR`` by writing one package per requirement."""

    if install:
        target = Path(_option_value(args, "--target"))
        requirements_path = Path(_option_value(args, "-r"))
        for requirement in parse_requirement_lines(requirements_path.read_text(encoding="utf-8")):
            module = requirement.name.lower().replace("-", "_")
            (target / module).mkdir(parents=True, exist_ok=True)
            (target / module / "__init__.py").write_text("VALUE = 42\n", encoding="utf-8")
            (target / module / "__pycache__").mkdir(exist_ok=True)
            (target / module / "__pycache__" / "__init__.cpython-312.pyc").write_bytes(b"\x00")
            dist_info = target / f"{module}-1.0.dist-info"
            dist_info.mkdir(exist_ok=True)
            (dist_info / "METADATA").write_text(f"Name: {requirement.name}\n", encoding="utf-8")
    return CommandResult(args=tuple(args), returncode=0, stdout="", stderr="")


@pytest.fixture
def fake_run_command() -> Callable[..., CommandResult]:
    """``run_command`` stand-in for poetry and pip that installs real files."""

    def _run(args: Sequence[str], **kwargs: object) -> CommandResult:
        if "pip" in args:
            return fake_pip_install(args)
        if "export" in args:
            output = Path(_option_value(args, "-o"))
            output.write_text("depA==1.0\n", encoding="utf-8")
        return CommandResult(args=tuple(args), returncode=0, stdout="", stderr="")

    return _run


@pytest.fixture
def silent_pip() -> Callable[..., CommandResult]:
    """pip stand-in that exits 0 without installing anything."""

    def _run(args: Sequence[str], **kwargs: object) -> CommandResult:
        return fake_pip_install(args, install=False)

    return _run
