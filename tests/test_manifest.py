"""Tests for dependency manifest parsing."""

from __future__ import annotations

import pytest

from lambda_pack.errors import DependencyResolutionError
from lambda_pack.resolve.manifest import (
    detect_manifest,
    load_dependency_set,
    normalize_import_name,
    parse_requirement_lines,
)


def test_normalize_import_name():
    assert normalize_import_name("depA") == "depa"
    assert normalize_import_name("aws-lambda-powertools") == "aws_lambda_powertools"
    assert normalize_import_name("PyYAML", {"pyyaml": "yaml"}) == "yaml"


def test_parse_requirement_lines_skips_options_comments_and_hashes():
    text = """
# exported
--index-url https://example.invalid/simple
-r base.txt
requests==2.31.0 ; python_version >= "3.8" \\
    --hash=sha256:abc
backoff>=2.2  # retries

"""
    requirements = parse_requirement_lines(text)

    assert [req.name for req in requirements] == ["requests", "backoff"]
    assert str(requirements[0].specifier) == "==2.31.0"
    assert requirements[0].marker is not None


def test_invalid_requirement_raises_resolution_error():
    with pytest.raises(DependencyResolutionError) as excinfo:
        parse_requirement_lines("not a valid ==== line\n")

    assert "Invalid requirement" in excinfo.value.message


def test_poetry_manifest_splits_runtime_and_dev(tmp_path):
    (tmp_path / "pyproject.toml").write_text(
        """
[tool.poetry.dependencies]
python = "^3.12"
backoff = "^2.2.1"
aws-lambda-powertools = {version = "^3.0", extras = ["tracer"]}

[tool.poetry.group.dev.dependencies]
pytest = "^8.0"
moto = "^5.0"
""",
        encoding="utf-8",
    )

    dependency_set = load_dependency_set(tmp_path)

    assert dependency_set.kind == "pyproject"
    assert dependency_set.runtime_import_names == ("backoff", "aws_lambda_powertools")
    assert dependency_set.development_import_names == ("pytest", "moto")
    assert dependency_set.runtime[1].source_constraint == "^3.0"


def test_pep621_manifest(tmp_path):
    (tmp_path / "pyproject.toml").write_text(
        """
[project]
name = "handler"
version = "1.0"
dependencies = ["PyYAML>=6", "python-dateutil"]

[project.optional-dependencies]
test = ["pytest"]
""",
        encoding="utf-8",
    )

    dependency_set = load_dependency_set(tmp_path, overrides={"pyyaml": "yaml", "python-dateutil": "dateutil"})

    assert dependency_set.runtime_import_names == ("yaml", "dateutil")
    assert dependency_set.development_import_names == ("pytest",)


def test_flat_list_wins_over_pyproject(tmp_path):
    (tmp_path / "pyproject.toml").write_text("[project]\nname = 'x'\n", encoding="utf-8")
    (tmp_path / "requirements.txt").write_text("depA==1.0\n", encoding="utf-8")

    kind, path = detect_manifest(tmp_path)

    assert kind == "requirements"
    assert path.name == "requirements.txt"
    assert load_dependency_set(tmp_path).runtime_import_names == ("depa",)


def test_missing_manifest_is_resolution_error(tmp_path):
    with pytest.raises(DependencyResolutionError) as excinfo:
        load_dependency_set(tmp_path)

    assert "No dependency manifest" in excinfo.value.message


def test_optional_poetry_dependency_is_not_runtime(tmp_path):
    (tmp_path / "pyproject.toml").write_text(
        "[tool.poetry.dependencies]\n"
        'python = "^3.12"\n'
        'depA = "^1.0"\n'
        'extraDep = { version = "^2.0", optional = true }\n',
        encoding="utf-8",
    )

    assert load_dependency_set(tmp_path).runtime_import_names == ("depa",)


def test_undecodable_requirements_is_resolution_error(tmp_path):
    (tmp_path / "requirements.txt").write_bytes(b"dep\xff==1.0\n")

    with pytest.raises(DependencyResolutionError) as excinfo:
        load_dependency_set(tmp_path)

    assert excinfo.value.message.startswith("Unreadable manifest:")
    assert excinfo.value.detail
