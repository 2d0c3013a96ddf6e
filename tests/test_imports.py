"""Import checks run in a clean interpreter against extracted modules."""

from __future__ import annotations

import pytest

from lambda_pack.build.archive import write_archive
from lambda_pack.config import ValidationConfig
from lambda_pack.validate.imports import check_module_import, run_import_checks
from lambda_pack.validate.rules import (
    MODULE_NOT_FOUND_RULE,
    RUNTIME_CONFIG_RULE,
    RUNTIME_PROVIDED_RULE,
    UNEXPECTED_ERROR_RULE,
    build_classification_rules,
)


@pytest.fixture
def config():
    return ValidationConfig(import_timeout_sec=30.0)


@pytest.fixture
def rules(config):
    return build_classification_rules(config.runtime_config_signatures, config.runtime_allowlist)


def _module(tmp_path, source):
    (tmp_path / "handler.py").write_text(source, encoding="utf-8")
    return tmp_path


@pytest.mark.parametrize(
    ("source", "verdict", "rule"),
    [
        ("def lambda_handler(e, c):\n    return 1\n", "PASS", None),
        ("import definitely_not_bundled_dep\n", "FAIL", MODULE_NOT_FOUND_RULE),
        ("import boto3\n", "WARN", RUNTIME_PROVIDED_RULE),
        ("raise RuntimeError('You must specify a region.')\n", "PASS", RUNTIME_CONFIG_RULE),
        ("raise ValueError('boom')\n", "FAIL", UNEXPECTED_ERROR_RULE),
    ],
)
def test_check_module_import(tmp_path, config, rules, source, verdict, rule):
    extract_dir = _module(tmp_path, source)

    result = check_module_import("import_handler", "handler", extract_dir, rules, config)

    assert result.verdict == verdict
    assert result.group == "import"
    if rule is not None:
        assert f"[{rule}]" in result.message


def test_site_packages_are_not_visible(tmp_path, config, rules):
    # pytest is installed in the test interpreter but must not leak into the probe.
    extract_dir = _module(tmp_path, "import pytest\n")

    result = check_module_import("import_handler", "handler", extract_dir, rules, config)

    assert result.verdict == "FAIL"
    assert "No module named 'pytest'" in result.message


def test_run_import_checks_covers_handler_libs_and_key_dependencies(tmp_path, pkg1_descriptor):
    workspace = tmp_path / "ws"
    (workspace / "lib").mkdir(parents=True)
    (workspace / "pkg1.py").write_text("from lib import shared\n", encoding="utf-8")
    (workspace / "lib" / "shared.py").write_text("SHARED = True\n", encoding="utf-8")
    archive_path = write_archive(workspace, tmp_path / "pkg1.zip")
    config = ValidationConfig(key_dependencies=["boto3"], import_timeout_sec=30.0)

    results = run_import_checks(archive_path, pkg1_descriptor, config, tmp_path / "scratch")

    assert [(result.check_id, result.verdict) for result in results] == [
        ("import_handler", "PASS"),
        ("import_shared_lib:shared.py", "PASS"),
        ("import_key_dependency:boto3", "FAIL"),
    ]
    assert not list((tmp_path / "scratch").rglob("__pycache__"))
