"""End-to-end build pipeline scenarios with a simulated installer."""

from __future__ import annotations

import json
import zipfile
from pathlib import Path
from unittest.mock import patch

import polars as pl
import pytest

from lambda_pack.errors import (
    DependencyResolutionError,
    ImportResolutionFailure,
    InputError,
    InstallVerificationError,
    PackageNotFoundError,
    PackagingError,
)
from lambda_pack.pipeline import run_build_pipeline

INSTALLER_RUN_COMMAND = "lambda_pack.resolve.installer.run_command"


def _names(path):
    with zipfile.ZipFile(path) as archive:
        return archive.namelist()


def test_build_produces_validated_archive(tmp_path, settings, make_source_tree, fake_run_command):
    root = make_source_tree()
    output_dir = tmp_path / "out"

    with patch(INSTALLER_RUN_COMMAND, side_effect=fake_run_command):
        result = run_build_pipeline(settings, "pkg1", root, output_dir)

    assert result.state == "DONE"
    assert result.exit_code == 0
    assert result.error is None
    assert result.stages_completed == ("INIT", "RESOLVE", "ASSEMBLE", "BUILD", "VALIDATE")
    assert result.artifact.path == output_dir.resolve() / "pkg1.zip"
    names = _names(output_dir / "pkg1.zip")
    assert "pkg1.py" in names
    assert "depa/__init__.py" in names
    assert "lib/shared.py" in names
    assert not any("dist-info" in name or "__pycache__" in name for name in names)
    assert sorted(path.name for path in output_dir.iterdir()) == ["pkg1.zip"]
    assert result.report.overall == "PASS"


def test_build_writes_run_summary(tmp_path, settings, make_source_tree, fake_run_command):
    root = make_source_tree()

    with patch(INSTALLER_RUN_COMMAND, side_effect=fake_run_command):
        result = run_build_pipeline(settings, "pkg1", root, tmp_path / "out")

    summary = json.loads(result.summary_path.read_text(encoding="utf-8"))
    assert result.summary_path.parent == settings.paths.artifacts_root / "run_summaries"
    assert summary["state"] == "DONE"
    assert summary["exit_code"] == 0
    assert summary["artifact"]["published_handler"] == "pkg1.py"
    checks = pl.read_parquet(summary["outputs"]["checks_path"])
    assert checks.height == len(result.report.checks)
    entries = pl.read_parquet(summary["outputs"]["entries_path"])
    assert "pkg1.py" in entries["entry"].to_list()


def test_rebuild_yields_identical_entries(tmp_path, settings, make_source_tree, fake_run_command):
    root = make_source_tree()

    with patch(INSTALLER_RUN_COMMAND, side_effect=fake_run_command):
        first = run_build_pipeline(settings, "pkg1", root, tmp_path / "first", write_summary=False)
        second = run_build_pipeline(settings, "pkg1", root, tmp_path / "second", write_summary=False)

    assert first.summary_path is None
    assert _names(first.artifact.path) == _names(second.artifact.path)


def test_renamed_handler_is_published(tmp_path, settings, make_source_tree, fake_run_command):
    root = make_source_tree(package="log_parser", handler_name="log_parser.py")

    with patch(INSTALLER_RUN_COMMAND, side_effect=fake_run_command):
        result = run_build_pipeline(settings, "log_parser", root, tmp_path / "out")

    assert result.exit_code == 0
    names = _names(tmp_path / "out" / "log_parser.zip")
    assert "log-parser.py" in names
    assert "log_parser.py" not in names


def test_install_of_nothing_aborts_before_archive(tmp_path, settings, make_source_tree, silent_pip):
    root = make_source_tree()
    output_dir = tmp_path / "out"

    with patch(INSTALLER_RUN_COMMAND, side_effect=silent_pip):
        result = run_build_pipeline(settings, "pkg1", root, output_dir)

    assert result.state == "FAILED"
    assert result.exit_code == 1
    assert isinstance(result.error, InstallVerificationError)
    assert result.stages_completed == ("INIT",)
    assert result.artifact is None
    assert list(output_dir.iterdir()) == []
    assert result.summary["error"]["type"] == "InstallVerificationError"
    assert result.summary["error"]["stage"] == "resolve"


def test_missing_shared_lib_fails_assembly(tmp_path, settings, make_source_tree, fake_run_command):
    root = make_source_tree(shared_libs=())

    with patch(INSTALLER_RUN_COMMAND, side_effect=fake_run_command):
        result = run_build_pipeline(settings, "pkg1", root, tmp_path / "out")

    assert result.exit_code == 1
    assert isinstance(result.error, PackagingError)
    assert "shared.py" in result.error.message
    assert result.stages_completed == ("INIT", "RESOLVE")
    assert not (tmp_path / "out" / "pkg1.zip").exists()


def test_unbundled_import_fails_validation(tmp_path, settings, make_source_tree, fake_run_command):
    root = make_source_tree(handler_source="import definitely_not_bundled_dep\n")

    with patch(INSTALLER_RUN_COMMAND, side_effect=fake_run_command):
        result = run_build_pipeline(settings, "pkg1", root, tmp_path / "out")

    assert result.state == "FAILED"
    assert isinstance(result.error, ImportResolutionFailure)
    assert result.stages_completed == ("INIT", "RESOLVE", "ASSEMBLE", "BUILD")
    assert list((tmp_path / "out").iterdir()) == []
    assert result.report.overall == "FAIL"


def test_runtime_provided_import_only_warns(tmp_path, settings, make_source_tree, fake_run_command):
    root = make_source_tree(handler_source="import boto3\n")

    with patch(INSTALLER_RUN_COMMAND, side_effect=fake_run_command):
        result = run_build_pipeline(settings, "pkg1", root, tmp_path / "out")

    assert result.exit_code == 0
    assert result.report.overall == "WARN"
    assert (tmp_path / "out" / "pkg1.zip").is_file()


def test_missing_source_is_input_error_before_mutation(tmp_path, settings):
    result = run_build_pipeline(settings, "pkg1", tmp_path / "nowhere", tmp_path / "out")

    assert isinstance(result.error, InputError)
    assert result.stages_completed == ()
    assert not (settings.paths.workspace_root / "build_pkg1").exists()
    assert not (tmp_path / "out").exists()


@pytest.mark.parametrize("package", ["", "unknown"])
def test_unknown_package_is_rejected(tmp_path, settings, make_source_tree, package):
    root = make_source_tree()

    result = run_build_pipeline(settings, package, root, tmp_path / "out")

    assert isinstance(result.error, PackageNotFoundError)
    assert result.exit_code == 1


def test_relative_source_root_installs_from_absolute_manifest(
    tmp_path, settings, make_source_tree, fake_run_command, monkeypatch
):
    make_source_tree()
    monkeypatch.chdir(tmp_path)

    with patch(INSTALLER_RUN_COMMAND, side_effect=fake_run_command) as mocked:
        result = run_build_pipeline(settings, "pkg1", Path("upstream"), Path("out"))

    assert result.state == "DONE"
    pip_args = mocked.call_args_list[-1].args[0]
    manifest_arg = Path(pip_args[pip_args.index("-r") + 1])
    assert manifest_arg.is_absolute()
    assert manifest_arg == (tmp_path / "upstream" / "source" / "pkg1" / "requirements.txt").resolve()
    assert result.artifact.path == (tmp_path / "out" / "pkg1.zip").resolve()


def test_undecodable_manifest_is_a_resolve_error(tmp_path, settings, make_source_tree, fake_run_command):
    root = make_source_tree(requirements=None)
    (root / "source" / "pkg1" / "requirements.txt").write_bytes(b"dep\xff==1.0\n")

    with patch(INSTALLER_RUN_COMMAND, side_effect=fake_run_command) as mocked:
        result = run_build_pipeline(settings, "pkg1", root, tmp_path / "out")

    mocked.assert_not_called()
    assert result.state == "FAILED"
    assert result.exit_code == 1
    assert isinstance(result.error, DependencyResolutionError)
    assert result.error.message.startswith("Unreadable manifest:")
    assert result.summary_path is not None
    assert result.summary["error"]["stage"] == "resolve"


def test_optional_poetry_dependency_is_not_required_in_archive(
    tmp_path, settings, make_source_tree, fake_run_command
):
    root = make_source_tree(requirements=None)
    package_dir = root / "source" / "pkg1"
    (package_dir / "pyproject.toml").write_text(
        "[tool.poetry.dependencies]\n"
        'python = "^3.12"\n'
        'depA = "^1.0"\n'
        'extraDep = { version = "^2.0", optional = true }\n',
        encoding="utf-8",
    )
    (package_dir / "poetry.lock").write_text("", encoding="utf-8")

    with patch(INSTALLER_RUN_COMMAND, side_effect=fake_run_command):
        result = run_build_pipeline(settings, "pkg1", root, tmp_path / "out")

    assert result.exit_code == 0
    assert result.report.overall == "PASS"
