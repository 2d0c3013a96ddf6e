"""Tests for workspace assembly and handler renaming."""

from __future__ import annotations

import pytest

from lambda_pack.assemble.copier import apply_handler_rename, assemble_package
from lambda_pack.errors import PackagingError
from lambda_pack.registry.descriptors import PackageDescriptor


def test_assemble_places_handler_and_shared_libs(tmp_path, make_source_tree, pkg1_descriptor):
    root = make_source_tree()
    workspace = tmp_path / "ws"
    workspace.mkdir()

    result = assemble_package(pkg1_descriptor, root / "source" / "pkg1", root / "source" / "lib", workspace)

    assert (workspace / "pkg1.py").is_file()
    assert (workspace / "lib" / "shared.py").is_file()
    assert not (workspace / "requirements.txt").exists()
    assert result.handler_files == ("pkg1.py",)
    assert result.renamed_from is None


def test_rename_leaves_only_published_handler(tmp_path, make_source_tree, renamed_descriptor):
    root = make_source_tree(package="log_parser", handler_name="log_parser.py")
    workspace = tmp_path / "ws"
    workspace.mkdir()

    result = assemble_package(renamed_descriptor, root / "source" / "log_parser", root / "source" / "lib", workspace)

    assert (workspace / "log-parser.py").is_file()
    assert not (workspace / "log_parser.py").exists()
    assert result.renamed_from == "log_parser.py"
    assert result.published_handler_path == workspace / "log-parser.py"


def test_missing_shared_lib_is_packaging_error(tmp_path, make_source_tree):
    descriptor = PackageDescriptor(
        name="pkg1",
        published_handler="pkg1.py",
        source_handler="pkg1.py",
        required_shared_libs=("libX.py",),
    )
    root = make_source_tree(shared_libs=("other.py",))
    workspace = tmp_path / "ws"
    workspace.mkdir()

    with pytest.raises(PackagingError) as excinfo:
        assemble_package(descriptor, root / "source" / "pkg1", root / "source" / "lib", workspace)

    assert "libX.py" in excinfo.value.message
    assert excinfo.value.stage == "assemble"


def test_missing_rename_source_is_packaging_error(tmp_path, renamed_descriptor):
    (tmp_path / "other.py").write_text("", encoding="utf-8")

    with pytest.raises(PackagingError) as excinfo:
        apply_handler_rename(tmp_path, renamed_descriptor)

    assert "log_parser.py -> log-parser.py" in excinfo.value.message


def test_source_without_handlers_is_packaging_error(tmp_path, pkg1_descriptor):
    source = tmp_path / "source"
    lib = tmp_path / "lib"
    workspace = tmp_path / "ws"
    for directory in (source, lib, workspace):
        directory.mkdir()

    with pytest.raises(PackagingError):
        assemble_package(pkg1_descriptor, source, lib, workspace)
