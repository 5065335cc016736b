from __future__ import annotations

import json

import pytest

from mkptool.publish import PackageDescriptor
from mkptool.workspace import WorkspaceError, discover_workspace


def _write_manifest(directory, **fields) -> None:
    directory.mkdir(parents=True, exist_ok=True)
    (directory / "package.json").write_text(json.dumps(fields), encoding="utf-8")


def test_pnpm_workspace_discovery(tmp_path):
    _write_manifest(tmp_path, name="root", private=True)
    (tmp_path / "pnpm-workspace.yaml").write_text(
        "packages:\n  - 'packages/*'\n  - 'tools/*'\n  - '!tools/scratch'\n",
        encoding="utf-8",
    )
    _write_manifest(tmp_path / "packages" / "b", name="@acme/b", version="1.0.0")
    _write_manifest(tmp_path / "packages" / "a", name="@acme/a", version="0.3.0")
    _write_manifest(tmp_path / "tools" / "cli", name="mkptool", version="0.1.0")
    _write_manifest(tmp_path / "tools" / "scratch", name="scratch", version="0.0.1")
    (tmp_path / "packages" / "not-a-package").mkdir()

    workspace = discover_workspace(tmp_path)

    assert workspace.tool == "pnpm"
    assert not workspace.is_single_package
    assert workspace.root == tmp_path.resolve()
    assert [p.name for p in workspace.packages] == ["@acme/a", "@acme/b", "mkptool"]
    assert workspace.packages[0] == PackageDescriptor(
        name="@acme/a", local_version="0.3.0", directory="packages/a"
    )
    assert [p.name for p in workspace.without(["mkptool"])] == ["@acme/a", "@acme/b"]


def test_npm_workspaces_field(tmp_path):
    _write_manifest(tmp_path, name="root", private=True, workspaces={"packages": ["libs/*"]})
    _write_manifest(tmp_path / "libs" / "core", name="core", version="2.0.0")
    _write_manifest(tmp_path / "libs" / "internal", name="internal", private=True)

    workspace = discover_workspace(tmp_path)

    assert workspace.tool == "npm"
    internal = workspace.packages[1]
    assert internal.name == "internal"
    assert internal.is_private
    assert internal.local_version == ""


def test_single_package_root(tmp_path):
    _write_manifest(tmp_path, name="solo", version="4.0.0")

    workspace = discover_workspace(tmp_path)

    assert workspace.is_single_package
    assert workspace.packages == (
        PackageDescriptor(name="solo", local_version="4.0.0", directory="."),
    )


def test_missing_root_manifest(tmp_path):
    with pytest.raises(WorkspaceError, match="Missing manifest"):
        discover_workspace(tmp_path)


def test_public_package_without_version(tmp_path):
    _write_manifest(tmp_path, name="root", workspaces=["packages/*"])
    _write_manifest(tmp_path / "packages" / "a", name="a")

    with pytest.raises(WorkspaceError, match="has no version"):
        discover_workspace(tmp_path)


def test_duplicate_package_names(tmp_path):
    _write_manifest(tmp_path, name="root", workspaces=["packages/*"])
    _write_manifest(tmp_path / "packages" / "a", name="dup", version="1.0.0")
    _write_manifest(tmp_path / "packages" / "b", name="dup", version="1.0.0")

    with pytest.raises(WorkspaceError, match="Duplicate package name"):
        discover_workspace(tmp_path)


def test_invalid_pnpm_yaml(tmp_path):
    _write_manifest(tmp_path, name="root")
    (tmp_path / "pnpm-workspace.yaml").write_text("packages: [unclosed\n", encoding="utf-8")

    with pytest.raises(WorkspaceError, match="Invalid YAML"):
        discover_workspace(tmp_path)
