"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Workspace discovery: turn a monorepo checkout into package descriptors.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

import yaml

from .publish.types import PackageDescriptor

logger = logging.getLogger("mkptool.workspace")

WorkspaceTool = Literal["pnpm", "npm", "root"]

PACKAGE_MANIFEST = "package.json"
PNPM_WORKSPACE_FILE = "pnpm-workspace.yaml"


class WorkspaceError(RuntimeError):
    """Raised when the workspace layout or a package manifest is invalid."""


@dataclass(frozen=True, slots=True)
class Workspace:
    """
    Discovered workspace.

    Attributes:
        root: Absolute workspace root.
        tool: `pnpm` or `npm` for monorepos, `root` for a single package.
        packages: Descriptors in directory order.
    """

    root: Path
    tool: WorkspaceTool
    packages: tuple[PackageDescriptor, ...] = field(default_factory=tuple)

    @property
    def is_single_package(self) -> bool:
        return self.tool == "root"

    def without(self, names: Iterable[str]) -> list[PackageDescriptor]:
        """Return packages whose names are not in `names`."""
        skip = set(names)
        return [pkg for pkg in self.packages if pkg.name not in skip]


def _read_json(path: Path) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise WorkspaceError(f"Missing manifest: {path}") from exc
    except json.JSONDecodeError as exc:
        raise WorkspaceError(f"Invalid JSON in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise WorkspaceError(f"Manifest {path} must contain a JSON object")
    return data


def _workspace_patterns(root: Path, manifest: dict[str, Any]) -> tuple[WorkspaceTool, list[str]]:
    pnpm_file = root / PNPM_WORKSPACE_FILE
    if pnpm_file.is_file():
        try:
            doc = yaml.safe_load(pnpm_file.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as exc:
            raise WorkspaceError(f"Invalid YAML in {pnpm_file}: {exc}") from exc
        patterns = doc.get("packages") if isinstance(doc, dict) else None
        if isinstance(patterns, list) and patterns:
            return "pnpm", [str(p) for p in patterns]

    raw = manifest.get("workspaces")
    if isinstance(raw, dict):
        raw = raw.get("packages")
    if isinstance(raw, list) and raw:
        return "npm", [str(p) for p in raw]
    return "root", []


def _expand(root: Path, patterns: Sequence[str]) -> list[Path]:
    included: set[Path] = set()
    excluded: set[Path] = set()
    for pattern in patterns:
        negate = pattern.startswith("!")
        cleaned = pattern[1:] if negate else pattern
        cleaned = cleaned.strip().rstrip("/")
        if not cleaned:
            continue
        for match in root.glob(cleaned):
            if match.is_dir() and (match / PACKAGE_MANIFEST).is_file():
                (excluded if negate else included).add(match)
    return sorted(included - excluded)


def _descriptor(root: Path, package_dir: Path) -> PackageDescriptor:
    manifest_path = package_dir / PACKAGE_MANIFEST
    manifest = _read_json(manifest_path)
    name = manifest.get("name")
    if not isinstance(name, str) or not name.strip():
        raise WorkspaceError(f"{manifest_path} has no package name")
    is_private = bool(manifest.get("private", False))
    version = manifest.get("version")
    if not isinstance(version, str) or not version.strip():
        if not is_private:
            raise WorkspaceError(f"{manifest_path} ({name}) has no version")
        version = ""
    directory = package_dir.relative_to(root).as_posix() or "."
    return PackageDescriptor(
        name=name.strip(),
        local_version=version.strip(),
        directory=directory,
        is_private=is_private,
    )


def discover_workspace(cwd: str | Path = ".") -> Workspace:
    """
    Discover the packages of the workspace rooted at `cwd`.

    Monorepo globs come from `pnpm-workspace.yaml` or the root manifest's
    `workspaces` field; without either, the root package is the only package.

    Raises:
        WorkspaceError: On missing or invalid manifests and duplicate names.
    """
    root = Path(cwd).resolve()
    manifest = _read_json(root / PACKAGE_MANIFEST)
    tool, patterns = _workspace_patterns(root, manifest)

    if tool == "root":
        packages = [_descriptor(root, root)]
    else:
        packages = [_descriptor(root, package_dir) for package_dir in _expand(root, patterns)]

    seen: dict[str, str] = {}
    for pkg in packages:
        if pkg.name in seen:
            raise WorkspaceError(
                f"Duplicate package name {pkg.name!r} in {seen[pkg.name]} and {pkg.directory}"
            )
        seen[pkg.name] = pkg.directory

    logger.debug("Discovered %d package(s) with %s", len(packages), tool)
    return Workspace(root=root, tool=tool, packages=tuple(packages))
