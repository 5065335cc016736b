"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Run context providers (source branch and commit for the dispatch payload).
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol

from ..git import GitError, current_branch, current_commit
from .types import DispatchError, RunContext


class RunContextProvider(Protocol):
    """Supplies the source revision for one publish run."""

    async def resolve(self) -> RunContext:
        """Return branch and commit, raising `DispatchError` if unavailable."""
        ...


class StaticRunContextProvider:
    """Fixed branch/commit, for CI overrides and tests."""

    def __init__(self, branch: str, commit: str) -> None:
        self._context = RunContext(branch=branch, commit=commit)

    async def resolve(self) -> RunContext:
        if not self._context.branch or not self._context.commit:
            raise DispatchError("Run context requires a non-empty branch and commit")
        return self._context


class GitRunContextProvider:
    """Read branch and commit from the workspace git checkout."""

    def __init__(self, cwd: str | Path = ".", *, git_executable: str = "git") -> None:
        self.cwd = Path(cwd)
        self.git_executable = git_executable

    async def resolve(self) -> RunContext:
        try:
            branch = await current_branch(self.cwd, git_executable=self.git_executable)
            commit = await current_commit(self.cwd, git_executable=self.git_executable)
        except GitError as exc:
            raise DispatchError(f"Cannot determine run context: {exc}") from exc
        if not branch or not commit:
            raise DispatchError("Cannot determine run context: empty branch or commit")
        return RunContext(branch=branch, commit=commit)
