"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Thin async wrappers around the git executable.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .publish.types import PublishOutcome

logger = logging.getLogger("mkptool.git")


class GitError(RuntimeError):
    """Raised when a git command fails."""


async def run_git(
    *args: str, cwd: str | Path = ".", git_executable: str = "git"
) -> str:
    """Execute a git command and return stripped stdout, raising on failure."""
    try:
        proc = await asyncio.create_subprocess_exec(
            git_executable,
            *args,
            cwd=str(cwd),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        raise GitError(f"Cannot run {git_executable}: {exc}") from exc
    stdout, stderr = await proc.communicate()
    if proc.returncode != 0:
        command = " ".join(args)
        message = stderr.decode("utf-8", errors="replace").strip()
        raise GitError(f"git {command} failed: {message}")
    return stdout.decode("utf-8", errors="replace").strip()


async def current_branch(cwd: str | Path = ".", *, git_executable: str = "git") -> str:
    return await run_git(
        "rev-parse", "--abbrev-ref", "HEAD", cwd=cwd, git_executable=git_executable
    )


async def current_commit(cwd: str | Path = ".", *, git_executable: str = "git") -> str:
    return await run_git("rev-parse", "HEAD", cwd=cwd, git_executable=git_executable)


def release_tags(outcomes: Sequence[PublishOutcome], *, single_package: bool) -> list[str]:
    """
    Tag names for published outcomes.

    A single-package (root) workspace gets one `v<version>` tag; a monorepo
    gets one `<name>@<version>` tag per package.
    """
    published = [outcome for outcome in outcomes if outcome.published]
    if not published:
        return []
    if single_package:
        return [f"v{published[0].new_version}"]
    return [f"{outcome.name}@{outcome.new_version}" for outcome in published]


class GitTagger:
    """Create lightweight tags for published packages."""

    def __init__(self, cwd: str | Path = ".", *, git_executable: str = "git") -> None:
        self.cwd = Path(cwd)
        self.git_executable = git_executable

    async def tag(
        self, outcomes: Sequence[PublishOutcome], *, single_package: bool = False
    ) -> list[str]:
        tags = release_tags(outcomes, single_package=single_package)
        for tag in tags:
            logger.info("New tag: %s", tag)
            await run_git("tag", tag, cwd=self.cwd, git_executable=self.git_executable)
        return tags
