from __future__ import annotations

import asyncio

import pytest

import mkptool.git as git_module
import mkptool.publish.context as context_module
from mkptool.git import GitError, GitTagger, release_tags, run_git
from mkptool.publish import (
    DispatchError,
    GitRunContextProvider,
    PublishOutcome,
    RunContext,
    StaticRunContextProvider,
)


def run_async(coro):
    return asyncio.run(coro)


def test_release_tags_for_monorepo_packages():
    outcomes = [
        PublishOutcome(name="@acme/a", new_version="1.0.0", published=True),
        PublishOutcome(name="b", new_version="0.2.0", published=False),
        PublishOutcome(name="c", new_version="3.1.4", published=True),
    ]
    assert release_tags(outcomes, single_package=False) == ["@acme/a@1.0.0", "c@3.1.4"]


def test_release_tags_for_single_package_root():
    outcomes = [PublishOutcome(name="tool", new_version="2.0.0", published=True)]
    assert release_tags(outcomes, single_package=True) == ["v2.0.0"]
    assert release_tags([], single_package=True) == []


def test_git_tagger_creates_one_tag_per_release(monkeypatch, tmp_path):
    calls: list[tuple[tuple[str, ...], object]] = []

    async def fake_run_git(*args, cwd=".", git_executable="git"):
        calls.append((args, cwd))
        return ""

    monkeypatch.setattr(git_module, "run_git", fake_run_git)
    tagger = GitTagger(tmp_path)
    outcomes = [
        PublishOutcome(name="a", new_version="1.0.0", published=True),
        PublishOutcome(name="b", new_version="1.1.0", published=True),
    ]
    tags = run_async(tagger.tag(outcomes))

    assert tags == ["a@1.0.0", "b@1.1.0"]
    assert calls == [(("tag", "a@1.0.0"), tmp_path), (("tag", "b@1.1.0"), tmp_path)]


def test_run_git_missing_executable_raises():
    with pytest.raises(GitError):
        run_async(run_git("status", git_executable="definitely-not-git"))


def test_git_run_context_provider_reads_branch_and_commit(monkeypatch):
    async def fake_branch(cwd=".", *, git_executable="git"):
        return "release"

    async def fake_commit(cwd=".", *, git_executable="git"):
        return "0123abcd"

    monkeypatch.setattr(context_module, "current_branch", fake_branch)
    monkeypatch.setattr(context_module, "current_commit", fake_commit)

    context = run_async(GitRunContextProvider(".").resolve())
    assert context == RunContext(branch="release", commit="0123abcd")


def test_git_run_context_provider_maps_git_errors(monkeypatch):
    async def failing(cwd=".", *, git_executable="git"):
        raise GitError("git rev-parse failed: not a git repository")

    monkeypatch.setattr(context_module, "current_branch", failing)

    with pytest.raises(DispatchError, match="not a git repository"):
        run_async(GitRunContextProvider(".").resolve())


def test_static_run_context_provider():
    assert run_async(StaticRunContextProvider("main", "abc").resolve()) == RunContext("main", "abc")
    with pytest.raises(DispatchError):
        run_async(StaticRunContextProvider("main", "").resolve())
