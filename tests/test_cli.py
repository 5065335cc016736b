from __future__ import annotations

import asyncio
import json
import logging

import pytest

import mkptool.cli as cli
from mkptool.publish import (
    DispatchError,
    NoopDispatchNotifier,
    NotFound,
    PackageDescriptor,
    PrometheusPublishMetrics,
    PublishCandidate,
    PublishOrchestrator,
    PublishOutcome,
    PublishSettings,
    PublishTimeoutError,
    StaticRunContextProvider,
)


def run_async(coro):
    return asyncio.run(coro)


class FakeOrchestrator:
    def __init__(self, outcome=None, error: Exception | None = None):
        self.outcome = outcome or []
        self.error = error
        self.descriptors: list[PackageDescriptor] | None = None
        self.confirm: bool | None = None

    async def run(self, descriptors, *, cancel_token=None, confirm=True):
        self.descriptors = list(descriptors)
        self.confirm = confirm
        if self.error is not None:
            raise self.error
        return self.outcome


class FakeTagger:
    def __init__(self, *args, **kwargs):
        self.calls: list[tuple[list[PublishOutcome], bool]] = []

    async def tag(self, outcomes, *, single_package=False):
        self.calls.append((list(outcomes), single_package))
        return [str(o) for o in outcomes]


def _monorepo(tmp_path) -> None:
    (tmp_path / "package.json").write_text(
        json.dumps({"name": "root", "private": True, "workspaces": ["packages/*"]}),
        encoding="utf-8",
    )
    for name, version in (("a", "1.0.0"), ("mkptool", "0.1.0"), ("b", "2.0.0")):
        pkg = tmp_path / "packages" / name
        pkg.mkdir(parents=True)
        (pkg / "package.json").write_text(
            json.dumps({"name": name, "version": version}), encoding="utf-8"
        )


def _publish(tmp_path, orchestrator, tagger, *, skip=("mkptool",), git_tag=True):
    return run_async(
        cli.run_publish(
            cwd=tmp_path,
            skip_packages=list(skip),
            git_tag=git_tag,
            settings=PublishSettings(),
            orchestrator=orchestrator,
            tagger=tagger,
        )
    )


def test_parse_skip_defaults_to_tool_itself():
    assert cli._parse_skip(None) == ["mkptool"]  # noqa: SLF001
    assert cli._parse_skip("a, b,,") == ["a", "b"]  # noqa: SLF001
    assert cli._parse_skip("") == []  # noqa: SLF001


def test_publish_success_tags_releases(tmp_path, caplog):
    _monorepo(tmp_path)
    outcome = [PublishOutcome(name="a", new_version="1.0.0", published=True)]
    orchestrator = FakeOrchestrator(outcome)
    tagger = FakeTagger()

    with caplog.at_level(logging.INFO, logger="mkptool.cli"):
        code = _publish(tmp_path, orchestrator, tagger)

    assert code == 0
    assert [d.name for d in orchestrator.descriptors] == ["a", "b"]
    assert tagger.calls == [(outcome, False)]
    assert "packages published successfully:" in caplog.text
    assert "a@1.0.0" in caplog.text


def test_publish_skip_list_and_no_git_tag(tmp_path):
    _monorepo(tmp_path)
    orchestrator = FakeOrchestrator([PublishOutcome("b", "2.0.0", True)])
    tagger = FakeTagger()

    code = _publish(tmp_path, orchestrator, tagger, skip=("a",), git_tag=False)

    assert code == 0
    assert [d.name for d in orchestrator.descriptors] == ["b", "mkptool"]
    assert tagger.calls == []


def test_publish_nothing_to_do(tmp_path, caplog):
    _monorepo(tmp_path)
    tagger = FakeTagger()

    with caplog.at_level(logging.WARNING, logger="mkptool.cli"):
        code = _publish(tmp_path, FakeOrchestrator([]), tagger)

    assert code == 0
    assert tagger.calls == []
    assert "No unpublished projects to publish" in caplog.text


def test_publish_timeout_lists_failed_packages(tmp_path, caplog):
    _monorepo(tmp_path)
    pending = PublishCandidate(PackageDescriptor("a", "1.0.0", "packages/a"))
    orchestrator = FakeOrchestrator(error=PublishTimeoutError((pending,)))
    tagger = FakeTagger()

    with caplog.at_level(logging.INFO, logger="mkptool.cli"):
        code = _publish(tmp_path, orchestrator, tagger)

    assert code == 1
    assert tagger.calls == []
    assert "packages failed to publish:" in caplog.text
    assert "a@1.0.0" in caplog.text


def test_publish_dispatch_error_fails(tmp_path):
    _monorepo(tmp_path)
    orchestrator = FakeOrchestrator(error=DispatchError("GITHUB_OUTPUT is not set"))
    assert _publish(tmp_path, orchestrator, FakeTagger()) == 1


def test_main_wires_orchestrator_and_tagger(tmp_path, monkeypatch):
    _monorepo(tmp_path)
    orchestrator = FakeOrchestrator([PublishOutcome("a", "1.0.0", True)])
    taggers: list[FakeTagger] = []
    seen_settings: list[PublishSettings] = []

    def fake_create_orchestrator(settings, *, cwd=".", notifier=None, **kwargs):
        seen_settings.append(settings)
        return orchestrator

    def fake_tagger(*args, **kwargs):
        tagger = FakeTagger()
        taggers.append(tagger)
        return tagger

    monkeypatch.setattr(cli, "create_orchestrator", fake_create_orchestrator)
    monkeypatch.setattr(cli, "GitTagger", fake_tagger)
    monkeypatch.delenv("MKPTOOL_POLL_MAX_ATTEMPTS", raising=False)
    monkeypatch.delenv("PUBLISH_POLL_MAX_ATTEMPTS", raising=False)

    code = cli.main(["publish", "--cwd", str(tmp_path), "--max-attempts", "4", "--delay-ms", "0"])

    assert code == 0
    assert [d.name for d in orchestrator.descriptors] == ["a", "b"]
    assert seen_settings[0].max_attempts == 4
    assert seen_settings[0].delay_ms == 0
    assert len(taggers) == 1
    assert taggers[0].calls[0][1] is False


def test_main_missing_workspace_is_usage_error(tmp_path, capsys):
    code = cli.main(["publish", "--cwd", str(tmp_path)])
    assert code == 2
    assert "Missing manifest" in capsys.readouterr().err


def test_main_invalid_env_is_usage_error(tmp_path, monkeypatch, capsys):
    monkeypatch.setenv("MKPTOOL_POLL_MAX_ATTEMPTS", "many")
    code = cli.main(["publish", "--cwd", str(tmp_path)])
    assert code == 2
    assert "MKPTOOL_POLL_MAX_ATTEMPTS must be an integer" in capsys.readouterr().err


def test_main_requires_a_command():
    with pytest.raises(SystemExit) as exc_info:
        cli.main([])
    assert exc_info.value.code == 2


class CountingRegistry:
    def __init__(self) -> None:
        self.calls: list[str] = []

    async def query(self, package_name: str):
        self.calls.append(package_name)
        return NotFound()


def _single_package(tmp_path) -> None:
    (tmp_path / "package.json").write_text(
        json.dumps({"name": "a", "version": "1.0.0"}), encoding="utf-8"
    )


def test_dry_run_lists_candidates_without_confirming_or_tagging(tmp_path, caplog):
    _single_package(tmp_path)
    registry = CountingRegistry()
    notifier = NoopDispatchNotifier()
    orchestrator = PublishOrchestrator(
        registry=registry,
        notifier=notifier,
        run_context=StaticRunContextProvider("main", "deadbeef"),
        settings=PublishSettings(max_attempts=3, delay_ms=0),
    )
    tagger = FakeTagger()

    with caplog.at_level(logging.INFO):
        code = run_async(
            cli.run_publish(
                cwd=tmp_path,
                skip_packages=[],
                git_tag=True,
                settings=PublishSettings(max_attempts=3, delay_ms=0),
                dry_run=True,
                orchestrator=orchestrator,
                tagger=tagger,
            )
        )

    assert code == 0
    assert registry.calls == ["a"]
    assert [r.package_names for r in notifier.requests] == [["a"]]
    assert tagger.calls == []
    assert "Dry run: packages that would be published:" in caplog.text
    assert "packages failed to publish:" not in caplog.text


def test_dry_run_asks_orchestrator_to_skip_confirmation(tmp_path):
    _monorepo(tmp_path)
    orchestrator = FakeOrchestrator([PublishOutcome("a", "1.0.0", False)])
    tagger = FakeTagger()

    code = run_async(
        cli.run_publish(
            cwd=tmp_path,
            skip_packages=["mkptool"],
            git_tag=True,
            settings=PublishSettings(),
            dry_run=True,
            orchestrator=orchestrator,
            tagger=tagger,
        )
    )

    assert code == 0
    assert orchestrator.confirm is False
    assert tagger.calls == []


def test_publish_writes_prometheus_textfile(tmp_path):
    pytest.importorskip("prometheus_client")
    _single_package(tmp_path)
    textfile = tmp_path / "metrics" / "mkptool.prom"
    metrics = PrometheusPublishMetrics(textfile_path=textfile)
    orchestrator = PublishOrchestrator(
        registry=CountingRegistry(),
        notifier=NoopDispatchNotifier(),
        run_context=StaticRunContextProvider("main", "deadbeef"),
        metrics=metrics,
    )

    code = run_async(
        cli.run_publish(
            cwd=tmp_path,
            skip_packages=[],
            git_tag=False,
            settings=PublishSettings(),
            dry_run=True,
            orchestrator=orchestrator,
            metrics=metrics,
        )
    )

    assert code == 0
    text = textfile.read_text(encoding="utf-8")
    assert "mkptool_publish_candidates_total 1.0" in text
    assert "mkptool_publish_dispatches_total 1.0" in text


def test_main_unknown_metrics_backend_is_usage_error(tmp_path, monkeypatch, capsys):
    monkeypatch.setenv("MKPTOOL_METRICS_BACKEND", "statsd")
    code = cli.main(["publish", "--cwd", str(tmp_path)])
    assert code == 2
    assert "MKPTOOL_METRICS_BACKEND" in capsys.readouterr().err
