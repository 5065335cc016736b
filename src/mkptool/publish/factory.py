"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Factory helpers for selecting registry and dispatch backends from settings.
"""

from __future__ import annotations

from pathlib import Path

from .config import PublishSettings
from .context import GitRunContextProvider, RunContextProvider
from .dispatch import (
    DispatchNotifier,
    GithubOutputDispatchNotifier,
    NoopDispatchNotifier,
    RepositoryDispatchNotifier,
)
from .metrics import NoOpPublishMetrics, PrometheusPublishMetrics, PublishMetrics
from .orchestrator import PublishOrchestrator
from .registry import HttpRegistryClient, PackageManagerRegistryClient, RegistryClient


def create_registry_client(settings: PublishSettings) -> RegistryClient:
    """
    Create a registry client from `settings.registry_backend`.

    Backends:
    - `cli` (default): `<package_manager> info <name> --json`
    - `http`: packument GET against `settings.registry_url`
    """
    backend = settings.registry_backend.strip().lower()
    if backend in ("cli", "pnpm", "npm", "package_manager"):
        return PackageManagerRegistryClient(
            executable=settings.package_manager,
            timeout_s=settings.registry_timeout_s,
        )
    if backend in ("http", "https"):
        return HttpRegistryClient(
            base_url=settings.registry_url,
            token=settings.registry_token,
            timeout_s=settings.registry_timeout_s,
        )
    raise ValueError(f"Unknown MKPTOOL_REGISTRY_BACKEND: {backend}")


def create_dispatch_notifier(settings: PublishSettings) -> DispatchNotifier:
    """
    Create a dispatch notifier from `settings.dispatch_backend`.

    Backends:
    - `repository_dispatch` (default): GitHub REST `repository_dispatch`
    - `github_output`: step outputs appended to `$GITHUB_OUTPUT`
    - `noop`: log only
    """
    backend = settings.dispatch_backend.strip().lower()
    if backend in ("repository_dispatch", "github", "webhook"):
        return RepositoryDispatchNotifier(
            owner=settings.dispatch_repo_owner,
            repo=settings.dispatch_repo_name,
            token=settings.dispatch_token,
            api_url=settings.dispatch_api_url,
        )
    if backend in ("github_output", "output"):
        return GithubOutputDispatchNotifier(settings.github_output_path)
    if backend in ("noop", "none", "dry_run"):
        return NoopDispatchNotifier()
    raise ValueError(f"Unknown MKPTOOL_DISPATCH_BACKEND: {backend}")


def create_metrics(settings: PublishSettings) -> PublishMetrics:
    """
    Create a metrics sink from `settings.metrics_backend`.

    Backends:
    - `noop` (default)
    - `prometheus`: counters written to `settings.metrics_textfile` on flush
    """
    backend = settings.metrics_backend.strip().lower()
    if backend in ("noop", "none", ""):
        return NoOpPublishMetrics()
    if backend in ("prometheus", "prom"):
        return PrometheusPublishMetrics(textfile_path=settings.metrics_textfile)
    raise ValueError(f"Unknown MKPTOOL_METRICS_BACKEND: {backend}")


def create_orchestrator(
    settings: PublishSettings,
    *,
    cwd: str | Path = ".",
    registry: RegistryClient | None = None,
    notifier: DispatchNotifier | None = None,
    run_context: RunContextProvider | None = None,
    metrics: PublishMetrics | None = None,
) -> PublishOrchestrator:
    """Wire a `PublishOrchestrator`, building unset collaborators from settings."""
    return PublishOrchestrator(
        registry=registry or create_registry_client(settings),
        notifier=notifier or create_dispatch_notifier(settings),
        run_context=run_context or GitRunContextProvider(cwd),
        settings=settings,
        metrics=metrics or create_metrics(settings),
    )
