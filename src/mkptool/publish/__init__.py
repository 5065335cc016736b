"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Publish flow for workspace packages.

Detects packages whose local version is missing from the registry, hands them
to an external publisher, and waits until the registry lists them.

Quick start::

    from mkptool.publish import PublishSettings, create_orchestrator

    settings = PublishSettings.from_env()
    orchestrator = create_orchestrator(settings)
    outcomes = await orchestrator.run(descriptors)
"""

from .cancellation import CancellationToken
from .config import PublishSettings
from .context import GitRunContextProvider, RunContextProvider, StaticRunContextProvider
from .dispatch import (
    DispatchNotifier,
    GithubOutputDispatchNotifier,
    NoopDispatchNotifier,
    RepositoryDispatchNotifier,
)
from .factory import (
    create_dispatch_notifier,
    create_metrics,
    create_orchestrator,
    create_registry_client,
)
from .gate import PublishGate
from .metrics import NoOpPublishMetrics, PrometheusPublishMetrics, PublishMetrics
from .orchestrator import PublishOrchestrator, build_request
from .poller import ConfirmationHandle, PollState, PublishConfirmationPoller
from .registry import (
    HttpRegistryClient,
    PackageManagerRegistryClient,
    RegistryClient,
    parse_package_info,
)
from .types import (
    DispatchError,
    DispatchRequest,
    Found,
    NotFound,
    PackageDescriptor,
    PublishCancelledError,
    PublishCandidate,
    PublishError,
    PublishOutcome,
    PublishTimeoutError,
    RegistryQueryResult,
    RunContext,
    UnknownError,
    UnknownRegistryError,
)

__all__ = [
    "PackageDescriptor",
    "Found",
    "NotFound",
    "UnknownError",
    "RegistryQueryResult",
    "PublishCandidate",
    "RunContext",
    "DispatchRequest",
    "PublishOutcome",
    "PublishError",
    "UnknownRegistryError",
    "DispatchError",
    "PublishTimeoutError",
    "PublishCancelledError",
    "PublishSettings",
    "RegistryClient",
    "PackageManagerRegistryClient",
    "HttpRegistryClient",
    "parse_package_info",
    "PublishGate",
    "DispatchNotifier",
    "RepositoryDispatchNotifier",
    "GithubOutputDispatchNotifier",
    "NoopDispatchNotifier",
    "RunContextProvider",
    "GitRunContextProvider",
    "StaticRunContextProvider",
    "CancellationToken",
    "PollState",
    "PublishConfirmationPoller",
    "ConfirmationHandle",
    "PublishOrchestrator",
    "build_request",
    "PublishMetrics",
    "NoOpPublishMetrics",
    "PrometheusPublishMetrics",
    "create_registry_client",
    "create_dispatch_notifier",
    "create_metrics",
    "create_orchestrator",
]
