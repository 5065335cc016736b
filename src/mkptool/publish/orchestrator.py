"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

End-to-end publish flow: classify, dispatch once, confirm.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from .cancellation import CancellationToken
from .config import PublishSettings
from .context import RunContextProvider
from .dispatch import DispatchNotifier
from .gate import PublishGate
from .metrics import NoOpPublishMetrics, PublishMetrics
from .poller import PublishConfirmationPoller
from .registry import RegistryClient
from .types import (
    DispatchRequest,
    PackageDescriptor,
    PublishCancelledError,
    PublishCandidate,
    PublishOutcome,
    RunContext,
)

logger = logging.getLogger("mkptool.publish.orchestrator")


def build_request(
    candidates: Sequence[PublishCandidate], context: RunContext
) -> DispatchRequest:
    return DispatchRequest(
        branch=context.branch,
        commit=context.commit,
        candidates=tuple(candidates),
    )


class PublishOrchestrator:
    """
    Compose gate, notifier and poller into one publish run.

    Failures from any step propagate unchanged; a run either returns one
    outcome per candidate or raises.
    """

    def __init__(
        self,
        *,
        registry: RegistryClient,
        notifier: DispatchNotifier,
        run_context: RunContextProvider,
        settings: PublishSettings | None = None,
        metrics: PublishMetrics | None = None,
        gate: PublishGate | None = None,
        poller: PublishConfirmationPoller | None = None,
    ) -> None:
        self.settings = settings or PublishSettings()
        self._metrics: PublishMetrics = metrics or NoOpPublishMetrics()
        self._notifier = notifier
        self._run_context = run_context
        self._gate = gate or PublishGate(
            registry,
            max_concurrency=self.settings.max_concurrency,
            metrics=self._metrics,
        )
        self._poller = poller or PublishConfirmationPoller(
            registry,
            max_attempts=self.settings.max_attempts,
            delay_s=self.settings.delay_s,
            max_concurrency=self.settings.max_concurrency,
            metrics=self._metrics,
        )

    async def run(
        self,
        descriptors: Sequence[PackageDescriptor],
        *,
        cancel_token: CancellationToken | None = None,
        confirm: bool = True,
    ) -> list[PublishOutcome]:
        """
        Publish every package whose local version is missing from the registry.

        Args:
            descriptors: Workspace packages in traversal order.
            cancel_token: Checked before dispatch and during confirmation. A
                cancel that lands before dispatch means nothing is published.
            confirm: When false, return right after dispatch with unconfirmed
                outcomes (`published=False`). Used for dry runs.

        Returns:
            One outcome per candidate, in workspace order. Empty when nothing
            needs publishing (no dispatch happens in that case).

        Raises:
            PublishCancelledError: `cancel_token` fired before dispatch or
                while waiting for confirmation.
        """
        candidates = await self._gate.classify(descriptors)
        if not candidates:
            logger.info("No unpublished packages found")
            return []
        _raise_if_cancelled(cancel_token, candidates)

        context = await self._run_context.resolve()
        _raise_if_cancelled(cancel_token, candidates)

        request = build_request(candidates, context)
        logger.info(
            "Dispatching %d package(s) from %s@%s",
            len(candidates),
            context.branch,
            context.commit[:12],
        )
        await self._notifier.dispatch(request)
        self._metrics.incr("publish_dispatches_total")

        if confirm:
            await self._poller.await_publication(candidates, cancel_token=cancel_token)

        return [
            PublishOutcome(
                name=candidate.name,
                new_version=candidate.local_version,
                published=confirm,
            )
            for candidate in candidates
        ]


def _raise_if_cancelled(
    cancel_token: CancellationToken | None, candidates: Sequence[PublishCandidate]
) -> None:
    if cancel_token is not None and cancel_token.cancelled:
        logger.warning(
            "Publish cancelled before dispatch%s",
            f": {cancel_token.reason}" if cancel_token.reason else "",
        )
        raise PublishCancelledError(tuple(candidates))
