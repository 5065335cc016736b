"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Confirmation poller: waits until dispatched versions show up on the registry.

Registries are eventually consistent, so a successful dispatch is followed by
a bounded number of query rounds. Each round re-queries only the packages that
are still missing. The loop ends in one of four ways:

- every candidate confirmed (return),
- attempts exhausted (``PublishTimeoutError``),
- an ambiguous registry answer (``UnknownRegistryError``, never retried),
- caller cancellation (``PublishCancelledError``).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from .cancellation import CancellationToken
from .config import DEFAULT_DELAY_MS, DEFAULT_MAX_ATTEMPTS
from .gate import query_all, raise_for_unknown
from .metrics import NoOpPublishMetrics, PublishMetrics
from .registry import RegistryClient
from .types import (
    Found,
    PublishCancelledError,
    PublishCandidate,
    PublishTimeoutError,
)

logger = logging.getLogger("mkptool.publish.poller")


@dataclass(slots=True)
class PollState:
    """Mutable loop state owned by one `await_publication` call."""

    remaining: list[PublishCandidate] = field(default_factory=list)
    attempt: int = 1

    @property
    def confirmed_all(self) -> bool:
        return not self.remaining


class PublishConfirmationPoller:
    """Poll the registry until every candidate's local version is listed."""

    def __init__(
        self,
        registry: RegistryClient,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        delay_s: float = DEFAULT_DELAY_MS / 1000.0,
        max_concurrency: int = 8,
        metrics: PublishMetrics | None = None,
    ) -> None:
        self._registry = registry
        self.max_attempts = max_attempts
        self.delay_s = delay_s
        self._max_concurrency = max_concurrency
        self._metrics: PublishMetrics = metrics or NoOpPublishMetrics()

    async def await_publication(
        self,
        candidates: Sequence[PublishCandidate],
        *,
        max_attempts: int | None = None,
        delay_s: float | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> None:
        """
        Block until all candidates are confirmed on the registry.

        Args:
            candidates: Packages that were dispatched for publishing.
            max_attempts: Query rounds before giving up (defaults to the
                poller's configured value).
            delay_s: Pause between rounds in seconds.
            cancel_token: Optional token that interrupts the pause.

        Raises:
            PublishTimeoutError: Candidates still missing after the last round.
            UnknownRegistryError: The registry returned an unexpected error.
            PublishCancelledError: `cancel_token` fired while waiting.
        """
        attempts = self.max_attempts if max_attempts is None else max_attempts
        delay = self.delay_s if delay_s is None else delay_s
        if attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if delay < 0:
            raise ValueError("delay_s must be >= 0")

        state = PollState(remaining=list(candidates))
        while state.remaining:
            if cancel_token is not None and cancel_token.cancelled:
                raise PublishCancelledError(tuple(state.remaining))

            await self._poll_once(state)
            if state.confirmed_all:
                logger.info(
                    "All packages confirmed on the registry after %d attempt(s)",
                    state.attempt,
                )
                return

            if state.attempt >= attempts:
                self._metrics.incr("publish_confirmation_timeouts_total")
                logger.error(
                    "Gave up after %d attempt(s); still unpublished: %s",
                    state.attempt,
                    ", ".join(str(c) for c in state.remaining),
                )
                raise PublishTimeoutError(tuple(state.remaining))

            logger.info(
                "Attempt %d/%d: waiting %.1fs for %s",
                state.attempt,
                attempts,
                delay,
                ", ".join(str(c) for c in state.remaining),
            )
            state.attempt += 1
            if cancel_token is None:
                await asyncio.sleep(delay)
            elif await cancel_token.sleep(delay):
                logger.warning(
                    "Confirmation wait cancelled%s",
                    f": {cancel_token.reason}" if cancel_token.reason else "",
                )
                raise PublishCancelledError(tuple(state.remaining))

    async def _poll_once(self, state: PollState) -> None:
        names = [candidate.name for candidate in state.remaining]
        results = await query_all(
            self._registry, names, max_concurrency=self._max_concurrency
        )
        self._metrics.incr("publish_confirmation_queries_total", len(names))
        raise_for_unknown(names, results)

        still_missing: list[PublishCandidate] = []
        for candidate, result in zip(state.remaining, results):
            if isinstance(result, Found) and result.contains(candidate.local_version):
                logger.info("Confirmed %s on the registry", candidate)
                self._metrics.incr("publish_confirmed_total")
            else:
                still_missing.append(candidate)
        state.remaining = still_missing

    def start(
        self,
        candidates: Sequence[PublishCandidate],
        *,
        max_attempts: int | None = None,
        delay_s: float | None = None,
    ) -> "ConfirmationHandle":
        """Schedule the poll loop as a background task and return its handle."""
        token = CancellationToken()
        task = asyncio.create_task(
            self.await_publication(
                candidates,
                max_attempts=max_attempts,
                delay_s=delay_s,
                cancel_token=token,
            )
        )
        return ConfirmationHandle(task, token)


class ConfirmationHandle:
    """Control handle for a background confirmation wait."""

    def __init__(self, task: asyncio.Task[None], token: CancellationToken) -> None:
        self._task = task
        self._token = token

    @property
    def done(self) -> bool:
        return self._task.done()

    def cancel(self, reason: str | None = None) -> None:
        """Stop waiting at the next pause between query rounds."""
        self._token.cancel(reason)

    async def abort(self) -> None:
        """Cancel immediately, abandoning any in-flight registry queries."""
        self._token.cancel("aborted")
        if not self._task.done():
            self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)

    async def await_result(self) -> None:
        """Wait for the loop and re-raise its terminal error, if any."""
        await self._task
