"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Publish gate: decides which workspace packages still need publishing.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Sequence

from .metrics import NoOpPublishMetrics, PublishMetrics
from .registry import RegistryClient
from .types import (
    Found,
    PackageDescriptor,
    PublishCandidate,
    RegistryQueryResult,
    UnknownError,
    UnknownRegistryError,
)

logger = logging.getLogger("mkptool.publish.gate")

_SEMVER_RE = re.compile(r"^v?(\d+)\.(\d+)\.(\d+)(?:-([0-9A-Za-z.-]+))?(?:\+.*)?$")


def _release_key(version: str) -> tuple[int, int, int, int] | None:
    """Sortable key for a semver string; prereleases sort before the release."""
    m = _SEMVER_RE.match(version.strip())
    if not m:
        return None
    return (int(m.group(1)), int(m.group(2)), int(m.group(3)), 0 if m.group(4) else 1)


def newer_published_versions(local_version: str, published: Sequence[str]) -> list[str]:
    """Return published versions that sort above `local_version`."""
    local_key = _release_key(local_version)
    if local_key is None:
        return []
    newer: list[str] = []
    for version in published:
        key = _release_key(version)
        if key is not None and key > local_key:
            newer.append(version)
    return newer


async def query_all(
    registry: RegistryClient,
    names: Sequence[str],
    *,
    max_concurrency: int,
) -> list[RegistryQueryResult]:
    """
    Query the registry for every name concurrently, preserving input order.

    Outstanding queries are cancelled if the caller is cancelled.
    """
    semaphore = asyncio.Semaphore(max(1, max_concurrency))

    async def _one(name: str) -> RegistryQueryResult:
        async with semaphore:
            return await registry.query(name)

    tasks = [asyncio.create_task(_one(name)) for name in names]
    try:
        return list(await asyncio.gather(*tasks))
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


def raise_for_unknown(
    names: Sequence[str], results: Sequence[RegistryQueryResult]
) -> None:
    """Raise `UnknownRegistryError` listing every package with an unknown error."""
    failures = {
        name: result
        for name, result in zip(names, results)
        if isinstance(result, UnknownError)
    }
    if failures:
        for name, error in failures.items():
            logger.error(
                "Received an unknown error code %s for registry info %r: %s",
                error.code,
                name,
                error.message,
            )
        raise UnknownRegistryError(failures)


class PublishGate:
    """Classify workspace packages into publish candidates."""

    def __init__(
        self,
        registry: RegistryClient,
        *,
        max_concurrency: int = 8,
        metrics: PublishMetrics | None = None,
    ) -> None:
        self._registry = registry
        self._max_concurrency = max_concurrency
        self._metrics: PublishMetrics = metrics or NoOpPublishMetrics()

    async def classify(
        self, descriptors: Sequence[PackageDescriptor]
    ) -> list[PublishCandidate]:
        """
        Return the packages whose local version is not yet on the registry.

        Private packages are dropped before any query is issued. The result
        preserves the order of `descriptors`.

        Raises:
            UnknownRegistryError: If any registry answer is ambiguous. No
                candidates are returned in that case.
        """
        public = [d for d in descriptors if not d.is_private]
        for skipped in descriptors:
            if skipped.is_private:
                logger.debug("Skipping private package %s", skipped.name)

        names = [d.name for d in public]
        results = await query_all(
            self._registry, names, max_concurrency=self._max_concurrency
        )
        raise_for_unknown(names, results)

        candidates: list[PublishCandidate] = []
        for descriptor, result in zip(public, results):
            published = result.published_versions if isinstance(result, Found) else ()
            if not isinstance(result, Found):
                logger.warning("Received 404 for registry info %r", descriptor.name)

            if descriptor.local_version in published:
                logger.warning(
                    "%s is not being published because version %s is already published",
                    descriptor.name,
                    descriptor.local_version,
                )
                self._metrics.incr("publish_already_published_total")
                continue

            newer = newer_published_versions(descriptor.local_version, published)
            if newer:
                logger.warning(
                    "%s local version %s is behind the registry (newer: %s)",
                    descriptor.name,
                    descriptor.local_version,
                    ", ".join(newer),
                )

            logger.info(
                "%s is being published because our local version (%s) has not been published",
                descriptor.name,
                descriptor.local_version,
            )
            candidates.append(PublishCandidate(descriptor, published))
            self._metrics.incr("publish_candidates_total")
        return candidates
