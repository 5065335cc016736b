"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Dispatch notifiers: hand the candidate list to the external publisher.

A notifier only triggers the remote publish; success means the trigger was
accepted, not that anything is on the registry yet.
"""

from __future__ import annotations

import asyncio
import json
import logging
import urllib.error
import urllib.request
import uuid
from collections.abc import Callable
from pathlib import Path
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, Field

from .types import DISPATCH_EVENT_TYPE, DispatchError, DispatchRequest

logger = logging.getLogger("mkptool.publish.dispatch")


@runtime_checkable
class DispatchNotifier(Protocol):
    """Capability interface for triggering the external publish."""

    async def dispatch(self, request: DispatchRequest) -> None:
        """Notify the external publisher, raising `DispatchError` on rejection."""
        ...


class DispatchPackage(BaseModel):
    """One package entry of the dispatch wire payload."""

    packageName: str
    packageDir: str
    localVersion: str


class DispatchClientPayload(BaseModel):
    packages: list[DispatchPackage] = Field(default_factory=list)
    branch: str
    commit: str


class RepositoryDispatchBody(BaseModel):
    """Body of `POST /repos/{owner}/{repo}/dispatches`."""

    event_type: str = DISPATCH_EVENT_TYPE
    client_payload: DispatchClientPayload

    @classmethod
    def from_request(cls, request: DispatchRequest) -> "RepositoryDispatchBody":
        return cls.model_validate(request.to_payload())


def _require_context(request: DispatchRequest) -> None:
    if not request.branch or not request.commit:
        raise DispatchError("Dispatch requires a non-empty branch and commit")
    if not request.candidates:
        raise DispatchError("Dispatch requires at least one package")


class NoopDispatchNotifier:
    """Records requests without notifying anything; used for dry runs and tests."""

    def __init__(self) -> None:
        self.requests: list[DispatchRequest] = []

    async def dispatch(self, request: DispatchRequest) -> None:
        _require_context(request)
        self.requests.append(request)
        logger.info(
            "Dry run: would dispatch %d package(s): %s",
            len(request.candidates),
            ", ".join(request.package_names),
        )


class RepositoryDispatchNotifier:
    """Trigger a GitHub `repository_dispatch` event in the publishing repository."""

    def __init__(
        self,
        *,
        owner: str | None,
        repo: str | None,
        token: str | None,
        api_url: str = "https://api.github.com",
        timeout_s: float = 30.0,
        post: Callable[[str, bytes, dict[str, str]], int] | None = None,
    ) -> None:
        self.owner = owner
        self.repo = repo
        self.token = token
        self.api_url = api_url.rstrip("/")
        self.timeout_s = timeout_s
        self._post = post or self.http_post

    @property
    def url(self) -> str:
        return f"{self.api_url}/repos/{self.owner}/{self.repo}/dispatches"

    async def dispatch(self, request: DispatchRequest) -> None:
        if not self.owner or not self.repo or not self.token:
            raise DispatchError(
                "DISPATCH_REPO_OWNER, DISPATCH_REPO_NAME, or DISPATCH_GITHUB_TOKEN is not set"
            )
        _require_context(request)

        body = RepositoryDispatchBody.from_request(request)
        payload = body.model_dump_json().encode("utf-8")
        headers = {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/vnd.github+json",
            "Content-Type": "application/json",
            "X-Request-Id": uuid.uuid4().hex,
        }
        try:
            status = await asyncio.to_thread(self._post, self.url, payload, headers)
        except urllib.error.URLError as e:
            raise DispatchError(
                f"Network error triggering repository dispatch: {e.reason}"
            ) from e
        except OSError as e:
            raise DispatchError(f"Network error triggering repository dispatch: {e}") from e

        if status < 200 or status >= 300:
            raise DispatchError(f"Failed to trigger repository dispatch: HTTP {status}")

        logger.info(
            "Triggered repository dispatch for %d packages", len(request.candidates)
        )

    def http_post(self, url: str, payload: bytes, headers: dict[str, str]) -> int:
        req = urllib.request.Request(url, data=payload, method="POST", headers=headers)
        try:
            with urllib.request.urlopen(req, timeout=self.timeout_s) as resp:  # noqa: S310
                return resp.status
        except urllib.error.HTTPError as e:
            body = ""
            try:
                body = e.read().decode("utf-8", errors="replace")
            except Exception:  # noqa: BLE001
                body = ""
            logger.error("Repository dispatch rejected: HTTP %s %s", e.code, body or e.reason)
            return e.code


class GithubOutputDispatchNotifier:
    """
    Hand the candidates to the next CI step through `$GITHUB_OUTPUT`.

    Writes `packages`, `branch` and `commit` step outputs; the workflow's
    publish job consumes them.
    """

    def __init__(self, output_path: str | Path | None) -> None:
        self.output_path = Path(output_path) if output_path else None

    async def dispatch(self, request: DispatchRequest) -> None:
        output_path = self.output_path
        if output_path is None:
            raise DispatchError("GITHUB_OUTPUT is not set")
        _require_context(request)

        body = RepositoryDispatchBody.from_request(request)
        packages = json.dumps(
            [package.model_dump() for package in body.client_payload.packages],
            separators=(",", ":"),
        )
        lines = [
            f"packages={packages}",
            f"branch={request.branch}",
            f"commit={request.commit}",
        ]
        try:
            await asyncio.to_thread(_append, output_path, "\n".join(lines) + "\n")
        except OSError as exc:
            raise DispatchError(f"Cannot write step output {output_path}: {exc}") from exc
        logger.info(
            "Wrote step outputs for %d packages to %s",
            len(request.candidates),
            output_path,
        )


def _append(path: Path, text: str) -> None:
    with path.open("a", encoding="utf-8") as handle:
        handle.write(text)
