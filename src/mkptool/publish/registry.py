"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Registry clients that report which versions of a package are published.

Both clients normalize the registry answer into one of three values:

- ``Found`` with the ordered published versions,
- ``NotFound`` for a 404 or an empty body (some registry proxies answer a
  missing package with an empty response instead of a proper 404),
- ``UnknownError`` for everything else.

Clients never retry; the confirmation poller owns the retry loop.
"""

from __future__ import annotations

import asyncio
import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, ValidationError

from .types import Found, NotFound, RegistryQueryResult, UnknownError

logger = logging.getLogger("mkptool.publish.registry")

NOT_FOUND_CODE = "E404"
_SNIPPET_CHARS = 500


@runtime_checkable
class RegistryClient(Protocol):
    """Read-only lookup of one package on a registry."""

    async def query(self, package_name: str) -> RegistryQueryResult:
        """Return what the registry knows about `package_name`."""
        ...


class _RegistryErrorBody(BaseModel):
    """Error object emitted by npm-compatible clients with `--json`."""

    model_config = ConfigDict(extra="allow")

    code: str | int | None = None
    summary: str | None = None
    detail: str | None = None


class _PackageInfo(BaseModel):
    """
    Subset of package metadata shared by `pnpm info --json` and packuments.

    `versions` is a list for the CLI, a single string when only one version
    exists, and a version-keyed mapping in the registry packument.
    """

    model_config = ConfigDict(extra="allow")

    name: str | None = None
    versions: list[str] | str | dict[str, Any] | None = None
    error: _RegistryErrorBody | None = None

    def published_versions(self) -> tuple[str, ...]:
        if self.versions is None:
            return ()
        if isinstance(self.versions, str):
            return (self.versions,)
        return tuple(self.versions)


def _snippet(text: str) -> str:
    text = text.strip()
    if len(text) > _SNIPPET_CHARS:
        return text[:_SNIPPET_CHARS] + "..."
    return text


def parse_package_info(raw: str) -> RegistryQueryResult:
    """
    Normalize a registry JSON document into a query result.

    Args:
        raw: Response body or CLI stdout.

    Returns:
        `NotFound` for an empty body or an `E404` error object, `Found` for
        package metadata, `UnknownError` otherwise.
    """
    if not raw.strip():
        return NotFound()
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError:
        return UnknownError("EJSONPARSE", f"Invalid JSON: {_snippet(raw)}")
    if not isinstance(decoded, dict):
        return UnknownError("EINVALID", f"Unexpected document: {_snippet(raw)}")
    try:
        info = _PackageInfo.model_validate(decoded)
    except ValidationError as exc:
        return UnknownError("EINVALID", str(exc))

    if info.error is not None:
        code = str(info.error.code or "EUNKNOWN")
        if code == NOT_FOUND_CODE:
            return NotFound()
        message = " ".join(
            part for part in (info.error.summary, info.error.detail) if part
        )
        return UnknownError(code, message)
    return Found(info.published_versions())


class PackageManagerRegistryClient:
    """Query the registry through the package manager CLI (`pnpm info --json`)."""

    def __init__(self, *, executable: str = "pnpm", timeout_s: float = 60.0) -> None:
        self.executable = executable
        self.timeout_s = timeout_s

    async def query(self, package_name: str) -> RegistryQueryResult:
        logger.info("%s info %s", self.executable, package_name)
        try:
            proc = await asyncio.create_subprocess_exec(
                self.executable,
                "info",
                package_name,
                "--json",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            return UnknownError("ESPAWN", f"Cannot run {self.executable}: {exc}")

        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(), timeout=self.timeout_s
            )
        except asyncio.TimeoutError:
            await self._kill(proc)
            return UnknownError(
                "ETIMEDOUT",
                f"{self.executable} info {package_name} exceeded {self.timeout_s}s",
            )
        except asyncio.CancelledError:
            await self._kill(proc)
            raise

        return self.interpret(
            stdout.decode("utf-8", errors="replace"),
            stderr.decode("utf-8", errors="replace"),
            proc.returncode or 0,
        )

    @staticmethod
    def interpret(stdout: str, stderr: str, returncode: int) -> RegistryQueryResult:
        """Map CLI output and exit status to a query result."""
        if stdout.strip():
            return parse_package_info(stdout)
        if returncode == 0:
            return NotFound()
        if NOT_FOUND_CODE in stderr or "404 Not Found" in stderr:
            return NotFound()
        return UnknownError(f"EEXIT{returncode}", _snippet(stderr))

    @staticmethod
    async def _kill(proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is None:
            proc.kill()
            await proc.wait()


class HttpRegistryClient:
    """Query the registry packument endpoint (`GET <registry>/<name>`)."""

    def __init__(
        self,
        *,
        base_url: str = "https://registry.npmjs.org",
        token: str | None = None,
        timeout_s: float = 30.0,
        fetch: Callable[[str], tuple[int, bytes]] | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout_s = timeout_s
        self._fetch = fetch or self.http_get

    def package_url(self, package_name: str) -> str:
        return f"{self.base_url}/{urllib.parse.quote(package_name, safe='@')}"

    async def query(self, package_name: str) -> RegistryQueryResult:
        url = self.package_url(package_name)
        logger.info("GET %s", url)
        try:
            status, body = await asyncio.to_thread(self._fetch, url)
        except urllib.error.URLError as exc:
            return UnknownError("ENETWORK", f"{url}: {exc.reason}")
        except (OSError, ValueError) as exc:
            return UnknownError("ENETWORK", f"{url}: {exc}")

        text = body.decode("utf-8", errors="replace")
        if status == 404:
            return NotFound()
        if status >= 400:
            return UnknownError(f"E{status}", _snippet(text))
        return parse_package_info(text)

    def http_get(self, url: str) -> tuple[int, bytes]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        req = urllib.request.Request(url, method="GET", headers=headers)
        try:
            with urllib.request.urlopen(req, timeout=self.timeout_s) as resp:  # noqa: S310
                return resp.status, resp.read()
        except urllib.error.HTTPError as e:
            body = b""
            try:
                body = e.read()
            except Exception:  # noqa: BLE001
                body = b""
            return e.code, body
