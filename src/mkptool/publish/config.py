"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Publish settings and explicit config loading.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

DEFAULT_MAX_ATTEMPTS = 10
DEFAULT_DELAY_MS = 15000


def _env_first(
    env: Mapping[str, str], *names: str, default: str | None = None
) -> str | None:
    """
    Return the first non-empty variable in `names`.

    Args:
        env: Environment mapping to read from.
        *names: Variable names to check in order.
        default: Value returned if no non-empty variable is found.
    """
    for name in names:
        raw = env.get(name)
        if raw is None:
            continue
        value = raw.strip()
        if value:
            return value
    return default


def _env_int(env: Mapping[str, str], *names: str, default: int) -> int:
    raw = _env_first(env, *names)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{names[0]} must be an integer, got {raw!r}") from exc


@dataclass(frozen=True, slots=True)
class PublishSettings:
    """
    Explicit settings consumed by the publish flow.

    Attributes:
        max_attempts: Confirmation poll rounds before giving up.
        delay_ms: Pause between confirmation poll rounds.
        max_concurrency: Upper bound on in-flight registry queries.
        registry_backend: `cli` (package manager) or `http` (packument API).
        registry_url: Base URL used by the HTTP registry backend.
        registry_token: Optional bearer token for the HTTP registry backend.
        package_manager: Executable used by the CLI registry backend.
        registry_timeout_s: Per-query timeout in seconds.
        dispatch_backend: `repository_dispatch`, `github_output` or `noop`.
        dispatch_repo_owner: Owner of the repository receiving the dispatch.
        dispatch_repo_name: Repository receiving the dispatch.
        dispatch_token: Token authorizing the dispatch call.
        dispatch_api_url: GitHub REST API base URL.
        github_output_path: Step output file for the `github_output` backend.
        metrics_backend: `noop` or `prometheus`.
        metrics_textfile: Exposition file written by the `prometheus` backend.
    """

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    delay_ms: int = DEFAULT_DELAY_MS
    max_concurrency: int = 8

    registry_backend: str = "cli"
    registry_url: str = "https://registry.npmjs.org"
    registry_token: str | None = None
    package_manager: str = "pnpm"
    registry_timeout_s: float = 60.0

    dispatch_backend: str = "repository_dispatch"
    dispatch_repo_owner: str | None = None
    dispatch_repo_name: str | None = None
    dispatch_token: str | None = None
    dispatch_api_url: str = "https://api.github.com"
    github_output_path: str | None = None

    metrics_backend: str = "noop"
    metrics_textfile: str | None = None

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.delay_ms < 0:
            raise ValueError("delay_ms must be >= 0")
        if self.max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")

    @property
    def delay_s(self) -> float:
        return self.delay_ms / 1000.0

    @staticmethod
    def from_env(env: Mapping[str, str] | None = None) -> "PublishSettings":
        """Load settings from environment variables."""
        source = os.environ if env is None else env
        return PublishSettings(
            max_attempts=_env_int(
                source,
                "MKPTOOL_POLL_MAX_ATTEMPTS",
                "PUBLISH_POLL_MAX_ATTEMPTS",
                default=DEFAULT_MAX_ATTEMPTS,
            ),
            delay_ms=_env_int(
                source,
                "MKPTOOL_POLL_DELAY_MS",
                "PUBLISH_POLL_DELAY_MS",
                default=DEFAULT_DELAY_MS,
            ),
            max_concurrency=_env_int(
                source, "MKPTOOL_REGISTRY_CONCURRENCY", default=8
            ),
            registry_backend=(
                _env_first(source, "MKPTOOL_REGISTRY_BACKEND", default="cli") or "cli"
            ).lower(),
            registry_url=_env_first(
                source, "MKPTOOL_REGISTRY_URL", default="https://registry.npmjs.org"
            )
            or "https://registry.npmjs.org",
            registry_token=_env_first(source, "MKPTOOL_REGISTRY_TOKEN"),
            package_manager=_env_first(
                source, "MKPTOOL_PACKAGE_MANAGER", default="pnpm"
            )
            or "pnpm",
            registry_timeout_s=float(
                _env_first(source, "MKPTOOL_REGISTRY_TIMEOUT_S", default="60") or "60"
            ),
            dispatch_backend=(
                _env_first(
                    source, "MKPTOOL_DISPATCH_BACKEND", default="repository_dispatch"
                )
                or "repository_dispatch"
            ).lower(),
            dispatch_repo_owner=_env_first(source, "DISPATCH_REPO_OWNER"),
            dispatch_repo_name=_env_first(source, "DISPATCH_REPO_NAME"),
            dispatch_token=_env_first(source, "DISPATCH_GITHUB_TOKEN"),
            dispatch_api_url=_env_first(
                source, "MKPTOOL_GITHUB_API_URL", default="https://api.github.com"
            )
            or "https://api.github.com",
            github_output_path=_env_first(source, "GITHUB_OUTPUT"),
            metrics_backend=(
                _env_first(source, "MKPTOOL_METRICS_BACKEND", default="noop") or "noop"
            ).lower(),
            metrics_textfile=_env_first(source, "MKPTOOL_METRICS_TEXTFILE"),
        )
