"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Value types and error hierarchy for the publish flow.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Union

DISPATCH_EVENT_TYPE = "publish_packages"

# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class PackageDescriptor:
    """
    One local workspace package considered for publishing.

    Attributes:
        name: Registry package name, unique within one publish run.
        local_version: Version declared in the local manifest.
        directory: Package directory relative to the workspace root.
        is_private: Private packages are never published.
    """

    name: str
    local_version: str
    directory: str
    is_private: bool = False


# ---------------------------------------------------------------------------
# Registry query results
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Found:
    """Registry knows the package; `published_versions` is ordered and unique."""

    published_versions: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "published_versions",
            tuple(dict.fromkeys(self.published_versions)),
        )

    def contains(self, version: str) -> bool:
        return version in self.published_versions


@dataclass(frozen=True, slots=True)
class NotFound:
    """Registry has no such package (or returned an empty body)."""


@dataclass(frozen=True, slots=True)
class UnknownError:
    """Any registry failure that is not a plain not-found."""

    code: str
    message: str = ""

    def describe(self) -> str:
        if self.message:
            return f"{self.code}: {self.message}"
        return self.code


RegistryQueryResult = Union[Found, NotFound, UnknownError]


# ---------------------------------------------------------------------------
# Derived records
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class PublishCandidate:
    """A package whose local version is missing from the registry."""

    descriptor: PackageDescriptor
    published_versions: tuple[str, ...] = ()

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def local_version(self) -> str:
        return self.descriptor.local_version

    @property
    def directory(self) -> str:
        return self.descriptor.directory

    def __str__(self) -> str:
        return f"{self.name}@{self.local_version}"


@dataclass(frozen=True, slots=True)
class RunContext:
    """Source revision the dispatched publish should build from."""

    branch: str
    commit: str


@dataclass(frozen=True, slots=True)
class DispatchRequest:
    """
    Flattened candidate list plus run metadata handed to a dispatch notifier.

    Attributes:
        branch: Source branch name.
        commit: Source commit identifier.
        candidates: Packages the external publisher should release.
    """

    branch: str
    commit: str
    candidates: tuple[PublishCandidate, ...] = field(default_factory=tuple)

    @property
    def package_names(self) -> list[str]:
        return [candidate.name for candidate in self.candidates]

    def client_payload(self) -> dict[str, Any]:
        """Return the payload body consumed by the publishing workflow."""
        return {
            "packages": [
                {
                    "packageName": candidate.name,
                    "packageDir": candidate.directory,
                    "localVersion": candidate.local_version,
                }
                for candidate in self.candidates
            ],
            "branch": self.branch,
            "commit": self.commit,
        }

    def to_payload(self) -> dict[str, Any]:
        """Return the full `repository_dispatch` request body."""
        return {
            "event_type": DISPATCH_EVENT_TYPE,
            "client_payload": self.client_payload(),
        }


@dataclass(frozen=True, slots=True)
class PublishOutcome:
    """Final per-package result of one publish run."""

    name: str
    new_version: str
    published: bool

    def __str__(self) -> str:
        return f"{self.name}@{self.new_version}"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class PublishError(RuntimeError):
    """Base publish flow error."""


class UnknownRegistryError(PublishError):
    """Raised when the registry answers with anything other than found/not-found."""

    def __init__(self, failures: Mapping[str, UnknownError]) -> None:
        self.failures = dict(failures)
        details = ", ".join(
            f"{name} ({error.describe()})" for name, error in self.failures.items()
        )
        super().__init__(f"Unknown registry error for: {details}")

    @property
    def package_names(self) -> list[str]:
        return list(self.failures)


class DispatchError(PublishError):
    """Raised when the external publish trigger cannot be notified."""


class _UnconfirmedError(PublishError):
    prefix = "Unconfirmed packages"

    def __init__(self, still_unpublished: tuple[PublishCandidate, ...]) -> None:
        self.still_unpublished = tuple(still_unpublished)
        listed = ", ".join(str(candidate) for candidate in self.still_unpublished)
        super().__init__(f"{self.prefix}: {listed}")

    @property
    def package_names(self) -> list[str]:
        return [candidate.name for candidate in self.still_unpublished]


class PublishTimeoutError(_UnconfirmedError):
    """Raised when polling exhausts its attempts with packages still missing."""

    prefix = "Timed out waiting for registry to list"


class PublishCancelledError(_UnconfirmedError):
    """Raised when the caller cancels the confirmation wait."""

    prefix = "Confirmation cancelled before registry listed"
