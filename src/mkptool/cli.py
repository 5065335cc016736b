"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Command-line entrypoint: `mkptool publish`.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
import sys
from collections.abc import Sequence
from dataclasses import replace
from pathlib import Path

from .git import GitError, GitTagger
from .publish import (
    CancellationToken,
    DispatchError,
    NoopDispatchNotifier,
    PackageDescriptor,
    PublishCancelledError,
    PublishMetrics,
    PublishOrchestrator,
    PublishOutcome,
    PublishSettings,
    PublishTimeoutError,
    UnknownRegistryError,
    create_metrics,
    create_orchestrator,
)
from .workspace import WorkspaceError, discover_workspace

logger = logging.getLogger("mkptool.cli")

DEFAULT_SKIP_PACKAGES = ("mkptool",)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2


def _configure_logging() -> None:
    level_name = os.getenv("MKPTOOL_LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")


def _parse_skip(value: str | None) -> list[str]:
    if value is None:
        return list(DEFAULT_SKIP_PACKAGES)
    return [item.strip() for item in value.split(",") if item.strip()]


def _log_releases(items: Sequence[object]) -> None:
    logger.info("\n".join(str(item) for item in items))


def _install_signal_handlers(token: CancellationToken) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, token.cancel, f"received {sig.name}")
        except (NotImplementedError, RuntimeError):  # pragma: no cover - platform specific
            return


async def run_publish(
    *,
    cwd: str | Path,
    skip_packages: Sequence[str],
    git_tag: bool,
    settings: PublishSettings,
    dry_run: bool = False,
    orchestrator: PublishOrchestrator | None = None,
    tagger: GitTagger | None = None,
    metrics: PublishMetrics | None = None,
    cancel_token: CancellationToken | None = None,
) -> int:
    """
    Run one publish for the workspace at `cwd` and return the exit status.

    A dry run classifies and logs the would-be dispatch, then stops: nothing is
    dispatched, confirmed or tagged.
    """
    workspace = discover_workspace(cwd)
    logger.info("Skipping packages: %s", ", ".join(skip_packages) or "(none)")
    descriptors = workspace.without(skip_packages)
    for descriptor in descriptors:
        logger.debug("Workspace package %s@%s", descriptor.name, descriptor.local_version)

    if metrics is None:
        metrics = create_metrics(settings)
    if orchestrator is None:
        orchestrator = create_orchestrator(
            settings,
            cwd=workspace.root,
            notifier=NoopDispatchNotifier() if dry_run else None,
            metrics=metrics,
        )
    token = cancel_token or CancellationToken()

    try:
        return await _publish(
            orchestrator,
            descriptors,
            token,
            dry_run=dry_run,
            git_tag=git_tag,
            tagger=tagger or GitTagger(workspace.root),
            single_package=workspace.is_single_package,
        )
    finally:
        metrics.flush()


async def _publish(
    orchestrator: PublishOrchestrator,
    descriptors: Sequence[PackageDescriptor],
    token: CancellationToken,
    *,
    dry_run: bool,
    git_tag: bool,
    tagger: GitTagger,
    single_package: bool,
) -> int:
    try:
        outcomes = await orchestrator.run(
            descriptors, cancel_token=token, confirm=not dry_run
        )
    except (PublishTimeoutError, PublishCancelledError) as exc:
        logger.error("packages failed to publish:")
        _log_releases(exc.still_unpublished)
        logger.error("%s", exc)
        return EXIT_FAILED
    except (UnknownRegistryError, DispatchError) as exc:
        logger.error("%s", exc)
        return EXIT_FAILED

    if not outcomes:
        logger.warning("No unpublished projects to publish")
        return EXIT_OK

    if dry_run:
        logger.info("Dry run: packages that would be published:")
        _log_releases(outcomes)
        return EXIT_OK

    successful: list[PublishOutcome] = [o for o in outcomes if o.published]
    unsuccessful: list[PublishOutcome] = [o for o in outcomes if not o.published]

    if successful:
        logger.info("packages published successfully:")
        _log_releases(successful)
        if git_tag:
            logger.info("Creating git tag%s...", "s" if len(successful) > 1 else "")
            try:
                await tagger.tag(successful, single_package=single_package)
            except GitError as exc:
                logger.error("%s", exc)
                return EXIT_FAILED

    if unsuccessful:
        logger.error("packages failed to publish:")
        _log_releases(unsuccessful)
        return EXIT_FAILED
    return EXIT_OK


async def _publish_main(
    args: argparse.Namespace, settings: PublishSettings, metrics: PublishMetrics
) -> int:
    token = CancellationToken()
    _install_signal_handlers(token)
    return await run_publish(
        cwd=args.cwd,
        skip_packages=_parse_skip(args.skip),
        git_tag=args.git_tag,
        settings=settings,
        dry_run=args.dry_run,
        metrics=metrics,
        cancel_token=token,
    )


def publish_command(args: argparse.Namespace) -> int:
    """Publish unpublished workspace packages through the external publisher."""
    try:
        settings = PublishSettings.from_env()
        overrides: dict[str, int] = {}
        if args.max_attempts is not None:
            overrides["max_attempts"] = args.max_attempts
        if args.delay_ms is not None:
            overrides["delay_ms"] = args.delay_ms
        if overrides:
            settings = replace(settings, **overrides)
        metrics = create_metrics(settings)
    except (ValueError, RuntimeError) as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_USAGE

    try:
        return asyncio.run(_publish_main(args, settings, metrics))
    except WorkspaceError as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_USAGE
    except ValueError as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_USAGE


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mkptool", description="Helper tool for marketplace")
    subparsers = parser.add_subparsers(dest="command", required=True)

    publish_parser = subparsers.add_parser("publish", help="Start internal npm package publish")
    publish_parser.add_argument(
        "--skip",
        default=None,
        help="Comma-separated list of packages to skip publishing (default: mkptool)",
    )
    publish_parser.add_argument(
        "--no-git-tag",
        dest="git_tag",
        action="store_false",
        help="Do not create git tags for published packages",
    )
    publish_parser.add_argument("--cwd", default=".", help="Workspace root")
    publish_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List the packages that would be published without dispatching or tagging",
    )
    publish_parser.add_argument("--max-attempts", type=int, default=None)
    publish_parser.add_argument("--delay-ms", type=int, default=None)
    publish_parser.set_defaults(func=publish_command)
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint and command registration."""
    _configure_logging()
    parser = build_parser()
    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
