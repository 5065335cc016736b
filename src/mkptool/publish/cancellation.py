"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Cooperative cancellation token for long-running confirmation waits.
"""

from __future__ import annotations

import asyncio


class CancellationToken:
    """
    One-shot cancellation signal shared between a caller and a poll loop.

    The loop sleeps through `sleep()`, which returns early once `cancel()` is
    called. The token must be created and used inside one event loop.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    def cancel(self, reason: str | None = None) -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def sleep(self, delay_s: float) -> bool:
        """
        Sleep for `delay_s` seconds or until cancelled.

        Returns:
            ``True`` when the sleep was interrupted by cancellation.
        """
        if self.cancelled:
            return True
        if delay_s <= 0:
            return False
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay_s)
        except asyncio.TimeoutError:
            return False
        return True
