"""
Cancellable one-shot lockout timer.

A lockout ends through a single deferred callback rather than polling. The
timer owns the asyncio task so the state machine can cancel a running
lockout (CLEAR_STATS, page teardown) and finalize it deterministically.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING

import structlog

logger = structlog.get_logger()

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable


class LockoutTimer:
    """Fire an async callback once after a delay, unless cancelled first."""

    def __init__(self) -> None:
        self._active_task: asyncio.Task[None] | None = None
        self._deadline: float | None = None

    @property
    def running(self) -> bool:
        return self._active_task is not None and not self._active_task.done()

    @property
    def remaining_seconds(self) -> float:
        """Seconds until the callback fires (0 when idle)."""
        if not self.running or self._deadline is None:
            return 0.0
        return max(0.0, self._deadline - time.monotonic())

    def start(self, delay_ms: int, on_expire: Callable[[], Awaitable[None]]) -> None:
        """Schedule on_expire after delay_ms, replacing any pending schedule."""
        self.cancel()
        seconds = max(0, delay_ms) / 1000
        self._deadline = time.monotonic() + seconds
        self._active_task = asyncio.create_task(self._run(seconds, on_expire))

    def cancel(self) -> bool:
        """Cancel the pending callback. Return True if one was pending."""
        pending = self.running
        if pending:
            self._active_task.cancel()
        self._active_task = None
        self._deadline = None
        return pending

    async def _run(self, seconds: float, on_expire: Callable[[], Awaitable[None]]) -> None:
        try:
            await asyncio.sleep(seconds)
            # detach first so the callback may call cancel() without cancelling itself
            self._active_task = None
            self._deadline = None
            await on_expire()
        except asyncio.CancelledError:
            pass
        except (RuntimeError, OSError, ConnectionError, ValueError):  # fmt: skip
            logger.exception("lockout timer callback failed")
