"""Lockout actuation: disable the new-game controls and announce the lockout.

The actuator owns the single lockout timer. Engaging is idempotent: a
trigger that arrives while a lockout is running changes nothing.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

import structlog

from chessbreak.logic.enums import LockoutSignalType
from chessbreak.logic.policy import lockout_duration_ms
from chessbreak.logic.state import epoch_ms
from chessbreak.logic.timer import LockoutTimer
from chessbreak.messaging.types import LockoutSignal
from chessbreak.page.markers import DISABLED_MARKER, NEW_GAME_CONTROL_SELECTORS

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from chessbreak.logic.settings import TiltOptions
    from chessbreak.logic.state import LockoutState, TiltState
    from chessbreak.page.dom import PageDocument, PageElement

logger = structlog.get_logger()


class NotificationSink(Protocol):
    """Receiver of lockout signals (the notification dispatcher)."""

    async def notify(self, signal: LockoutSignal) -> None: ...


class LockoutActuator:
    """Applies and removes the disabled marker and drives the lockout timer.

    ``persist`` is awaited after each change to the lockout window;
    ``on_released`` runs when a lockout ends, before that final persist.
    """

    def __init__(
        self,
        document: PageDocument,
        state: TiltState,
        sink: NotificationSink,
        *,
        persist: Callable[[], Awaitable[None]],
        on_released: Callable[[], Awaitable[None]] | None = None,
        clock: Callable[[], int] = epoch_ms,
        marker: str = DISABLED_MARKER,
    ) -> None:
        self._document = document
        self._state = state
        self._sink = sink
        self._persist = persist
        self._on_released = on_released
        self._clock = clock
        self.marker = marker
        self.notifications_enabled = True
        self._timer = LockoutTimer()
        self._controls: list[PageElement] = []
        self._applied = False

    @property
    def _lockout(self) -> LockoutState:
        return self._state.lockout

    @property
    def applied(self) -> bool:
        return self._applied

    @property
    def timer(self) -> LockoutTimer:
        return self._timer

    def controls(self) -> list[PageElement]:
        """New-game controls, looked up once and reused for the rest of the page's life."""
        if not self._controls:
            found: list[PageElement] = []
            for selector in NEW_GAME_CONTROL_SELECTORS:
                for element in self._document.select(selector):
                    if not any(element is known for known in found):
                        found.append(element)
            self._controls = found
        return self._controls

    async def engage(self, options: TiltOptions) -> bool:
        """Start a lockout. Return False when one is already active."""
        if self._lockout.active:
            logger.info("lockout already active, trigger ignored", remaining_ms=self.remaining_ms())
            return False
        duration = lockout_duration_ms(options, self._lockout.cumulative_tilt_count)
        self._lockout.cumulative_tilt_count += 1
        self._lockout.begin(self._clock(), duration)
        self.notifications_enabled = options.show_notifications
        await self._mark(enabled=True)
        await self._persist()
        logger.info(
            "lockout started",
            duration_ms=duration,
            tilt_count=self._lockout.cumulative_tilt_count,
            controls=len(self._controls),
        )
        await self._emit(LockoutSignalType.TILT_STARTED, duration)
        self._timer.start(duration, self.release)
        return True

    async def resume(self, options: TiltOptions) -> bool:
        """Re-enter a persisted lockout whose window has not yet closed."""
        remaining = self.remaining_ms()
        if remaining <= 0:
            if self._lockout.started_at > 0:
                logger.debug("persisted lockout window already closed", ends_at=self._lockout.ends_at)
                self._lockout.finish()
                await self._persist()
            return False
        self._lockout.active = True
        self.notifications_enabled = options.show_notifications
        await self._mark(enabled=True)
        logger.info("lockout resumed", remaining_ms=remaining, duration_ms=self._lockout.duration_ms)
        self._timer.start(remaining, self.release)
        return True

    async def release(self) -> bool:
        """End the active lockout now. Return False when none is active."""
        self._timer.cancel()
        if not self._lockout.active:
            return False
        duration = self._lockout.duration_ms
        self._lockout.finish()
        await self._mark(enabled=False)
        logger.info("lockout ended", duration_ms=duration)
        await self._emit(LockoutSignalType.TILT_ENDED, duration)
        if self._on_released is not None:
            await self._on_released()
        await self._persist()
        return True

    async def ensure_applied(self) -> None:
        """Mark controls that were missing when the lockout began."""
        if self._lockout.active and not self._applied:
            await self._mark(enabled=True)

    def suspend(self) -> bool:
        """Stop the timer without finalizing; the persisted window lets a later page resume."""
        return self._timer.cancel()

    def remaining_ms(self) -> int:
        return self._lockout.remaining_ms(self._clock())

    async def _mark(self, *, enabled: bool) -> None:
        if enabled:
            controls = self.controls()
            if not controls:
                logger.debug("no new-game controls on the page yet")
                return
            self._applied = True
            await self._document.set_marker(controls, self.marker, enabled=True)
        elif self._applied:
            self._applied = False
            await self._document.set_marker(self._controls, self.marker, enabled=False)

    async def _emit(self, signal_type: LockoutSignalType, duration_ms: int) -> None:
        if not self.notifications_enabled:
            return
        await self._sink.notify(LockoutSignal.create(signal_type, duration_ms))
