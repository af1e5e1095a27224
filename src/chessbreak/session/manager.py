"""The game-lifecycle and tilt-decision state machine for one page instance.

TiltSessionManager consumes mutation batches from the page, drives the
lifecycle detector, records outcomes the viewer took part in, decides on
lockouts and writes the full state snapshot back to the session store
after every transition.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from chessbreak.logic.classifier import classify_outcome, is_participant
from chessbreak.logic.exceptions import IdentityNotFoundError
from chessbreak.logic.policy import evaluate_tilt_trigger
from chessbreak.logic.rating import extract_signed_delta, parse_displayed_rating
from chessbreak.logic.settings import TiltOptions
from chessbreak.logic.state import OutcomeRecord, PlayerSlots, TiltState, epoch_ms, prune_history
from chessbreak.page.actuator import LockoutActuator
from chessbreak.page.detector import LifecycleDetector
from chessbreak.page.dom import iter_text
from chessbreak.page.markers import (
    IDENTITY_ATTRIBUTE,
    IDENTITY_SELECTOR,
    PLAYER_BLOCK_SELECTOR,
    PLAYER_NAME_SELECTOR,
    RESULT_REASON_SELECTOR,
    RESULT_TITLE_SELECTOR,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from chessbreak.logic.enums import GamePhase
    from chessbreak.logic.rating import RatingDeltaExtractor
    from chessbreak.page.actuator import NotificationSink
    from chessbreak.page.dom import MutationBatch, PageDocument, PageElement
    from chessbreak.session.options_store import OptionsStore
    from chessbreak.session.session_store import SessionStore

logger = structlog.get_logger()

# Start-up load retry interval while the session store is unavailable.
LOAD_RETRY_DELAY = 1.0


def resolve_identity(document: PageDocument) -> str:
    """Read the viewer's handle from the page. Raise IdentityNotFoundError if absent."""
    element = document.select_one(IDENTITY_SELECTOR)
    username = element.get(IDENTITY_ATTRIBUTE) if element is not None else None
    if username is None or not username.strip():
        raise IdentityNotFoundError(f"no {IDENTITY_ATTRIBUTE!r} attribute on {IDENTITY_SELECTOR}")
    return username.strip()


def _block_name(block: PageElement) -> str:
    name = block.select_one(PLAYER_NAME_SELECTOR)
    return (block if name is None else name).get_text().strip()


def _text_of(panel: PageElement, selector: str) -> str:
    element = panel.select_one(selector)
    return element.get_text().strip() if element is not None else ""


class TiltSessionManager:
    """
    Owns the TiltState of one page instance.

    Construction resolves the viewer identity (fatal if missing); start()
    reconciles with the stores and must complete before batches are handled.
    Several instances may share the same stores; each save writes its full
    snapshot and the last writer wins.
    """

    def __init__(
        self,
        document: PageDocument,
        *,
        options_store: OptionsStore,
        session_store: SessionStore,
        sink: NotificationSink,
        rating_extractor: RatingDeltaExtractor = extract_signed_delta,
        clock: Callable[[], int] = epoch_ms,
        load_retry_delay: float = LOAD_RETRY_DELAY,
    ) -> None:
        self.identity = resolve_identity(document)
        self._document = document
        self._options_store = options_store
        self._session_store = session_store
        self._rating_extractor = rating_extractor
        self._clock = clock
        self._load_retry_delay = load_retry_delay
        self.url: str | None = document.url
        self.options = TiltOptions()
        self.state = TiltState()
        self._started = False
        self._detector = LifecycleDetector(document, self._on_game_started, self._on_game_ended)
        self._actuator = LockoutActuator(
            document,
            self.state,
            sink,
            persist=self._persist,
            on_released=self._on_lockout_released,
            clock=clock,
        )

    @property
    def phase(self) -> GamePhase:
        return self._detector.phase

    @property
    def actuator(self) -> LockoutActuator:
        return self._actuator

    @property
    def lockout_active(self) -> bool:
        return self.state.lockout.active

    @property
    def started(self) -> bool:
        return self._started

    # ------------------------------------------------------------------
    # Start-up reconciliation
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Load options and the persisted session, reset an expired window, resume a running lockout."""
        self.options = await self._options_store.load()
        self._actuator.notifications_enabled = self.options.show_notifications
        self.state.adopt(await self._load_session())

        counters = self.state.counters
        counters.session_length_ms = self.options.session_length_ms
        now = self._clock()
        if counters.is_expired(now):
            logger.info("session window expired at start-up, resetting", session_start=counters.session_start)
            self.state.reset_session(now, keep_rating=True)
            await self._persist()

        await self._actuator.resume(self.options)
        self._started = True
        logger.info(
            "tilt state machine started",
            username=self.identity,
            streak=counters.streak,
            tilt_count=self.state.lockout.cumulative_tilt_count,
            lockout_active=self.state.lockout.active,
        )

    async def _load_session(self) -> TiltState:
        attempt = 0
        while True:
            attempt += 1
            try:
                return await self._session_store.load()
            except OSError:
                logger.exception("failed to load session state, retrying", attempt=attempt)
            await asyncio.sleep(self._load_retry_delay)

    # ------------------------------------------------------------------
    # Page signals
    # ------------------------------------------------------------------

    async def handle_batch(self, batch: MutationBatch, url: str | None = None) -> None:
        """Process one batch of page mutations."""
        if not self._started:
            raise RuntimeError("state machine not started")
        if url:
            self.url = url
        await self._actuator.ensure_applied()
        await self._detector.process(batch)

    async def _on_game_started(self) -> None:
        counters = self.state.counters
        now = self._clock()
        if counters.session_start > 0 and counters.is_expired(now):
            logger.info("session window elapsed, resetting", session_start=counters.session_start)
            self.state.reset_session(now)
        counters.session_start = now
        await self._persist()

    async def _on_game_ended(self, panel: PageElement) -> bool:
        """Record a finished game. Return False when the viewer did not play it."""
        blocks = self._document.select(PLAYER_BLOCK_SELECTOR)
        names = [_block_name(block) for block in blocks[:2]]
        if len(names) < 2 or not is_participant(self.identity, names):
            logger.info("game end ignored, viewer not a participant", players=names)
            return False

        title = _text_of(panel, RESULT_TITLE_SELECTOR)
        reason = _text_of(panel, RESULT_REASON_SELECTOR)
        outcome = classify_outcome(title)
        now = self._clock()

        rating_change = None
        if self.options.track_rating_changes:
            rating_change = self._rating_extractor(iter_text(panel))
            if rating_change is not None:
                own_block = blocks[names.index(self.identity.strip())]
                displayed = parse_displayed_rating(own_block.get_text())
                rating = self.state.rating.apply_delta(rating_change, displayed)
                logger.info("rating change detected", delta=rating_change, rating=rating)

        record = OutcomeRecord(
            result=outcome,
            reason=reason,
            timestamp=now,
            players=PlayerSlots(top=names[0], bottom=names[1], username=self.identity),
            rating_change=rating_change,
            url=self.url,
        )
        self.state.session_games.append(record)
        if self.options.store_game_history:
            self.state.history.append(record)

        counters = self.state.counters
        counters.record(outcome)
        logger.info(
            "game recorded",
            outcome=outcome,
            reason=reason,
            streak=counters.streak,
            wins=counters.wins,
            losses=counters.losses,
            draws=counters.draws,
        )

        trigger = evaluate_tilt_trigger(counters, self.state.rating, self.options)
        if trigger is not None:
            logger.info("tilt triggered", trigger=trigger)
            await self._actuator.engage(self.options)

        await self._persist()

        # after accounting, so the finished game still counts toward the old window
        now = self._clock()
        if counters.is_expired(now):
            logger.info("session window elapsed after game, resetting", session_start=counters.session_start)
            self.state.reset_session(now)
            await self._persist()
        return True

    async def _on_lockout_released(self) -> None:
        if self.options.auto_reset_stats:
            logger.info("resetting session counters after lockout")
            self.state.counters.clear_counts()

    # ------------------------------------------------------------------
    # Control signals
    # ------------------------------------------------------------------

    async def options_updated(self) -> None:
        """Refresh the live policy scalars; counters in flight are left alone."""
        fresh = await self._options_store.load()
        self.options = self.options.with_live_fields(fresh)
        self.state.counters.session_length_ms = self.options.session_length_ms
        logger.info(
            "options refreshed",
            max_losses=self.options.max_losses,
            session_length=self.options.session_length,
            timeout_duration=self.options.timeout_duration,
        )

    async def clear_stats(self) -> None:
        """Zero all session-scoped state. A running lockout is ended immediately."""
        self.state.reset_session(self._clock())
        released = await self._actuator.release()
        if not released:
            self.state.lockout.finish()
            await self._persist()
        logger.info("session stats cleared", lockout_cancelled=released)

    def shutdown(self) -> None:
        """Stop the lockout timer; the persisted window lets the next page instance resume it."""
        if self._actuator.suspend():
            logger.info("lockout timer suspended", remaining_ms=self._actuator.remaining_ms())

    async def _persist(self) -> None:
        self.state.history = prune_history(self.state.history, self._clock(), self.options.retention_ms)
        try:
            await self._session_store.save(self.state)
        except OSError:
            logger.exception("failed to persist session state")
