"""Game lifecycle detection from mutation batches.

The page gives no explicit "game started" or "game over" events. The
detector infers them: an active-game affordance being present means a game
is running, and a result panel being inserted means one just ended.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from chessbreak.logic.enums import GamePhase
from chessbreak.page.dom import node_id
from chessbreak.page.markers import ACTIVE_GAME_SELECTOR, RESULT_PANEL_SELECTOR

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable

    from chessbreak.page.dom import MutationBatch, PageDocument, PageElement

logger = structlog.get_logger()


def _find(element: PageElement, selector: str) -> PageElement | None:
    """The element itself when it matches, otherwise its first matching descendant."""
    if element.css.match(selector):
        return element
    return element.select_one(selector)


def find_result_panels(added: Iterable[PageElement]) -> list[PageElement]:
    """Result panels among inserted nodes, either the node itself or nested inside it.

    A panel reachable through more than one inserted node is returned once.
    """
    panels: list[PageElement] = []
    for element in added:
        panel = _find(element, RESULT_PANEL_SELECTOR)
        if panel is not None and not any(panel is seen for seen in panels):
            panels.append(panel)
    return panels


class LifecycleDetector:
    """Explicit NotStarted -> InProgress -> Ended -> InProgress ... phase machine.

    Leaving Ended needs a fresh affordance: either the game controls are
    inserted by a batch, or they were seen absent since the game ended.
    Controls left over from the finished game never start a new one.
    """

    def __init__(
        self,
        document: PageDocument,
        on_game_started: Callable[[], Awaitable[None]],
        on_game_ended: Callable[[PageElement], Awaitable[bool]],
    ) -> None:
        self._document = document
        self._on_game_started = on_game_started
        self._on_game_ended = on_game_ended
        self._phase = GamePhase.NOT_STARTED
        self._evaluations = 0
        self._handled_panel: PageElement | None = None
        self._controls_gone_since_end = False

    @property
    def phase(self) -> GamePhase:
        return self._phase

    def active_game_visible(self) -> bool:
        return self._document.select_one(ACTIVE_GAME_SELECTOR) is not None

    def _game_started(self, batch: MutationBatch) -> bool:
        if self._phase is GamePhase.IN_PROGRESS:
            return False
        visible = self.active_game_visible()
        if self._phase is GamePhase.NOT_STARTED:
            return visible
        if not visible:
            self._controls_gone_since_end = True
            return False
        if self._controls_gone_since_end:
            return True
        return any(_find(element, ACTIVE_GAME_SELECTOR) is not None for element in batch.added)

    async def process(self, batch: MutationBatch) -> None:
        """Re-evaluate the phase and handle a newly inserted result panel."""
        first_evaluation = self._evaluations == 0
        self._evaluations += 1

        if self._game_started(batch):
            logger.info("game started", previous_phase=self._phase)
            self._phase = GamePhase.IN_PROGRESS
            await self._on_game_started()

        for panel in find_result_panels(batch.added):
            if panel is self._handled_panel or self._phase is GamePhase.ENDED:
                continue
            if self._phase is GamePhase.NOT_STARTED and not first_evaluation:
                logger.debug("result panel for a game not seen starting", node_id=node_id(panel))
                continue
            # claim the panel before awaiting so an overlapping batch cannot handle it again
            previous = self._phase
            self._handled_panel = panel
            self._phase = GamePhase.ENDED
            self._controls_gone_since_end = False
            logger.info("result panel detected", node_id=node_id(panel), previous_phase=previous)
            recorded = await self._on_game_ended(panel)
            if not recorded and self._phase is GamePhase.ENDED:
                # not our game: the phase only ends for games the viewer played
                self._phase = previous
