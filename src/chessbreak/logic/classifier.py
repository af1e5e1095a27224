"""Outcome classification and participant checks for finished games."""

from __future__ import annotations

from typing import TYPE_CHECKING

from chessbreak.logic.enums import GameOutcome
from chessbreak.logic.exceptions import IdentityNotFoundError

if TYPE_CHECKING:
    from collections.abc import Sequence

# A color named in the result title means that color won, so the viewer did not.
_COLOR_TOKENS = ("white", "black")


def classify_outcome(result_text: str) -> GameOutcome:
    """
    Classify result-panel title text as a win, loss or draw for the viewer.

    Rules are ordered: "draw" is checked before any color token. Text that
    matches nothing (including the empty string) counts as a win.
    """
    text = result_text.strip().lower()
    if "draw" in text:
        return GameOutcome.DRAW
    if any(token in text for token in _COLOR_TOKENS):
        return GameOutcome.LOSS
    return GameOutcome.WIN


def is_participant(identity: str | None, players: Sequence[str]) -> bool:
    """Return whether the viewer is one of the two displayed players.

    Comparison is exact after trimming whitespace (case-sensitive).
    """
    if identity is None or not identity.strip():
        raise IdentityNotFoundError("viewer identity is unknown")
    me = identity.strip()
    return any(player.strip() == me for player in players[:2])
