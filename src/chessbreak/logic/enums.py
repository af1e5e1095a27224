"""
String enum definitions for game lifecycle and tilt concepts.
"""

from enum import StrEnum


class GamePhase(StrEnum):
    """Lifecycle phase of the game shown on the page."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    ENDED = "ended"


class GameOutcome(StrEnum):
    """Result of a finished game from the viewer's perspective."""

    WIN = "win"
    LOSS = "loss"
    DRAW = "draw"


class TiltTrigger(StrEnum):
    """Condition that caused a lockout. Informational only."""

    LOSS_STREAK = "loss_streak"
    LOSS_COUNT = "loss_count"
    RATING_DROP = "rating_drop"


class LockoutSignalType(StrEnum):
    """Signals emitted to the notification dispatcher."""

    TILT_STARTED = "TILT_STARTED"
    TILT_ENDED = "TILT_ENDED"
