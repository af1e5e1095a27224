"""Tilt trigger evaluation and lockout duration rules."""

from __future__ import annotations

from typing import TYPE_CHECKING

from chessbreak.logic.enums import TiltTrigger

if TYPE_CHECKING:
    from chessbreak.logic.settings import TiltOptions
    from chessbreak.logic.state import RatingTrack, SessionCounters


def evaluate_tilt_trigger(
    counters: SessionCounters,
    rating: RatingTrack,
    options: TiltOptions,
) -> TiltTrigger | None:
    """Return the first trigger that fires, or None.

    Triggers are independent; any one is enough. They are checked in the
    order loss streak, loss count, rating drop, and the first that holds is
    the reported reason.
    """
    if options.enable_tilt_mode and counters.streak >= options.max_losses:
        return TiltTrigger.LOSS_STREAK
    if options.enable_loss_count_trigger and counters.losses > options.max_losses:
        return TiltTrigger.LOSS_COUNT
    if options.enable_rating_drop_trigger:
        drop = rating.session_drop
        if drop is not None and drop >= options.rating_drop_threshold:
            return TiltTrigger.RATING_DROP
    return None


def lockout_duration_ms(options: TiltOptions, cumulative_tilt_count: int) -> int:
    """Lockout length: the base timeout, or base * multiplier ** count when progressive."""
    base = options.timeout_ms
    if not options.enable_progressive_timeouts:
        return base
    return round(base * options.progressive_timeout_multiplier ** max(0, cumulative_tilt_count))
