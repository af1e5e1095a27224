"""Persistent session snapshot: TiltState <-> the session storage area.

The whole state is written on every save (last writer wins), never
individual fields, so overlapping writers cannot leave a mix of two
snapshots behind.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError

from chessbreak.logic.settings import MS_PER_MINUTE
from chessbreak.logic.state import (
    LockoutState,
    OutcomeRecord,
    RatingTrack,
    SessionCounters,
    TiltState,
)

if TYPE_CHECKING:
    from shared.storage import KeyValueStorage

logger = structlog.get_logger()

STATS_KEY = "sessionStats"
STREAK_KEY = "chessBreakStreak"
SESSION_START_KEY = "chessBreakSessionStart"
SESSION_LENGTH_KEY = "chessBreakSessionLength"  # minutes
TIMEOUT_KEY = "currentTimeout"  # ms
TIMEOUT_START_KEY = "currentTimeoutStart"  # epoch ms, 0 when no lockout
HISTORY_KEY = "gameHistory"
SESSION_GAMES_KEY = "sessionGames"
TILT_COUNT_KEY = "totalTiltCount"
CURRENT_RATING_KEY = "currentRating"
SESSION_RATING_START_KEY = "sessionRatingStart"

SESSION_KEYS = (
    STATS_KEY,
    STREAK_KEY,
    SESSION_START_KEY,
    SESSION_LENGTH_KEY,
    TIMEOUT_KEY,
    TIMEOUT_START_KEY,
    HISTORY_KEY,
    SESSION_GAMES_KEY,
    TILT_COUNT_KEY,
    CURRENT_RATING_KEY,
    SESSION_RATING_START_KEY,
)


def _as_int(value: Any, default: int = 0) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return int(value)


def _as_float(value: Any, default: float = 0.0) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return float(value)


def _as_optional_int(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)


def _parse_records(raw: Any, key: str) -> list[OutcomeRecord]:
    if not isinstance(raw, list):
        return []
    records = []
    for entry in raw:
        try:
            records.append(OutcomeRecord.model_validate(entry))
        except ValidationError:
            logger.warning("skipping malformed outcome record", key=key)
    return records


def state_from_storage(data: dict[str, Any]) -> TiltState:
    """Build a TiltState from stored values; missing or malformed fields take their empty value."""
    stats = data.get(STATS_KEY) if isinstance(data.get(STATS_KEY), dict) else {}
    counters = SessionCounters(
        wins=_as_int(stats.get("win")),
        losses=_as_int(stats.get("loss")),
        draws=_as_int(stats.get("draw")),
        streak=max(0, _as_int(data.get(STREAK_KEY))),
        session_start=_as_int(data.get(SESSION_START_KEY)),
        session_length_ms=round(_as_float(data.get(SESSION_LENGTH_KEY)) * MS_PER_MINUTE),
    )
    lockout = LockoutState(
        started_at=_as_int(data.get(TIMEOUT_START_KEY)),
        duration_ms=_as_int(data.get(TIMEOUT_KEY)),
        cumulative_tilt_count=_as_int(data.get(TILT_COUNT_KEY)),
    )
    rating = RatingTrack(
        current_rating=_as_optional_int(data.get(CURRENT_RATING_KEY)),
        session_rating_start=_as_optional_int(data.get(SESSION_RATING_START_KEY)),
    )
    return TiltState(
        counters=counters,
        lockout=lockout,
        rating=rating,
        history=_parse_records(data.get(HISTORY_KEY), HISTORY_KEY),
        session_games=_parse_records(data.get(SESSION_GAMES_KEY), SESSION_GAMES_KEY),
    )


def state_to_storage(state: TiltState) -> dict[str, Any]:
    counters = state.counters
    lockout = state.lockout
    return {
        STATS_KEY: counters.stats(),
        STREAK_KEY: counters.streak,
        SESSION_START_KEY: counters.session_start,
        SESSION_LENGTH_KEY: counters.session_length_ms / MS_PER_MINUTE,
        TIMEOUT_KEY: lockout.duration_ms,
        TIMEOUT_START_KEY: lockout.started_at,
        HISTORY_KEY: [record.to_storage() for record in state.history],
        SESSION_GAMES_KEY: [record.to_storage() for record in state.session_games],
        TILT_COUNT_KEY: lockout.cumulative_tilt_count,
        CURRENT_RATING_KEY: state.rating.current_rating,
        SESSION_RATING_START_KEY: state.rating.session_rating_start,
    }


class SessionStore:
    """Session storage area adapter. Storage errors (OSError) propagate to the caller."""

    def __init__(self, storage: KeyValueStorage) -> None:
        self._storage = storage

    async def load(self) -> TiltState:
        data = await self._storage.get(SESSION_KEYS)
        return state_from_storage(data)

    async def save(self, state: TiltState) -> None:
        await self._storage.set(state_to_storage(state))
