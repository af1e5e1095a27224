"""In-memory state owned by the tilt state machine.

Mutable session state is kept in plain dataclasses grouped under TiltState,
the single object serialized wholesale to the session storage area.
Persisted outcome records are immutable pydantic models.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field

from pydantic import BaseModel, ConfigDict, Field

from chessbreak.logic.enums import GameOutcome


def epoch_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class PlayerSlots(BaseModel):
    """The two displayed participants and the viewer's handle."""

    model_config = ConfigDict(frozen=True)

    top: str
    bottom: str
    username: str


class OutcomeRecord(BaseModel):
    """One completed game the viewer took part in."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    result: GameOutcome
    reason: str = ""
    timestamp: int  # epoch ms
    players: PlayerSlots
    rating_change: int | None = Field(default=None, alias="ratingChange")
    url: str | None = None

    def to_storage(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def prune_history(history: list[OutcomeRecord], now_ms: int, retention_ms: int) -> list[OutcomeRecord]:
    """Drop records older than the retention window, keeping order."""
    cutoff = now_ms - retention_ms
    return [record for record in history if record.timestamp >= cutoff]


@dataclass
class SessionCounters:
    """Win/loss/draw counters and loss streak for the current session window."""

    wins: int = 0
    losses: int = 0
    draws: int = 0
    streak: int = 0
    session_start: int = 0  # epoch ms, 0 when no session has been stamped
    session_length_ms: int = 0

    def record(self, outcome: GameOutcome) -> None:
        if outcome is GameOutcome.WIN:
            self.wins += 1
            self.streak = 0
        elif outcome is GameOutcome.LOSS:
            self.losses += 1
            self.streak += 1
        else:
            self.draws += 1
            self.streak = 0

    def is_expired(self, now_ms: int) -> bool:
        """True when no session is stamped or the window has elapsed."""
        return self.session_start <= 0 or now_ms - self.session_start > self.session_length_ms

    def reset(self, now_ms: int) -> None:
        self.wins = self.losses = self.draws = self.streak = 0
        self.session_start = now_ms

    def clear_counts(self) -> None:
        """Zero counters and streak without moving the session window."""
        self.wins = self.losses = self.draws = self.streak = 0

    def stats(self) -> dict[str, int]:
        return {"win": self.wins, "loss": self.losses, "draw": self.draws}


@dataclass
class LockoutState:
    active: bool = False
    started_at: int = 0  # epoch ms
    duration_ms: int = 0
    cumulative_tilt_count: int = 0  # never reset by session expiry

    @property
    def ends_at(self) -> int:
        return self.started_at + self.duration_ms

    def remaining_ms(self, now_ms: int) -> int:
        if self.started_at <= 0:
            return 0
        return max(0, self.ends_at - now_ms)

    def begin(self, now_ms: int, duration_ms: int) -> None:
        self.active = True
        self.started_at = now_ms
        self.duration_ms = duration_ms

    def finish(self) -> None:
        """Close the window; duration_ms is kept as the last lockout length."""
        self.active = False
        self.started_at = 0


@dataclass
class RatingTrack:
    current_rating: int | None = None
    session_rating_start: int | None = None

    def apply_delta(self, delta: int, displayed_rating: int | None = None) -> int | None:
        """Accumulate a rating delta. Return the new rating, or None if no base rating is known.

        The pre-game rating is the current rating, else the session start
        rating, else the rating displayed on the page. The first known value
        after a session reset becomes the session start rating.
        """
        if self.current_rating is not None:
            base = self.current_rating
        elif self.session_rating_start is not None:
            base = self.session_rating_start
        else:
            base = displayed_rating
        if base is None:
            return None
        if self.session_rating_start is None:
            self.session_rating_start = base
        self.current_rating = base + delta
        return self.current_rating

    @property
    def session_drop(self) -> int | None:
        """Rating lost since the session started (negative when gained)."""
        if self.current_rating is None or self.session_rating_start is None:
            return None
        return self.session_rating_start - self.current_rating


@dataclass
class TiltState:
    """Everything the state machine owns, serialized as one snapshot."""

    counters: SessionCounters = field(default_factory=SessionCounters)
    lockout: LockoutState = field(default_factory=LockoutState)
    rating: RatingTrack = field(default_factory=RatingTrack)
    history: list[OutcomeRecord] = field(default_factory=list)  # long-term, retention-pruned
    session_games: list[OutcomeRecord] = field(default_factory=list)  # current session only

    def reset_session(self, now_ms: int, *, keep_rating: bool = False) -> None:
        """Start a new session window; long-term history and tilt count survive."""
        self.counters.reset(now_ms)
        self.session_games.clear()
        if not keep_rating:
            self.rating.session_rating_start = None

    def adopt(self, other: TiltState) -> None:
        """Take over another snapshot's contents while keeping this object's identity."""
        self.counters = other.counters
        self.lockout = other.lockout
        self.rating = other.rating
        self.history = other.history
        self.session_games = other.session_games
