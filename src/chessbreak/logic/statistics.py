"""Dashboard statistics derived from the long-term game history."""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from functools import cmp_to_key
from typing import TYPE_CHECKING

from pydantic import BaseModel

from chessbreak.logic.enums import GameOutcome

if TYPE_CHECKING:
    from collections.abc import Sequence

    from chessbreak.logic.state import OutcomeRecord, RatingTrack, TiltState

PEAK_HOUR_MIN_GAMES = 3
PEAK_HOUR_LIMIT = 3
# Win rates closer than this (in percentage points) are ranked by rating change instead.
_WIN_RATE_TIE_BAND = 1.0


class PeakHour(BaseModel):
    hour: int
    win_rate: float
    avg_rating_change: float
    games_played: int


class DashboardStats(BaseModel):
    total_games: int = 0
    win_rate: float = 0.0
    average_rating_change: float = 0.0
    total_tilt_count: int = 0
    longest_win_streak: int = 0
    longest_loss_streak: int = 0
    games_today: int = 0
    rating_change_today: int = 0
    session_rating_change: int = 0
    peak_hours: list[PeakHour] = []


def _mean(values: Sequence[int]) -> float:
    return sum(values) / len(values) if values else 0.0


def _longest_streaks(history: Sequence[OutcomeRecord]) -> tuple[int, int]:
    longest_win = longest_loss = current_win = current_loss = 0
    for record in history:
        if record.result is GameOutcome.WIN:
            current_win += 1
            current_loss = 0
        elif record.result is GameOutcome.LOSS:
            current_loss += 1
            current_win = 0
        else:
            current_win = current_loss = 0
        longest_win = max(longest_win, current_win)
        longest_loss = max(longest_loss, current_loss)
    return longest_win, longest_loss


def _local_hour(timestamp_ms: int) -> int:
    return datetime.fromtimestamp(timestamp_ms / 1000).astimezone().hour


def _peak_hours(history: Sequence[OutcomeRecord]) -> list[PeakHour]:
    games: dict[int, list[OutcomeRecord]] = defaultdict(list)
    for record in history:
        games[_local_hour(record.timestamp)].append(record)

    candidates = []
    for hour, records in games.items():
        if len(records) < PEAK_HOUR_MIN_GAMES:
            continue
        wins = sum(1 for r in records if r.result is GameOutcome.WIN)
        changes = [r.rating_change for r in records if r.rating_change is not None]
        candidates.append(
            PeakHour(
                hour=hour,
                win_rate=wins / len(records) * 100,
                avg_rating_change=_mean(changes),
                games_played=len(records),
            ),
        )

    def rank(a: PeakHour, b: PeakHour) -> float:
        if abs(a.win_rate - b.win_rate) > _WIN_RATE_TIE_BAND:
            return b.win_rate - a.win_rate
        return b.avg_rating_change - a.avg_rating_change

    ranked = sorted(candidates, key=cmp_to_key(rank))[:PEAK_HOUR_LIMIT]
    return [
        hour.model_copy(
            update={"win_rate": round(hour.win_rate, 2), "avg_rating_change": round(hour.avg_rating_change, 2)},
        )
        for hour in ranked
    ]


def compute_dashboard_stats(
    history: Sequence[OutcomeRecord],
    *,
    total_tilt_count: int = 0,
    rating: RatingTrack | None = None,
    now: datetime | None = None,
) -> DashboardStats:
    """Summarize the game history for the statistics dashboard."""
    now = now or datetime.now().astimezone()
    midnight_ms = int(now.replace(hour=0, minute=0, second=0, microsecond=0).timestamp() * 1000)

    total = len(history)
    wins = sum(1 for r in history if r.result is GameOutcome.WIN)
    changes = [r.rating_change for r in history if r.rating_change is not None]
    today = [r for r in history if r.timestamp >= midnight_ms]
    longest_win, longest_loss = _longest_streaks(history)

    session_change = 0
    if rating is not None and rating.current_rating is not None and rating.session_rating_start is not None:
        session_change = rating.current_rating - rating.session_rating_start

    return DashboardStats(
        total_games=total,
        win_rate=round(wins / total * 100, 2) if total else 0.0,
        average_rating_change=round(_mean(changes), 2),
        total_tilt_count=total_tilt_count,
        longest_win_streak=longest_win,
        longest_loss_streak=longest_loss,
        games_today=len(today),
        rating_change_today=sum(r.rating_change for r in today if r.rating_change is not None),
        session_rating_change=session_change,
        peak_hours=_peak_hours(history),
    )


def dashboard_for_state(state: TiltState, *, now: datetime | None = None) -> DashboardStats:
    return compute_dashboard_stats(
        state.history,
        total_tilt_count=state.lockout.cumulative_tilt_count,
        rating=state.rating,
        now=now,
    )
