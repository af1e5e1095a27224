"""Centralized tilt-prevention policy options.

Field aliases are the option keys used by the options storage area, so a
stored mapping validates directly into TiltOptions and dumps back by alias.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

MS_PER_MINUTE = 60_000
MS_PER_DAY = 86_400_000

# Scalars refreshed by an OPTIONS_UPDATED signal; everything else is read at start-up.
LIVE_OPTION_FIELDS = ("max_losses", "session_length", "timeout_duration")


class TiltOptions(BaseModel):
    """
    User-configurable tilt-prevention policy.

    All fields have defaults; unknown keys in the stored mapping are ignored.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    # --- Loss triggers ---
    enable_tilt_mode: bool = Field(default=True, alias="enableTiltMode")
    max_losses: int = Field(default=3, ge=1, alias="maxLosses")
    # total session losses above max_losses also trip a lockout, streak or not
    enable_loss_count_trigger: bool = Field(default=True, alias="enableLossCountTrigger")

    # --- Lockout ---
    timeout_duration: float = Field(default=5, gt=0, alias="timeoutDuration")  # minutes
    enable_progressive_timeouts: bool = Field(default=False, alias="enableProgressiveTimeouts")
    progressive_timeout_multiplier: float = Field(default=1.5, ge=1, alias="progressiveTimeoutMultiplier")
    auto_reset_stats: bool = Field(default=False, alias="autoResetStats")
    show_notifications: bool = Field(default=True, alias="showNotifications")

    # --- Session ---
    session_length: float = Field(default=5, gt=0, alias="sessionLength")  # minutes

    # --- History ---
    store_game_history: bool = Field(default=True, alias="storeGameHistory")
    game_history_retention: int = Field(default=30, ge=1, alias="gameHistoryRetention")  # days

    # --- Rating ---
    track_rating_changes: bool = Field(default=True, alias="trackRatingChanges")
    enable_rating_drop_trigger: bool = Field(default=False, alias="enableRatingDropTrigger")
    rating_drop_threshold: int = Field(default=50, ge=1, alias="ratingDropThreshold")

    @property
    def timeout_ms(self) -> int:
        """Base lockout duration in milliseconds."""
        return round(self.timeout_duration * MS_PER_MINUTE)

    @property
    def session_length_ms(self) -> int:
        return round(self.session_length * MS_PER_MINUTE)

    @property
    def retention_ms(self) -> int:
        return self.game_history_retention * MS_PER_DAY

    @classmethod
    def storage_keys(cls) -> list[str]:
        """Option keys as they appear in the options storage area."""
        return [field.alias or name for name, field in cls.model_fields.items()]

    def with_live_fields(self, fresh: TiltOptions) -> TiltOptions:
        """Return a copy that takes only the live-refreshable scalars from ``fresh``."""
        return self.model_copy(update={name: getattr(fresh, name) for name in LIVE_OPTION_FIELDS})
