import pytest

from chessbreak.logic.enums import TiltTrigger
from chessbreak.logic.policy import evaluate_tilt_trigger, lockout_duration_ms
from chessbreak.logic.settings import TiltOptions
from chessbreak.logic.state import RatingTrack, SessionCounters


class TestEvaluateTiltTrigger:
    def test_streak_at_threshold_triggers(self):
        options = TiltOptions(max_losses=3)

        assert evaluate_tilt_trigger(SessionCounters(streak=3), RatingTrack(), options) is TiltTrigger.LOSS_STREAK

    def test_streak_below_threshold_does_not(self):
        assert evaluate_tilt_trigger(SessionCounters(streak=2), RatingTrack(), TiltOptions(max_losses=3)) is None

    def test_disabled_tilt_mode_ignores_streak(self):
        options = TiltOptions(enable_tilt_mode=False, max_losses=1)

        assert evaluate_tilt_trigger(SessionCounters(streak=5), RatingTrack(), options) is None

    def test_session_losses_above_threshold_trigger(self):
        counters = SessionCounters(wins=3, losses=4, streak=1)

        assert evaluate_tilt_trigger(counters, RatingTrack(), TiltOptions(max_losses=3)) is TiltTrigger.LOSS_COUNT

    def test_session_losses_at_threshold_do_not(self):
        counters = SessionCounters(wins=3, losses=3, streak=1)

        assert evaluate_tilt_trigger(counters, RatingTrack(), TiltOptions(max_losses=3)) is None

    def test_loss_count_trigger_can_be_disabled(self):
        options = TiltOptions(max_losses=3, enable_loss_count_trigger=False)

        assert evaluate_tilt_trigger(SessionCounters(losses=9, streak=1), RatingTrack(), options) is None

    def test_loss_count_is_independent_of_streak_switch(self):
        options = TiltOptions(max_losses=3, enable_tilt_mode=False)

        assert evaluate_tilt_trigger(SessionCounters(losses=4, streak=4), RatingTrack(), options) is TiltTrigger.LOSS_COUNT

    def test_rating_drop_triggers_independently(self):
        options = TiltOptions(enable_rating_drop_trigger=True, rating_drop_threshold=50)
        rating = RatingTrack(current_rating=1440, session_rating_start=1500)

        assert evaluate_tilt_trigger(SessionCounters(streak=1), rating, options) is TiltTrigger.RATING_DROP

    def test_rating_drop_needs_both_ratings(self):
        options = TiltOptions(enable_rating_drop_trigger=True, rating_drop_threshold=50)

        assert evaluate_tilt_trigger(SessionCounters(), RatingTrack(current_rating=1000), options) is None

    def test_rating_drop_disabled_by_default(self):
        rating = RatingTrack(current_rating=1000, session_rating_start=1500)

        assert evaluate_tilt_trigger(SessionCounters(), rating, TiltOptions()) is None

    def test_loss_streak_reported_first_when_both_hold(self):
        options = TiltOptions(max_losses=2, enable_rating_drop_trigger=True, rating_drop_threshold=10)
        rating = RatingTrack(current_rating=1400, session_rating_start=1500)

        assert evaluate_tilt_trigger(SessionCounters(streak=2), rating, options) is TiltTrigger.LOSS_STREAK


class TestLockoutDuration:
    def test_base_duration_in_ms(self):
        assert lockout_duration_ms(TiltOptions(timeout_duration=5), 4) == 300_000

    def test_fractional_minutes(self):
        assert lockout_duration_ms(TiltOptions(timeout_duration=0.5), 0) == 30_000

    @pytest.mark.parametrize(("count", "expected"), [(0, 60_000), (1, 120_000), (3, 480_000)])
    def test_progressive_growth(self, count, expected):
        options = TiltOptions(timeout_duration=1, enable_progressive_timeouts=True, progressive_timeout_multiplier=2)

        assert lockout_duration_ms(options, count) == expected

    def test_progressive_default_multiplier(self):
        options = TiltOptions(timeout_duration=2, enable_progressive_timeouts=True)

        assert lockout_duration_ms(options, 2) == round(120_000 * 1.5**2)
