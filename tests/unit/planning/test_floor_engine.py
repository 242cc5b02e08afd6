"""Tests for focusplan/planning/floor_engine.py

The floor is the baseline every goal is built on. It has to shrug off
interrupted sessions, rise quickly when the user improves, and never
collapse after a single bad day.

Key behaviors:
- Sessions under half their goal never reach the estimate
- Smoothing is asymmetric (fast up, slow down)
- The daily drop guard bounds any fall per calendar day
"""

from datetime import datetime, timedelta

import pytest

from focusplan.planning.floor_engine import (
    compute_raw_floor,
    days_between,
    extract_valid,
    is_valid_session,
    quantile,
    update_effective_floor,
)
from focusplan.planning.models import SessionRecord


NOW = datetime(2026, 3, 2, 18, 0)


# ─────────────────────────────────────────────────────────────────────────────
# Quantile Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestQuantile:
    """Tests for the linear-interpolated rank statistic."""

    def test_empty_returns_none(self):
        assert quantile([], 0.5) is None

    def test_single_value(self):
        assert quantile([42.0], 0.35) == 42.0

    def test_interpolates_between_ranks(self):
        """0.35 of six values sits three quarters of the way from rank 1 to rank 2."""
        assert quantile([1320, 1380, 1440, 1500, 1560, 1620], 0.35) == pytest.approx(1425.0)

    def test_input_order_irrelevant(self):
        assert quantile([5, 1, 3], 0.5) == quantile([1, 3, 5], 0.5) == 3

    def test_out_of_range_q_clamps_to_extremes(self):
        assert quantile([1, 2, 3], -1) == 1
        assert quantile([1, 2, 3], 2) == 3


# ─────────────────────────────────────────────────────────────────────────────
# Validity Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestValidity:
    """Tests for the interrupted-session filter."""

    def test_short_session_is_invalid(self):
        assert not is_valid_session(SessionRecord(focus_seconds=300, goal_seconds=1500))

    def test_exactly_half_goal_is_valid(self):
        assert is_valid_session(SessionRecord(focus_seconds=750, goal_seconds=1500))

    def test_no_goal_only_needs_positive_focus(self):
        assert is_valid_session(SessionRecord(focus_seconds=60))
        assert not is_valid_session(SessionRecord(focus_seconds=0))

    def test_malformed_duration_is_invalid(self):
        assert not is_valid_session(SessionRecord(focus_seconds=None, goal_seconds=1500))
        assert not is_valid_session(SessionRecord(focus_seconds=float("nan")))
        assert not is_valid_session(SessionRecord(focus_seconds=float("inf")))

    def test_extract_valid_keeps_order(self):
        history = [
            SessionRecord(focus_seconds=1000, goal_seconds=1000),
            SessionRecord(focus_seconds=100, goal_seconds=1000),
            None,
            SessionRecord(focus_seconds=900, goal_seconds=1000),
        ]
        assert extract_valid(history) == [1000.0, 900.0]


# ─────────────────────────────────────────────────────────────────────────────
# Raw Floor Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestComputeRawFloor:
    """Tests for the raw floor estimate."""

    def test_interruption_excluded(self):
        """The 300s interruption is dropped and the floor lands above 1320s."""
        durations = [1320, 1440, 300, 1560, 1620, 1380, 1500]
        history = [SessionRecord(focus_seconds=d, goal_seconds=1500) for d in durations]

        result = compute_raw_floor(history, window_n=11, percentile=0.35)

        assert result.sample_n == 6
        assert result.raw_floor_sec == 1425
        assert result.raw_floor_sec > 1320

    def test_needs_three_samples(self):
        history = [SessionRecord(focus_seconds=1500, goal_seconds=1500)] * 2
        result = compute_raw_floor(history)

        assert result.raw_floor_sec is None
        assert result.sample_n == 2

    def test_short_sessions_never_change_result(self):
        """Appending interruptions anywhere leaves the estimate untouched."""
        base = [SessionRecord(focus_seconds=d, goal_seconds=1500) for d in (1400, 1500, 1600, 1700)]
        noisy = list(base)
        noisy.insert(1, SessionRecord(focus_seconds=200, goal_seconds=1500))
        noisy.append(SessionRecord(focus_seconds=100, goal_seconds=1500))

        assert compute_raw_floor(noisy).raw_floor_sec == compute_raw_floor(base).raw_floor_sec

    def test_window_uses_most_recent(self):
        old = [SessionRecord(focus_seconds=600) for _ in range(10)]
        recent = [SessionRecord(focus_seconds=3000) for _ in range(3)]
        result = compute_raw_floor(old + recent, window_n=3)

        assert result.raw_floor_sec == 3000


# ─────────────────────────────────────────────────────────────────────────────
# Effective Floor Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestUpdateEffectiveFloor:
    """Tests for smoothing and the daily drop guard."""

    def test_seeds_from_raw(self):
        result = update_effective_floor(None, 1500, NOW, None)

        assert result.floor_sec == 1500
        assert result.ymd == "2026-03-02"

    def test_null_raw_keeps_previous(self):
        result = update_effective_floor(1500, None, NOW, "2026-03-01")
        assert result.floor_sec == 1500

    def test_rises_at_up_rate(self):
        result = update_effective_floor(1000, 2000, NOW, "2026-03-02")
        assert result.floor_sec == 1350

    def test_falls_at_down_rate(self):
        result = update_effective_floor(2000, 1900, NOW, "2026-03-02")
        assert result.floor_sec == 1990

    def test_asymmetric_smoothing(self):
        """Same gap, opposite direction: rising moves further than falling."""
        prev = 1800
        up = update_effective_floor(prev, prev + 600, NOW, "2026-01-01").floor_sec - prev
        down = prev - update_effective_floor(prev, prev - 600, NOW, "2026-01-01").floor_sec

        assert up == 210
        assert down == 60
        assert up > down

    def test_same_day_guard(self):
        """A collapse of the raw estimate is capped at a 2% drop on the same day."""
        result = update_effective_floor(3600, 1200, NOW, "2026-03-02")
        assert result.floor_sec >= 3528
        assert result.floor_sec == 3528

    def test_unknown_date_counts_as_same_day(self):
        result = update_effective_floor(3600, 1200, NOW, None)
        assert result.floor_sec == 3528

    def test_guard_scales_with_elapsed_days(self):
        result = update_effective_floor(3600, 1200, NOW, "2026-02-27")
        # Three days: 6% allowed, smoothing alone would give 3360
        assert result.floor_sec == 3384

    def test_smoothing_wins_when_gentler_than_guard(self):
        result = update_effective_floor(3600, 1200, NOW, "2026-02-20")
        assert result.floor_sec == 3360

    @pytest.mark.parametrize("prev,days", [(600, 0), (1800, 1), (3600, 2), (5400, 7), (7200, 30)])
    def test_guard_holds(self, prev, days):
        prev_date = (NOW - timedelta(days=days)).date().isoformat()
        result = update_effective_floor(prev, 0.0001, NOW, prev_date)
        bound = prev * (1 - 0.02 * max(1, days))

        assert result.floor_sec >= round(bound) - 1

    def test_same_day_updates_compound(self):
        """Six plans on one day each take their own 2% allowance."""
        floor = 3600
        steps = []
        for _ in range(6):
            floor = update_effective_floor(floor, 1200, NOW, NOW.date().isoformat()).floor_sec
            steps.append(floor)

        assert steps == [3528, 3457, 3388, 3320, 3254, 3189]


class TestDaysBetween:
    """Tests for calendar day differences."""

    def test_whole_days(self):
        assert days_between("2026-03-01", "2026-03-04") == 3

    def test_never_negative(self):
        assert days_between("2026-03-04", "2026-03-01") == 0

    def test_garbage_is_zero(self):
        assert days_between("not-a-date", "2026-03-01") == 0
