"""Tests for focusplan/planning/blend_engine.py

Key behaviors:
- Bucket weight ramps from 0 at bucket_min_n to 1 at bucket_full_n
- Missing operands fall back to whichever side is present
- Recent-window statistics always come from the global set
- Old bucket sessions age out of the bucket sample
"""

from datetime import datetime, timedelta

import pytest

from focusplan.planning.blend_engine import (
    blend_metrics,
    blend_scalar,
    bucket_blend_weight,
    bucket_for_time,
    build_planning_metrics,
    select_bucket_sessions,
)
from focusplan.planning.models import Metrics, SessionRecord


NOW = datetime(2026, 3, 2, 9, 30)


# ─────────────────────────────────────────────────────────────────────────────
# Bucket Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestBucketForTime:
    """Tests for time-of-day labels."""

    @pytest.mark.parametrize(
        "hour,bucket",
        [
            (5, "Morning"),
            (11, "Morning"),
            (12, "Afternoon"),
            (16, "Afternoon"),
            (17, "Evening"),
            (21, "Evening"),
            (22, "Night"),
            (0, "Night"),
            (4, "Night"),
        ],
    )
    def test_boundaries(self, hour, bucket):
        assert bucket_for_time(datetime(2026, 3, 2, hour, 59)) == bucket


# ─────────────────────────────────────────────────────────────────────────────
# Weight Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestBucketBlendWeight:
    """Tests for the sample-size ramp."""

    def test_at_or_below_min_is_zero(self):
        assert bucket_blend_weight(0) == 0.0
        assert bucket_blend_weight(3) == 0.0

    def test_ramp(self):
        assert bucket_blend_weight(6) == pytest.approx(0.5)
        assert bucket_blend_weight(4) == pytest.approx(1 / 6)

    def test_full_and_beyond(self):
        assert bucket_blend_weight(9) == 1.0
        assert bucket_blend_weight(50) == 1.0

    def test_degenerate_range(self):
        """full_n not above min_n still yields a step, not a division error."""
        assert bucket_blend_weight(4, min_n=3, full_n=3) == 1.0


class TestBlendScalar:
    """Tests for scalar interpolation."""

    def test_interpolates(self):
        assert blend_scalar(1000, 2000, 0.25) == pytest.approx(1250)

    def test_missing_bucket_uses_global(self):
        assert blend_scalar(1000, None, 0.9) == 1000

    def test_missing_global_uses_bucket(self):
        assert blend_scalar(None, 2000, 0.1) == 2000

    def test_both_missing(self):
        assert blend_scalar(None, None, 0.5) is None


# ─────────────────────────────────────────────────────────────────────────────
# Metric Blending Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestBlendMetrics:
    """Tests for blending whole metric snapshots."""

    def test_blends_percentiles_keeps_recent_global(self):
        global_m = Metrics(floor=1000, median=1500, ceiling=2000, iqr=400, recent_crashes=2, crash_threshold=600)
        bucket_m = Metrics(floor=2000, median=2500, ceiling=3000, iqr=800, recent_crashes=0, crash_threshold=1200)

        blended = blend_metrics(global_m, bucket_m, bucket_n=6)

        assert blended.bucket_weight == pytest.approx(0.5)
        assert blended.floor == pytest.approx(1500)
        assert blended.median == pytest.approx(2000)
        assert blended.iqr == pytest.approx(600)
        assert blended.recent_crashes == 2
        assert blended.crash_threshold == 600
        assert blended.floor_global == 1000
        assert blended.floor_bucket == 2000

    def test_empty_bucket_is_global(self):
        global_m = Metrics(floor=1000, median=1500, ceiling=2000)
        blended = blend_metrics(global_m, Metrics(), bucket_n=0)

        assert blended.floor == 1000
        assert blended.bucket_weight == 0.0


class TestSelectBucketSessions:
    """Tests for the bucket sample."""

    def test_filters_bucket_and_recency(self):
        history = [
            SessionRecord(focus_seconds=1, bucket="Morning", timestamp=NOW - timedelta(days=40)),
            SessionRecord(focus_seconds=2, bucket="Morning", timestamp=NOW - timedelta(days=3)),
            SessionRecord(focus_seconds=3, bucket="Evening", timestamp=NOW - timedelta(days=1)),
            SessionRecord(focus_seconds=4, bucket="Morning", timestamp=None),
        ]
        selected = select_bucket_sessions(history, "Morning", NOW, recency_days=30)

        assert [r.focus_seconds for r in selected] == [2, 4]

    def test_build_planning_metrics_uses_current_bucket(self, make_session):
        morning = [make_session(3000, at=NOW - timedelta(days=i), bucket="Morning") for i in range(1, 10)]
        evening = [make_session(1200, at=NOW - timedelta(days=i, hours=-10), bucket="Evening") for i in range(1, 10)]

        planning = build_planning_metrics(evening + morning, NOW)

        assert planning.bucket == "Morning"
        assert len(planning.bucket_sessions) == 9
        assert planning.metrics.bucket_weight == 1.0
        assert planning.metrics.floor == 3000
        assert planning.global_metrics.floor < 3000
