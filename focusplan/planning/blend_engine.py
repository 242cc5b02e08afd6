"""
Tool: Blend Engine
Purpose: Mix time-of-day statistics into the global picture

People focus differently in the morning than late at night. Each session is
tagged with a coarse time bucket, and the planner blends the current
bucket's metrics into the global ones:

- Up to bucket_min_n sessions in the bucket: global only
- From bucket_full_n sessions: bucket only
- Linear ramp in between

Only bucket sessions from the last bucket_recency_days count, so an old
habit does not keep steering today's plan.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from focusplan.planning.config import PlannerConfig
from focusplan.planning.metrics_engine import compute_metrics
from focusplan.planning.models import Metrics, SessionRecord, to_seconds


@dataclass
class PlanningMetrics:
    """Blended metrics plus the bucket sample they were built from."""

    metrics: Metrics
    global_metrics: Metrics
    bucket_metrics: Metrics
    bucket: str
    bucket_sessions: list[SessionRecord]


def bucket_for_time(moment: datetime) -> str:
    """Coarse time-of-day label for a timestamp."""
    hour = moment.hour
    if 5 <= hour <= 11:
        return "Morning"
    if 12 <= hour <= 16:
        return "Afternoon"
    if 17 <= hour <= 21:
        return "Evening"
    return "Night"


def bucket_blend_weight(bucket_n: int, min_n: int = 3, full_n: int = 9) -> float:
    """Trust placed in bucket metrics, 0 (global only) to 1 (bucket only)."""
    min_n = max(0, int(min_n))
    full_n = max(min_n + 1, int(full_n))
    n = max(0, int(bucket_n or 0))
    if n <= min_n:
        return 0.0
    return min(1.0, max(0.0, (n - min_n) / (full_n - min_n)))


def blend_scalar(global_val: float | None, bucket_val: float | None, weight: float) -> float | None:
    if to_seconds(bucket_val) is None:
        return global_val
    if to_seconds(global_val) is None:
        return bucket_val
    return (1 - weight) * global_val + weight * bucket_val


def blend_metrics(
    global_metrics: Metrics,
    bucket_metrics: Metrics,
    bucket_n: int,
    config: PlannerConfig | None = None,
) -> Metrics:
    """Blend floor/median/ceiling/IQR; recent-window stats stay global."""
    config = config or PlannerConfig()
    ac = config.analytics
    w = bucket_blend_weight(bucket_n, ac.bucket_min_n, ac.bucket_full_n)

    return Metrics(
        floor=blend_scalar(global_metrics.floor, bucket_metrics.floor, w),
        median=blend_scalar(global_metrics.median, bucket_metrics.median, w),
        ceiling=blend_scalar(global_metrics.ceiling, bucket_metrics.ceiling, w),
        iqr=blend_scalar(global_metrics.iqr, bucket_metrics.iqr, w),
        recent_iqr=global_metrics.recent_iqr,
        recent_crashes=global_metrics.recent_crashes,
        recent_overshoots_7=global_metrics.recent_overshoots_7,
        recent_n=global_metrics.recent_n,
        recent_n_valid=global_metrics.recent_n_valid,
        crash_threshold=global_metrics.crash_threshold,
        overshoot_threshold=global_metrics.overshoot_threshold,
        sample_n=global_metrics.sample_n,
        bucket_weight=w,
        bucket_n=max(0, int(bucket_n or 0)),
        floor_global=global_metrics.floor,
        floor_bucket=bucket_metrics.floor,
        median_global=global_metrics.median,
        median_bucket=bucket_metrics.median,
        ceiling_global=global_metrics.ceiling,
        ceiling_bucket=bucket_metrics.ceiling,
        iqr_global=global_metrics.iqr,
        iqr_bucket=bucket_metrics.iqr,
    )


def select_bucket_sessions(
    history: list[SessionRecord],
    bucket: str,
    now: datetime,
    recency_days: int = 30,
) -> list[SessionRecord]:
    """Sessions in the given bucket from the recency window.

    Sessions without a timestamp are kept; there is no way to age them out.
    """
    cutoff = now - timedelta(days=recency_days)
    out = []
    for record in history or []:
        if record is None or record.bucket != bucket:
            continue
        ts = record.timestamp
        if ts is not None and (ts.tzinfo is None) != (cutoff.tzinfo is None):
            ts = ts.replace(tzinfo=cutoff.tzinfo)
        if ts is None or ts >= cutoff:
            out.append(record)
    return out


def build_planning_metrics(
    history: list[SessionRecord],
    now: datetime,
    config: PlannerConfig | None = None,
) -> PlanningMetrics:
    """Global metrics, current-bucket metrics, and their blend in one step."""
    config = config or PlannerConfig()
    bucket = bucket_for_time(now)
    bucket_sessions = select_bucket_sessions(history, bucket, now, config.analytics.bucket_recency_days)

    global_metrics = compute_metrics(history, config)
    bucket_metrics = compute_metrics(bucket_sessions, config)
    blended = blend_metrics(global_metrics, bucket_metrics, len(bucket_sessions), config)

    return PlanningMetrics(
        metrics=blended,
        global_metrics=global_metrics,
        bucket_metrics=bucket_metrics,
        bucket=bucket,
        bucket_sessions=bucket_sessions,
    )
