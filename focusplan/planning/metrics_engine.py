"""
Tool: Metrics Engine
Purpose: Percentile snapshot of a user's recent focus history

Floor, median, ceiling and IQR come from the last metrics_window_n valid
sessions (same validity rule as the floor engine). Crash and overshoot
counts use every session with a usable duration, because a crash is by
definition a short session and would vanish behind the validity filter.

With fewer than two valid sessions every percentile is None, which the
planner reads as "still calibrating".

Pure function: same history and config in, same snapshot out.
"""

from __future__ import annotations

from collections.abc import Iterable

from focusplan.planning.config import PlannerConfig
from focusplan.planning.floor_engine import extract_valid, quantile
from focusplan.planning.models import Metrics, SessionRecord, round_half_up, to_seconds


def _round(value: float | None) -> int | None:
    return None if value is None else round_half_up(value)


def all_focus_seconds(history: Iterable[SessionRecord | None]) -> list[float]:
    """Every positive, finite focus duration, valid or not."""
    out = []
    for record in history or []:
        if record is None:
            continue
        focus = to_seconds(record.focus_seconds)
        if focus is not None and focus > 0:
            out.append(focus)
    return out


def compute_metrics(history: list[SessionRecord], config: PlannerConfig | None = None) -> Metrics:
    """
    Compute the planning metrics for a history.

    Args:
        history: Session records, oldest first
        config: Planner configuration (defaults if omitted)

    Returns:
        Metrics with integer-second values, or None percentiles when the
        history holds fewer than two valid sessions
    """
    config = config or PlannerConfig()
    fc = config.floor_engine
    ac = config.analytics

    valid = extract_valid(history, fc.min_frac_goal)
    if len(valid) < 2:
        return Metrics(sample_n=len(valid))

    window = valid[-max(5, ac.metrics_window_n):]

    floor = _round(quantile(window, fc.percentile))
    median = _round(quantile(window, ac.median_percentile))
    ceiling = _round(quantile(window, ac.ceiling_percentile))
    q1 = quantile(window, ac.iqr_low_percentile)
    q3 = quantile(window, ac.iqr_high_percentile)
    iqr = None if q1 is None or q3 is None else round_half_up(q3 - q1)

    crash_threshold = None
    if floor is not None:
        crash_threshold = max(round_half_up(ac.crash_min_minutes * 60), round_half_up(ac.crash_relative_mult * floor))
    overshoot_threshold = None
    if median is not None:
        overshoot_threshold = round_half_up(ac.overshoot_mult * median)

    recent_n = max(5, ac.recent_window_n)
    everything = all_focus_seconds(history)
    recent = everything[-recent_n:]

    recent_iqr = None
    if len(recent) >= 4:
        recent_iqr = round_half_up(quantile(recent, 0.75) - quantile(recent, 0.25))

    recent_crashes = 0 if crash_threshold is None else sum(1 for f in recent if f < crash_threshold)
    trailing = everything[-ac.overshoot_window_n:]
    overshoots = 0 if overshoot_threshold is None else sum(1 for f in trailing if f > overshoot_threshold)

    return Metrics(
        floor=floor,
        median=median,
        ceiling=ceiling,
        iqr=iqr,
        recent_iqr=recent_iqr,
        recent_crashes=recent_crashes,
        recent_overshoots_7=overshoots,
        recent_n=len(recent),
        recent_n_valid=len(valid[-recent_n:]),
        crash_threshold=crash_threshold,
        overshoot_threshold=overshoot_threshold,
        sample_n=len(window),
        floor_global=floor,
        median_global=median,
        ceiling_global=ceiling,
        iqr_global=iqr,
    )
