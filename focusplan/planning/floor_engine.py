"""
Tool: Floor Engine
Purpose: Track the user's reliable baseline ("floor") across sessions

The floor is a low percentile of recent session durations. The raw estimate
jumps around from session to session, so the planner keeps a smoothed
effective floor instead:

- Improvements are absorbed quickly (up_rate 0.35)
- Regressions are absorbed slowly (down_rate 0.10)
- One update can never lower the floor by more than max_daily_drop_frac per
  elapsed calendar day, however bad the raw estimate looks. The bound is per
  update: several updates on one day each get their own allowance

Sessions that ended before half of their goal are treated as interruptions
and never feed the estimate.

All durations are in seconds.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime

from focusplan.planning.models import SessionRecord, round_half_up, to_seconds


@dataclass
class RawFloor:
    raw_floor_sec: int | None
    sample_n: int


@dataclass
class FloorUpdate:
    floor_sec: int | None
    ymd: str | None


def quantile(values: Sequence[float], q: float) -> float | None:
    """Linear-interpolated rank statistic. q outside [0, 1] returns min/max."""
    if not values:
        return None
    ordered = sorted(values)
    if q <= 0:
        return ordered[0]
    if q >= 1:
        return ordered[-1]
    idx = q * (len(ordered) - 1)
    lo = math.floor(idx)
    hi = math.ceil(idx)
    if lo == hi:
        return ordered[lo]
    t = idx - lo
    return ordered[lo] + (ordered[hi] - ordered[lo]) * t


def is_valid_session(record: SessionRecord, min_frac_goal: float = 0.5) -> bool:
    """A session feeds the percentile math only if it was not cut short."""
    focus = to_seconds(record.focus_seconds)
    if focus is None or focus <= 0:
        return False
    goal = to_seconds(record.goal_seconds)
    if goal is not None and goal > 0 and focus < min_frac_goal * goal:
        return False
    return True


def extract_valid(history: Iterable[SessionRecord | None], min_frac_goal: float = 0.5) -> list[float]:
    """Focus durations of valid sessions, oldest first."""
    return [
        float(record.focus_seconds)
        for record in history or []
        if record is not None and is_valid_session(record, min_frac_goal)
    ]


def compute_raw_floor(
    history: Iterable[SessionRecord | None],
    window_n: int = 11,
    percentile: float = 0.35,
    min_frac_goal: float = 0.5,
) -> RawFloor:
    """Raw floor estimate from the last window_n valid sessions.

    Needs at least three valid samples; returns raw_floor_sec=None otherwise.
    """
    window_n = max(3, int(window_n))
    q = min(0.95, max(0.05, float(percentile)))
    values = extract_valid(history, min_frac_goal)[-window_n:]
    if len(values) < 3:
        return RawFloor(raw_floor_sec=None, sample_n=len(values))
    raw = quantile(values, q)
    return RawFloor(raw_floor_sec=None if raw is None else round_half_up(raw), sample_n=len(values))


def days_between(earlier: str, later: str) -> int:
    """Whole calendar days between two YYYY-MM-DD dates, never negative."""
    try:
        delta = date.fromisoformat(later) - date.fromisoformat(earlier)
    except (TypeError, ValueError):
        return 0
    return max(0, delta.days)


def update_effective_floor(
    prev_floor_sec: float | None,
    raw_floor_sec: float | None,
    now: datetime,
    prev_date: str | None,
    up_rate: float = 0.35,
    down_rate: float = 0.10,
    max_daily_drop_frac: float = 0.02,
) -> FloorUpdate:
    """Blend a new raw estimate into the stored effective floor.

    Args:
        prev_floor_sec: Stored effective floor, or None on first use
        raw_floor_sec: Fresh raw estimate, or None when there is too little data
        now: Time of this update
        prev_date: YYYY-MM-DD of the previous update (None if unknown)
        up_rate: Smoothing rate when the raw estimate is at or above the floor
        down_rate: Smoothing rate when it is below
        max_daily_drop_frac: Largest fractional drop allowed per elapsed day

    Returns:
        FloorUpdate with the new floor (integer seconds) and today's date
    """
    up_rate = min(1.0, max(0.0, float(up_rate)))
    down_rate = min(1.0, max(0.0, float(down_rate)))
    max_daily_drop_frac = min(0.2, max(0.0, float(max_daily_drop_frac)))
    today = now.date().isoformat()

    if raw_floor_sec is None:
        return FloorUpdate(floor_sec=None if prev_floor_sec is None else int(prev_floor_sec), ymd=today)

    if prev_floor_sec is None:
        return FloorUpdate(floor_sec=round_half_up(raw_floor_sec), ymd=today)

    prev = float(prev_floor_sec)
    delta = raw_floor_sec - prev
    rate = up_rate if delta >= 0 else down_rate
    floor = round_half_up(prev + rate * delta)

    # Unknown previous date counts as the same day. Same-day updates each get
    # the one-day allowance, so repeated plans on one day compound.
    elapsed = days_between(prev_date, today) if prev_date else 0
    min_allowed = round_half_up(prev * (1 - max_daily_drop_frac * max(1, elapsed)))
    if floor < min_allowed:
        floor = min_allowed

    return FloorUpdate(floor_sec=floor, ymd=today)
