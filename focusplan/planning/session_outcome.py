"""
Tool: Session Outcome
Purpose: Turn a finished focus session into an immutable history record

The record is built from the plan and metrics that were current when the
session started, not from whatever the planner would say now. That way the
crash and overshoot flags are judged against the thresholds the user was
actually working with.

Classification:
    crash      focus below the crash threshold
    overshoot  focus above the overshoot threshold
    win        goal > 0 and focus >= goal
    push hit   PUSH session reaching PUSH_SUCCESS_FRACTION of its push target

Usage:
    from focusplan.planning.session_outcome import evaluate_session

    record = evaluate_session(focus_seconds, plan, metrics, "COMPLETED", now, blocks_today)
    history.append(record)
    planner.update_after_block(record)
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from focusplan.planning.blend_engine import bucket_for_time
from focusplan.planning.config import BreaksConfig
from focusplan.planning.models import Metrics, Plan, SessionRecord, round_half_up, to_seconds
from focusplan.planning.wave_engine import is_push_success

RECOVERED_STOP_REASON = "RECOVERED"

__all__ = [
    "RECOVERED_STOP_REASON",
    "bucket_for_time",
    "compute_break_seconds",
    "count_sessions_today",
    "evaluate_session",
]


def count_sessions_today(history: Sequence[SessionRecord | None], now: datetime) -> int:
    """Sessions whose timestamp falls on now's calendar date."""
    today = now.date()
    return sum(1 for r in history or [] if r is not None and r.timestamp is not None and r.timestamp.date() == today)


def compute_break_seconds(
    focus_seconds: float,
    crash: bool = False,
    overshoot: bool = False,
    is_push: bool = False,
    breaks: BreaksConfig | None = None,
) -> int:
    """Break length after a session; harder sessions earn longer breaks."""
    b = breaks or BreaksConfig()
    base = max(0.0, to_seconds(focus_seconds) or 0.0) * (b.break_percent / 100)

    mult = 1.0
    if crash:
        mult *= b.crash_break_multiplier
    if overshoot:
        mult *= b.overshoot_break_multiplier
    if is_push:
        mult *= b.push_break_multiplier

    seconds = max(b.min_break_seconds, round_half_up(base * mult))
    if b.max_break_minutes > 0:
        seconds = min(round_half_up(b.max_break_minutes * 60), seconds)
    return seconds


def evaluate_session(
    focus_seconds: float,
    plan: Plan,
    metrics: Metrics,
    stop_reason: str | None,
    now: datetime,
    blocks_today: int,
    recovered: bool = False,
    breaks: BreaksConfig | None = None,
) -> SessionRecord:
    """
    Classify a finished session and snapshot its planning context.

    Args:
        focus_seconds: How long the user actually focused
        plan: Plan the session was started from
        metrics: Metrics snapshot taken with that plan
        stop_reason: Why the session ended (e.g. COMPLETED, DISTRACTED)
        now: When the session ended
        blocks_today: Sessions completed earlier the same day
        recovered: Session was restored after an interruption; stop reason
            and validity are forced to RECOVERED / recovered
        breaks: Break policy (defaults if omitted)

    Returns:
        Frozen SessionRecord ready to append to history
    """
    focus = max(0, int(to_seconds(focus_seconds) or 0))

    crash = metrics.crash_threshold is not None and focus < metrics.crash_threshold
    overshoot = metrics.overshoot_threshold is not None and focus > metrics.overshoot_threshold
    push_target = plan.push_target if plan.is_push else 0
    push_hit = plan.is_push and is_push_success(focus, push_target)
    is_win = plan.goal_sec > 0 and focus >= plan.goal_sec

    return SessionRecord(
        focus_seconds=focus,
        goal_seconds=plan.goal_sec,
        timestamp=now,
        bucket=bucket_for_time(now),
        phase=plan.phase.value,
        block_type=plan.block_type.value,
        target_low_seconds=plan.target_low,
        target_high_seconds=plan.target_high,
        push_target_seconds=push_target,
        wave_cycle_id=plan.wave_cycle_id,
        wave_cycle_pos=plan.wave_cycle_pos,
        fatigue_factor=plan.fatigue_factor,
        momentum_rate=plan.momentum.rate,
        blocks_today=max(0, int(blocks_today or 0)),
        validity="recovered" if recovered else "valid",
        stop_reason=RECOVERED_STOP_REASON if recovered else stop_reason,
        is_win=is_win,
        push_hit=push_hit,
        crash=crash,
        overshoot=overshoot,
        break_seconds=compute_break_seconds(focus, crash, overshoot, plan.is_push, breaks),
        floor_seconds=plan.floor_sec,
        floor_global_seconds=metrics.floor_global,
        floor_bucket_seconds=metrics.floor_bucket,
        floor_effective_seconds=metrics.floor,
        median_global_seconds=metrics.median_global,
        median_bucket_seconds=metrics.median_bucket,
        median_effective_seconds=metrics.median,
        ceiling_global_seconds=metrics.ceiling_global,
        ceiling_bucket_seconds=metrics.ceiling_bucket,
        ceiling_effective_seconds=metrics.ceiling,
        crash_threshold_seconds=metrics.crash_threshold,
        overshoot_threshold_seconds=metrics.overshoot_threshold,
    )
