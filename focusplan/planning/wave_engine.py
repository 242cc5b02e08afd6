"""
Tool: Wave Engine
Purpose: Scheduling signals for the cyclic (WAVE) phase

Once linear progress stalls, sessions alternate between PUSH (a stretch
target above the usual band) and CONSOLIDATE (land a comfortable goal).
How often to push depends on momentum, the recent goal-hit rate:

    HIGH momentum -> P C P C       (half pushes)
    MID momentum  -> C P C P C     (two in five)
    LOW momentum  -> C C P C C     (one in five, recovery-biased)

A new cycle is generated from the momentum current at each cycle boundary.

This module also owns the signals that decide when to go easy:
- Plateau detection (gates LINEAR -> WAVE)
- Stability gate (forces easy sessions inside WAVE)
- Fatigue factor (later sessions in a day get shorter goals)
- Crash recovery (how many easy sessions follow a crash)
"""

from __future__ import annotations

import random
import statistics
from collections.abc import Sequence
from dataclasses import dataclass

from focusplan.planning import FAIL_STOP_REASONS, PUSH_SUCCESS_FRACTION
from focusplan.planning.config import AnalyticsConfig, WaveConfig
from focusplan.planning.floor_engine import is_valid_session
from focusplan.planning.models import BlockType, Metrics, Momentum, MomentumLevel, SessionRecord, to_seconds


CYCLE_TEMPLATES = {
    MomentumLevel.HIGH: [BlockType.PUSH, BlockType.CONSOLIDATE, BlockType.PUSH, BlockType.CONSOLIDATE],
    MomentumLevel.MID: [
        BlockType.CONSOLIDATE,
        BlockType.PUSH,
        BlockType.CONSOLIDATE,
        BlockType.PUSH,
        BlockType.CONSOLIDATE,
    ],
    MomentumLevel.LOW: [
        BlockType.CONSOLIDATE,
        BlockType.CONSOLIDATE,
        BlockType.PUSH,
        BlockType.CONSOLIDATE,
        BlockType.CONSOLIDATE,
    ],
}

PREVIEW_ABBREVIATIONS = {BlockType.PUSH: "P", BlockType.CONSOLIDATE: "C"}


@dataclass
class PlateauSignal:
    plateau: bool
    by_fails: bool
    by_flat: bool
    by_vol: bool
    improve_pct: float
    vol_ratio: float
    fails: int
    sample_n: int

    def to_dict(self) -> dict:
        return {
            "plateau": self.plateau,
            "plateau_by_fails": self.by_fails,
            "plateau_by_flat": self.by_flat,
            "plateau_by_vol": self.by_vol,
            "improve_pct": round(self.improve_pct, 4),
            "vol_ratio": round(self.vol_ratio, 4),
            "fails": self.fails,
            "sample_n": self.sample_n,
        }


@dataclass
class CrashRecovery:
    forced_easy: int
    forced_recovery: bool
    severity: str  # "none" | "mild" | "hard" | "exempt"


def tier_for_seconds(seconds: float | None) -> int:
    """Floor tier; larger floors get smaller absolute bumps."""
    s = seconds or 0
    if s >= 90 * 60:
        return 4
    if s >= 75 * 60:
        return 3
    if s >= 45 * 60:
        return 2
    return 1


def is_push_success(focus_seconds: float | None, push_target: float | None) -> bool:
    """Broadened push success: reaching PUSH_SUCCESS_FRACTION of the target counts."""
    focus = to_seconds(focus_seconds)
    target = to_seconds(push_target)
    if focus is None or target is None or target <= 0:
        return False
    return focus >= target * PUSH_SUCCESS_FRACTION


def session_won(record: SessionRecord) -> bool:
    if record.is_push and (record.push_target_seconds or 0) > 0:
        return is_push_success(record.focus_seconds, record.push_target_seconds)
    focus = to_seconds(record.focus_seconds) or 0
    return focus >= (to_seconds(record.goal_seconds) or 0)


def momentum_level(rate: float, high: float = 0.80, low: float = 0.40) -> MomentumLevel:
    if rate >= high:
        return MomentumLevel.HIGH
    if rate < low:
        return MomentumLevel.LOW
    return MomentumLevel.MID


def compute_momentum(
    history: Sequence[SessionRecord | None],
    window: int = 5,
    high: float = 0.80,
    low: float = 0.40,
) -> Momentum:
    """Rolling win rate over the last `window` goal-bearing sessions.

    Fewer than two qualifying sessions gives the neutral rate 0.5.
    """
    qualifying = [
        r
        for r in history or []
        if r is not None and (to_seconds(r.goal_seconds) or 0) > 0 and to_seconds(r.focus_seconds) is not None
    ]
    recent = qualifying[-max(1, int(window)):]
    if len(recent) < 2:
        return Momentum(rate=0.5, level=momentum_level(0.5, high, low), wins=0, n=len(recent))

    wins = sum(1 for r in recent if session_won(r))
    rate = min(1.0, max(0.0, wins / len(recent)))
    return Momentum(rate=rate, level=momentum_level(rate, high, low), wins=wins, n=len(recent))


def build_adaptive_cycle(level: MomentumLevel) -> list[BlockType]:
    return list(CYCLE_TEMPLATES[level])


def start_new_cycle(prev_cycle_id: int, level: MomentumLevel) -> tuple[int, int, list[BlockType]]:
    """Returns (cycle_id, cycle_pos, cycle)."""
    return (prev_cycle_id or 0) + 1, 0, build_adaptive_cycle(level)


def cycle_preview(cycle: Sequence[BlockType], visibility: str = "Subtle") -> str | None:
    if visibility == "Hidden" or not cycle:
        return None
    if visibility == "Subtle":
        return "SUBTLE"
    return " ".join(PREVIEW_ABBREVIATIONS.get(bt, str(bt)) for bt in cycle)


def push_pct_for_level(level: MomentumLevel, cfg: WaveConfig) -> float:
    if level is MomentumLevel.HIGH:
        return cfg.push_pct_high
    if level is MomentumLevel.LOW:
        return cfg.push_pct_low
    return cfg.push_pct_mid


def jittered_pct(base: float, jitter: float, rng: random.Random) -> float:
    """base +/- jitter (uniform), clamped to [0, 0.5]."""
    j = (rng.random() * 2 - 1) * (jitter or 0)
    return min(0.5, max(0.0, base + j))


def fatigue_factor(blocks_today: int, rate_per_block: float = 0.06, floor: float = 0.75) -> float:
    """Same-day decay multiplier for goals."""
    return max(floor, 1.0 - rate_per_block * max(0, int(blocks_today or 0)))


def crash_recovery(
    focus_seconds: float,
    crash_threshold: float,
    blocks_today: int,
    cfg: WaveConfig,
) -> CrashRecovery:
    """
    Decide how many easy sessions follow a crash.

    Args:
        focus_seconds: Duration of the crashed session
        crash_threshold: Crash threshold in force when it ran
        blocks_today: Sessions completed earlier the same day
        cfg: Wave configuration

    Returns:
        CrashRecovery; late-day crashes are exempt because fatigue already
        explains them
    """
    if blocks_today >= cfg.crash_exempt_after_blocks:
        return CrashRecovery(forced_easy=0, forced_recovery=False, severity="exempt")
    if crash_threshold > 0 and focus_seconds < crash_threshold * cfg.hard_crash_fraction:
        return CrashRecovery(forced_easy=cfg.forced_easy_hard_crash, forced_recovery=True, severity="hard")
    return CrashRecovery(forced_easy=cfg.forced_easy_mild_crash, forced_recovery=False, severity="mild")


def detect_plateau(
    history: Sequence[SessionRecord | None],
    cfg: WaveConfig,
    min_frac_goal: float = 0.5,
) -> PlateauSignal:
    """Vote on whether progress has stalled.

    Three signals over the last plateau_eval_blocks valid sessions: too many
    failed sessions, a flat trend between the two halves of the window, and
    high volatility. At least two must agree.
    """
    n = max(6, cfg.plateau_eval_blocks)
    recent = [r for r in history or [] if r is not None and is_valid_session(r, min_frac_goal)][-n:]
    values = [float(r.focus_seconds) for r in recent]

    avg = statistics.fmean(values) if values else 0.0
    std = statistics.pstdev(values) if values else 0.0

    half = max(1, len(values) // 2)
    first, second = values[:half], values[half:]
    m1 = statistics.fmean(first) if first else 0.0
    m2 = statistics.fmean(second) if second else 0.0
    improve_pct = (m2 - m1) / m1 if m1 > 0 else 0.0

    fails = sum(1 for r in recent if r.stop_reason in FAIL_STOP_REASONS or r.crash)
    by_fails = fails >= cfg.plateau_fail_ge
    by_flat = improve_pct < cfg.plateau_flat_improve_pct
    vol_ratio = std / avg if avg > 0 else 0.0
    by_vol = vol_ratio > cfg.plateau_volatility_up_pct

    votes = sum([by_fails, by_flat, by_vol])
    return PlateauSignal(
        plateau=votes >= 2,
        by_fails=by_fails,
        by_flat=by_flat,
        by_vol=by_vol,
        improve_pct=improve_pct,
        vol_ratio=vol_ratio,
        fails=fails,
        sample_n=len(recent),
    )


def drop_to_stability(metrics: Metrics, prev_recent_iqr: float | None, cfg: AnalyticsConfig) -> bool:
    """Stability gate: True when recent sessions look erratic enough to go easy."""
    if metrics.recent_n >= cfg.recent_window_n and metrics.recent_crashes >= cfg.drop_to_stability_if_crashes_ge:
        return True
    if metrics.recent_overshoots_7 >= cfg.drop_to_stability_if_overshoots_ge_in7:
        return True
    if prev_recent_iqr is not None and metrics.recent_iqr is not None and prev_recent_iqr > 0:
        widen = (metrics.recent_iqr - prev_recent_iqr) / prev_recent_iqr
        if widen > cfg.drop_to_stability_if_recent_iqr_widens_pct:
            return True
    return False
