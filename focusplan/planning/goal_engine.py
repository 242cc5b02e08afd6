"""
Tool: Goal Engine
Purpose: Turn floor/median/ceiling and phase context into one goal duration

Every phase works the same way: build a target band from the floor and
median, pick a point in the band by intensity (Easy 35%, Balanced 50%,
Hard 65%), keep it above the adaptive minimum, then scale it down for
same-day fatigue.

    LINEAR: band [max(floor, start goal), floor + consolidate add]; the goal
            never regresses within the phase and steps up by a tier bump
            after enough recent hits
    WAVE:   band [max(10 min, floor), floor + wave add]; PUSH sessions add a
            stretch target above the band
    EASY:   narrow band used for forced recovery sessions

All durations are in seconds.
"""

from __future__ import annotations

import random
from collections.abc import Sequence
from dataclasses import dataclass

from focusplan.planning.config import WaveConfig
from focusplan.planning.models import BlockType, Intensity, MomentumLevel, SessionRecord, round_half_up, to_seconds
from focusplan.planning.wave_engine import jittered_pct, push_pct_for_level


INTENSITY_POSITION = {
    Intensity.EASY: 0.35,
    Intensity.BALANCED: 0.50,
    Intensity.HARD: 0.65,
}


@dataclass
class Band:
    low: int
    high: int


@dataclass
class LinearGoal:
    goal_sec: int
    raw_goal_sec: int
    next_linear_goal_sec: int
    win_n: int
    success: int
    bumped: bool


@dataclass
class WaveGoal:
    band: Band
    push_target: int
    raw_push_target: int
    base_goal_sec: int
    goal_sec: int
    raw_goal_sec: int


def pick_goal_from_band(low: float, high: float, intensity: Intensity | str = Intensity.BALANCED) -> int:
    t = INTENSITY_POSITION[Intensity.parse(intensity)]
    return round_half_up(low + (high - low) * t)


def compute_adaptive_min_goal(floor_sec: float | None, cfg: WaveConfig) -> int:
    """Lowest goal the planner will hand out.

    Below the milestone the minimum follows the floor down to the absolute
    minimum, so calibration can start small; once the floor reaches the
    milestone, the milestone itself becomes the minimum.
    """
    abs_min = round_half_up(cfg.absolute_min_minutes * 60)
    milestone = round_half_up(cfg.milestone_minutes * 60)
    if not floor_sec or floor_sec <= 0:
        return milestone
    scaled = round_half_up(cfg.adaptive_min_ratio * floor_sec)
    if floor_sec < milestone:
        return max(abs_min, scaled)
    return max(milestone, scaled)


def _band(low: float, median: float, cap: float) -> Band:
    high = max(low + 60, min(median, cap))
    return Band(low=round_half_up(low), high=round_half_up(high))


def compute_linear_band(floor: float, median: float, cfg: WaveConfig) -> Band:
    low = max(floor, cfg.start_goal_minutes * 60)
    return _band(low, median, floor + cfg.consolidate_band_add_minutes * 60)


def compute_wave_band(floor: float, median: float, cfg: WaveConfig) -> Band:
    low = max(10 * 60, floor)
    return _band(low, median, floor + cfg.target_band_add_minutes_wave * 60)


def compute_wave_easy_band(floor: float, median: float, cfg: WaveConfig) -> Band:
    low = max(cfg.start_goal_minutes * 60, floor)
    return _band(low, median, floor + cfg.easy_band_add_minutes * 60)


def linear_bump_for_tier(tier: int, cfg: WaveConfig) -> int:
    return {
        1: cfg.linear_bump_tier1_sec,
        2: cfg.linear_bump_tier2_sec,
        3: cfg.linear_bump_tier3_sec,
    }.get(tier, cfg.linear_bump_tier4_sec)


def apply_fatigue(goal_sec: float, factor: float, min_goal_sec: int) -> int:
    return max(min_goal_sec, round_half_up(goal_sec * factor))


def compute_linear_goal(
    band: Band,
    min_goal_sec: int,
    intensity: Intensity | str,
    linear_goal_sec: int,
    history: Sequence[SessionRecord | None],
    tier: int,
    fatigue: float,
    cfg: WaveConfig,
) -> LinearGoal:
    """
    Goal for a LINEAR session.

    Args:
        band: Linear target band
        min_goal_sec: Adaptive minimum
        intensity: Band position
        linear_goal_sec: Running linear goal (0 if none yet)
        history: Sessions used to count recent hits
        tier: Floor tier, selects the bump size
        fatigue: Same-day fatigue factor
        cfg: Wave configuration

    Returns:
        LinearGoal; next_linear_goal_sec is the pre-fatigue goal so a tired
        evening never drags the running goal down
    """
    win_n = max(3, cfg.linear_window_blocks)
    window = [r for r in history or [] if r is not None and to_seconds(r.goal_seconds) is not None][-win_n:]
    success = sum(1 for r in window if (to_seconds(r.focus_seconds) or 0) >= (to_seconds(r.goal_seconds) or 0))

    goal = max(min_goal_sec, pick_goal_from_band(band.low, band.high, intensity))
    if linear_goal_sec and linear_goal_sec > 0:
        goal = max(goal, linear_goal_sec)

    bumped = False
    if len(window) >= win_n and success >= cfg.linear_success_needed:
        goal += linear_bump_for_tier(tier, cfg)
        bumped = True

    return LinearGoal(
        goal_sec=apply_fatigue(goal, fatigue, min_goal_sec),
        raw_goal_sec=goal,
        next_linear_goal_sec=goal,
        win_n=len(window),
        success=success,
        bumped=bumped,
    )


def compute_push_target(
    floor: float,
    ceiling: float,
    band: Band,
    level: MomentumLevel,
    cfg: WaveConfig,
    rng: random.Random,
) -> int:
    """Stretch target for a PUSH session, before fatigue.

    Capped by the ceiling and by floor + push_cap_add, but always at least a
    minute above the band so a push is never indistinguishable from a
    consolidate session.
    """
    pct = jittered_pct(push_pct_for_level(level, cfg), cfg.push_jitter_pct, rng)
    target = round_half_up(floor * (1.0 + pct))
    target = min(target, round_half_up(ceiling))
    target = min(target, round_half_up(floor + cfg.push_cap_add_minutes * 60))
    return max(target, band.high + 60)


def compute_wave_goal(
    block_type: BlockType,
    floor: float,
    median: float,
    ceiling: float,
    min_goal_sec: int,
    intensity: Intensity | str,
    level: MomentumLevel,
    fatigue: float,
    cfg: WaveConfig,
    rng: random.Random,
) -> WaveGoal:
    band = compute_wave_band(floor, median, cfg)

    raw_push = 0
    if block_type is BlockType.PUSH:
        raw_push = compute_push_target(floor, ceiling, band, level, cfg, rng)

    base_goal = max(min_goal_sec, pick_goal_from_band(band.low, band.high, intensity))
    raw_goal = max(base_goal, raw_push)

    return WaveGoal(
        band=band,
        push_target=round_half_up(raw_push * fatigue) if raw_push else 0,
        raw_push_target=raw_push,
        base_goal_sec=base_goal,
        goal_sec=apply_fatigue(raw_goal, fatigue, min_goal_sec),
        raw_goal_sec=raw_goal,
    )


def compute_wave_easy_goal(
    floor: float,
    median: float,
    min_goal_sec: int,
    intensity: Intensity | str,
    fatigue: float,
    cfg: WaveConfig,
) -> tuple[Band, int, int]:
    """Returns (band, goal_sec, raw_goal_sec) for a forced recovery session."""
    band = compute_wave_easy_band(floor, median, cfg)
    raw_goal = max(min_goal_sec, pick_goal_from_band(band.low, band.high, intensity))
    return band, apply_fatigue(raw_goal, fatigue, min_goal_sec), raw_goal
