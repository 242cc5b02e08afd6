"""
Tool: Planner Simulation
Purpose: Drive the full plan -> session -> update loop with synthetic users

Each profile describes a seeded synthetic user: starting skill, how fast it
improves, how noisy and how fatigue-prone the user is, and optionally a day
after which learning stops (plateau) or a rest-day pattern (gaps). One
random.Random seeded from the profile feeds both the user model and the
planner's push jitter, so a run is fully reproducible.

Timestamps are laid out from a fixed base date at 09:00, 12:00, 16:00 and
20:00, so the run crosses time buckets and calendar days the same way every
time.

Usage:
    python -m focusplan.planning.simulate --action list
    python -m focusplan.planning.simulate --action run --profile steady
    python -m focusplan.planning.simulate --action run --profile gaps --strategy WAVE_ONLY
"""

from __future__ import annotations

import argparse
import json
import random
import sys
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from focusplan.logging_config import get_logger, log_context, setup_logging
from focusplan.planning.blend_engine import build_planning_metrics
from focusplan.planning.config import PlannerConfig, load_config
from focusplan.planning.models import PlanContext, SessionRecord, round_half_up
from focusplan.planning.planner import WavePlanner
from focusplan.planning.session_outcome import evaluate_session

logger = get_logger(__name__)

SIM_BASE_DATE = datetime(2026, 1, 5)
SESSION_HOURS = [9, 12, 16, 20]


@dataclass
class UserModel:
    base_skill: float = 0.5
    learn_rate: float = 0.01
    noise: float = 0.1
    fatigue: float = 0.06
    plateau_day: int | None = None
    gap_every: int | None = None


@dataclass
class SimProfile:
    name: str
    seed: int
    days: int
    blocks_per_day: int
    model: UserModel = field(default_factory=UserModel)


PROFILES = {
    "steady": SimProfile(
        name="Steady improver",
        seed=1337,
        days=10,
        blocks_per_day=4,
        model=UserModel(base_skill=0.55, learn_rate=0.015, noise=0.08, fatigue=0.06),
    ),
    "volatile": SimProfile(
        name="Volatile",
        seed=2025,
        days=10,
        blocks_per_day=4,
        model=UserModel(base_skill=0.50, learn_rate=0.010, noise=0.18, fatigue=0.08),
    ),
    "plateau": SimProfile(
        name="Plateau then adapt",
        seed=4242,
        days=14,
        blocks_per_day=4,
        model=UserModel(base_skill=0.58, learn_rate=0.006, noise=0.10, fatigue=0.07, plateau_day=6),
    ),
    "gaps": SimProfile(
        name="Gaps / inconsistent schedule",
        seed=9001,
        days=18,
        blocks_per_day=3,
        model=UserModel(base_skill=0.55, learn_rate=0.012, noise=0.12, fatigue=0.06, gap_every=4),
    ),
    "elite": SimProfile(
        name="Already strong",
        seed=777,
        days=10,
        blocks_per_day=4,
        model=UserModel(base_skill=0.75, learn_rate=0.004, noise=0.06, fatigue=0.05),
    ),
}


@dataclass
class _UserState:
    skill: float
    day_index: int = 0
    block_index_today: int = 0


def _clamp(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, x))


def session_time(day_index: int, block_index: int) -> datetime:
    hour = SESSION_HOURS[block_index % len(SESSION_HOURS)]
    return SIM_BASE_DATE + timedelta(days=day_index, hours=hour)


def simulate_focus_seconds(goal_sec: int, state: _UserState, model: UserModel, rng: random.Random) -> int:
    """How long the synthetic user manages to focus on a goal.

    Skill grows a little after every session (until plateau_day) and is
    dragged down by noise and same-day fatigue. At skill 0.5 the user lands
    near 90% of the goal, at 0.8 near 110%. A few sessions are cut short by
    interruptions or distraction.
    """
    noise = (rng.random() * 2 - 1) * model.noise
    fatigue = state.block_index_today * model.fatigue
    skill = _clamp(state.skill + noise - fatigue, 0.05, 0.95)

    learning_stopped = model.plateau_day is not None and state.day_index >= model.plateau_day
    learn_rate = 0.0 if learning_stopped else model.learn_rate
    state.skill = _clamp(state.skill + learn_rate, 0.05, 0.95)

    base_mult = 0.45 + 0.9 * skill
    jitter = (rng.random() * 2 - 1) * 0.20
    mult = _clamp(base_mult + jitter, 0.40, 1.40)
    duration = round_half_up(goal_sec * mult)

    # Hard interruption
    if rng.random() < 0.05:
        return round_half_up(goal_sec * 0.3)
    # Early quit
    if rng.random() < 0.08:
        return round_half_up(goal_sec * (0.55 + rng.random() * 0.15))
    return duration


def run_scenario(profile: SimProfile | str, config: PlannerConfig | None = None) -> list[SessionRecord]:
    """
    Run one synthetic user through the planner.

    Args:
        profile: SimProfile or a key of PROFILES
        config: Planner configuration (defaults if omitted)

    Returns:
        The generated history, oldest first
    """
    if isinstance(profile, str):
        profile = PROFILES[profile]
    config = config or PlannerConfig()
    rng = random.Random(profile.seed)

    planner = WavePlanner(config, user_id=f"sim-{profile.seed}", rng=rng)
    history: list[SessionRecord] = []
    user = _UserState(skill=profile.model.base_skill)

    for day in range(profile.days):
        if profile.model.gap_every and day > 0 and day % profile.model.gap_every == 0:
            continue
        user.day_index = day
        user.block_index_today = 0

        for block in range(profile.blocks_per_day):
            now = session_time(day, block)
            planning = build_planning_metrics(history, now, config)
            context = PlanContext(
                blocks_today=block,
                bucket=planning.bucket,
                bucket_sessions=planning.bucket_sessions,
                now=now,
            )
            plan = planner.plan_next(history, planning.metrics, context)

            focus = simulate_focus_seconds(plan.goal_sec, user, profile.model, rng)
            stop_reason = "COMPLETED" if focus >= plan.goal_sec else "DISTRACTED"
            record = evaluate_session(
                focus,
                plan,
                planning.metrics,
                stop_reason,
                now + timedelta(seconds=focus),
                block,
                breaks=config.breaks,
            )
            history.append(record)
            planner.update_after_block(record)
            user.block_index_today += 1

    logger.debug(f"Simulated {len(history)} sessions for profile {profile.name}")
    return history


def summarize(history: list[SessionRecord]) -> dict[str, Any]:
    if not history:
        return {"count": 0}
    wave = [r for r in history if r.phase == "WAVE"]
    return {
        "count": len(history),
        "first_goal_sec": history[0].goal_seconds,
        "last_goal_sec": history[-1].goal_seconds,
        "last_floor_sec": history[-1].floor_seconds,
        "wins": sum(1 for r in history if r.is_win),
        "crashes": sum(1 for r in history if r.crash),
        "wave_sessions": len(wave),
        "push_sessions": sum(1 for r in wave if r.is_push),
        "first_wave_index": history.index(wave[0]) if wave else None,
    }


def main():
    parser = argparse.ArgumentParser(description="Planner Simulation")
    parser.add_argument("--action", required=True, choices=["run", "list"], help="Action to perform")
    parser.add_argument("--profile", choices=sorted(PROFILES), default="steady", help="Synthetic user profile")
    parser.add_argument("--strategy", choices=["LINEAR_THEN_WAVE", "WAVE_ONLY"], help="Override training strategy")
    parser.add_argument("--sessions", action="store_true", help="Include every generated session in the output")

    args = parser.parse_args()
    setup_logging()

    if args.action == "list":
        result = {
            "success": True,
            "profiles": {key: {"name": p.name, "days": p.days, "blocks_per_day": p.blocks_per_day}
                         for key, p in PROFILES.items()},
        }
    else:
        overrides = {"wave": {"training_strategy": args.strategy}} if args.strategy else None
        config = load_config(overrides=overrides)
        with log_context(action="simulate", profile=args.profile):
            history = run_scenario(args.profile, config)
        result = {
            "success": True,
            "message": f"Simulated {len(history)} sessions ({args.profile})",
            "summary": summarize(history),
        }
        if args.sessions:
            result["sessions"] = [r.to_dict() for r in history]

    if result.get("success"):
        print(f"OK {result.get('message', 'Success')}")
    else:
        print(f"ERROR {result.get('error')}")
        sys.exit(1)

    print(json.dumps(result, indent=2, default=str))


if __name__ == "__main__":
    main()
