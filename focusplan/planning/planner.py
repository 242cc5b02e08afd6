"""
Planner: decide the next focus session

State machine over a user's training history:

    BOOT       not enough valid sessions yet; fixed 20-30 min calibration band
    LINEAR     progressive goal raising until progress plateaus
    WAVE       push / consolidate cycles sized by momentum (terminal phase)
    WAVE_EASY  forced recovery sessions inside WAVE after crashes or an
               unstable stretch; the phase itself does not change

One WavePlanner serves one user. Its state is loaded from the injected store
at construction and written back after every plan_next and
update_after_block. Changes are made on a copy of the state and only adopted
once the store has been asked to save it, so the stored blob is always
either the old state or the new one.

Usage:
    from focusplan.planning.planner import WavePlanner

    planner = WavePlanner(config, store=SQLiteStateStore(), user_id="alice")
    plan = planner.plan_next(history)
    ...  # user runs the session
    planner.update_after_block(record)
"""

from __future__ import annotations

import random
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from focusplan.logging_config import get_logger
from focusplan.planning.blend_engine import build_planning_metrics
from focusplan.planning.config import PlannerConfig
from focusplan.planning.floor_engine import RawFloor, compute_raw_floor, update_effective_floor
from focusplan.planning.goal_engine import (
    compute_adaptive_min_goal,
    compute_linear_band,
    compute_linear_goal,
    compute_wave_easy_goal,
    compute_wave_goal,
    pick_goal_from_band,
)
from focusplan.planning.models import (
    BlockType,
    Intensity,
    Metrics,
    Momentum,
    Phase,
    Plan,
    PlanContext,
    PlanMode,
    PlannerState,
    SessionRecord,
    round_half_up,
)
from focusplan.planning.state_store import MemoryStateStore, StateStore, StateStoreError
from focusplan.planning.wave_engine import (
    compute_momentum,
    crash_recovery,
    cycle_preview,
    detect_plateau,
    drop_to_stability,
    fatigue_factor,
    momentum_level,
    start_new_cycle,
    tier_for_seconds,
)

logger = get_logger(__name__)


@dataclass
class FloorInfo:
    effective_floor_sec: int | None
    raw_effective_sec: int | None
    raw_global: RawFloor
    raw_bucket: RawFloor
    bucket_weight: float
    new_milestone: int | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "effective_floor_sec": self.effective_floor_sec,
            "raw_effective_sec": self.raw_effective_sec,
            "raw_global_sec": self.raw_global.raw_floor_sec,
            "raw_global_n": self.raw_global.sample_n,
            "raw_bucket_sec": self.raw_bucket.raw_floor_sec,
            "raw_bucket_n": self.raw_bucket.sample_n,
            "bucket_weight": self.bucket_weight,
        }


class WavePlanner:
    """Adaptive planner for one user context."""

    def __init__(
        self,
        config: PlannerConfig | None = None,
        store: StateStore | None = None,
        user_id: str = "default",
        rng: random.Random | None = None,
    ):
        """
        Args:
            config: Planner configuration (defaults if omitted)
            store: Where the state blob lives (in-memory if omitted)
            user_id: Key for this user's state in the store
            rng: Source for push-target jitter; pass a seeded Random for
                reproducible plans
        """
        self.config = config or PlannerConfig()
        self.store = store if store is not None else MemoryStateStore()
        self.user_id = user_id
        self.rng = rng if rng is not None else random.Random()

        self.state = self._load_state()

        self._version = 0
        self._cache_key: tuple[int, int] | None = None
        self._cached_plan: Plan | None = None

    # ── State & cache ────────────────────────────

    @property
    def version(self) -> int:
        """Bumped by every call that changes state outside plan_next."""
        return self._version

    def _load_state(self) -> PlannerState:
        try:
            blob = self.store.load(self.user_id)
        except StateStoreError as e:
            logger.warning(f"Could not read planner state for {self.user_id}: {e}, starting fresh")
            return PlannerState()
        if blob is None:
            return PlannerState()
        try:
            return PlannerState.from_dict(blob)
        except (TypeError, ValueError) as e:
            logger.warning(f"Corrupt planner state for {self.user_id}: {e}, starting fresh")
            return PlannerState()

    def _persist(self, state: PlannerState) -> None:
        try:
            self.store.save(self.user_id, state.to_dict())
        except StateStoreError as e:
            logger.error(f"Failed to persist planner state for {self.user_id}: {e}")
        self.state = state

    def invalidate(self) -> None:
        self._version += 1
        self._cache_key = None
        self._cached_plan = None

    def set_config(self, config: PlannerConfig) -> None:
        self.config = config
        self.invalidate()

    def reset(self) -> None:
        """Forget everything learned for this user."""
        try:
            self.store.clear(self.user_id)
        except StateStoreError as e:
            logger.error(f"Failed to clear planner state for {self.user_id}: {e}")
        self.state = PlannerState()
        self.invalidate()
        logger.info(f"Planner state reset for {self.user_id}")

    # ── Floor ────────────────────────────────────

    def _update_floor(
        self,
        state: PlannerState,
        history: Sequence[SessionRecord],
        eval_sessions: Sequence[SessionRecord],
        metrics: Metrics,
        now: datetime,
    ) -> FloorInfo:
        fc = self.config.floor_engine

        raw_global = compute_raw_floor(history, fc.window_n, fc.percentile, fc.min_frac_goal)
        raw_bucket = compute_raw_floor(eval_sessions, fc.window_n, fc.percentile, fc.min_frac_goal)

        bw = metrics.bucket_weight or 0.0
        raw_eff = raw_global.raw_floor_sec
        if raw_bucket.raw_floor_sec is not None:
            if raw_global.raw_floor_sec is None:
                raw_eff = raw_bucket.raw_floor_sec
            else:
                raw_eff = round_half_up((1 - bw) * raw_global.raw_floor_sec + bw * raw_bucket.raw_floor_sec)

        # One update per plan_next; the drop guard is per update, not per day
        update = update_effective_floor(
            state.floor_sec,
            raw_eff,
            now,
            state.floor_date,
            up_rate=fc.up_rate,
            down_rate=fc.down_rate,
            max_daily_drop_frac=fc.max_daily_drop_frac,
        )
        if update.floor_sec != state.floor_sec:
            logger.debug(f"Effective floor {state.floor_sec} -> {update.floor_sec} (raw {raw_eff})")
        state.floor_sec = update.floor_sec
        state.floor_date = update.ymd

        new_milestone = None
        if update.floor_sec is not None:
            for minutes in self.config.wave.floor_milestones:
                if update.floor_sec >= minutes * 60 and minutes not in state.earned_milestones:
                    state.earned_milestones.append(minutes)
                    new_milestone = minutes
            state.earned_milestones.sort()

        return FloorInfo(
            effective_floor_sec=update.floor_sec,
            raw_effective_sec=raw_eff,
            raw_global=raw_global,
            raw_bucket=raw_bucket,
            bucket_weight=bw,
            new_milestone=new_milestone,
        )

    # ── Cycles ───────────────────────────────────

    def _start_cycle(self, state: PlannerState, momentum: Momentum) -> None:
        w = self.config.wave
        if state.forced_recovery:
            level = momentum_level(0.0, w.momentum_high_threshold, w.momentum_low_threshold)
            state.forced_recovery = False
        else:
            level = momentum.level
        state.cycle_id, state.cycle_pos, state.cycle = start_new_cycle(state.cycle_id, level)
        logger.debug(f"Cycle {state.cycle_id} generated at {level.value} momentum: {[bt.value for bt in state.cycle]}")

    # ── Main planning ────────────────────────────

    def plan_next(
        self,
        history: Sequence[SessionRecord],
        metrics: Metrics | None = None,
        context: PlanContext | None = None,
    ) -> Plan:
        """
        Plan the next session.

        Args:
            history: All session records, oldest first
            metrics: Precomputed (blended) metrics; computed here if omitted
            context: Intensity, sessions completed today, bucket sample, clock

        Returns:
            Plan. Repeated calls with the same history length return the
            cached plan until something invalidates it.
        """
        history = list(history or [])
        context = context or PlanContext()
        key = (self._version, len(history))
        if self._cache_key == key and self._cached_plan is not None:
            return self._cached_plan

        cfg = self.config
        w = cfg.wave
        now = context.now or datetime.now()

        bucket = context.bucket
        bucket_sessions = context.bucket_sessions
        if metrics is None:
            planning = build_planning_metrics(history, now, cfg)
            metrics = planning.metrics
            bucket = bucket or planning.bucket
            if bucket_sessions is None:
                bucket_sessions = planning.bucket_sessions
        eval_sessions = list(bucket_sessions) if bucket_sessions else history

        state = self.state.copy()
        intensity = Intensity.parse(context.intensity)
        blocks_today = max(0, int(context.blocks_today or 0))
        fatigue = fatigue_factor(blocks_today, w.fatigue_rate_per_block, w.fatigue_floor)

        floor_info = self._update_floor(state, history, eval_sessions, metrics, now)
        momentum = compute_momentum(history, w.momentum_window, w.momentum_high_threshold, w.momentum_low_threshold)

        common = {
            "fatigue_factor": fatigue,
            "momentum": momentum,
            "blocks_today": blocks_today,
            "new_milestone": floor_info.new_milestone,
            "earned_milestones": list(state.earned_milestones),
        }
        debug: dict[str, Any] = {
            "strategy": w.training_strategy,
            "intensity": intensity.value,
            "bucket": bucket,
            "bucket_n": metrics.bucket_n,
            "bucket_weight": metrics.bucket_weight,
            "floor_engine": floor_info.to_dict(),
        }

        # ── BOOT ──
        if not metrics.available:
            low = round_half_up(w.start_goal_band_low_minutes * 60)
            high = round_half_up(w.start_goal_band_high_minutes * 60)
            goal = pick_goal_from_band(low, high, intensity)
            plan = Plan(
                phase=Phase.LINEAR,
                block_type=BlockType.CONSOLIDATE,
                mode=PlanMode.BOOT,
                target_low=low,
                target_high=high,
                push_target=0,
                goal_sec=goal,
                raw_goal_sec=goal,
                floor_sec=0,
                min_goal_sec=round_half_up(w.milestone_minutes * 60),
                tier=1,
                wave_cycle_id=state.cycle_id,
                wave_cycle_pos=0,
                debug={**debug, "mode": PlanMode.BOOT.value, "sample_n": metrics.sample_n},
                **common,
            )
            return self._commit(state, plan, key)

        floor_raw = metrics.floor
        if floor_info.effective_floor_sec is not None:
            floor = floor_info.effective_floor_sec
        else:
            floor = round_half_up(floor_raw)
        median = metrics.median
        ceiling = metrics.ceiling if metrics.ceiling is not None else median

        min_goal = compute_adaptive_min_goal(floor, w)
        tier = tier_for_seconds(floor)
        plateau = detect_plateau(eval_sessions, w, cfg.floor_engine.min_frac_goal)

        # ── Phase transition ──
        if w.training_strategy == "LINEAR_THEN_WAVE":
            if state.phase is not Phase.WAVE and plateau.plateau:
                state.phase = Phase.WAVE
                state.linear_goal_sec = 0
                self._start_cycle(state, momentum)
                logger.info(f"Plateau detected for {self.user_id}: LINEAR -> WAVE")
        elif state.phase is not Phase.WAVE:
            state.phase = Phase.WAVE
            logger.info(f"Strategy {w.training_strategy} for {self.user_id}: starting in WAVE")

        # ── Stability gate ──
        unstable = False
        if state.phase is Phase.WAVE:
            unstable = drop_to_stability(metrics, state.prev_recent_iqr, cfg.analytics)
            if unstable:
                state.forced_easy = max(state.forced_easy, w.forced_easy_hard_crash)
                logger.info(f"Stability gate tripped for {self.user_id}, forcing easy sessions")
        if metrics.recent_iqr is not None:
            state.prev_recent_iqr = metrics.recent_iqr

        debug.update(
            {
                "tier": tier,
                "floor_raw": floor_raw,
                "floor_effective": floor,
                "plateau": plateau.to_dict(),
                "stability_tripped": unstable,
                "momentum_rate": momentum.rate,
                "momentum_level": momentum.level.value,
            }
        )

        # ── LINEAR ──
        if state.phase is Phase.LINEAR:
            band = compute_linear_band(floor, median, w)
            lin = compute_linear_goal(
                band, min_goal, intensity, state.linear_goal_sec, eval_sessions, tier, fatigue, w
            )
            state.linear_goal_sec = lin.next_linear_goal_sec
            plan = Plan(
                phase=Phase.LINEAR,
                block_type=BlockType.CONSOLIDATE,
                mode=PlanMode.LINEAR,
                target_low=band.low,
                target_high=band.high,
                push_target=0,
                goal_sec=lin.goal_sec,
                raw_goal_sec=lin.raw_goal_sec,
                floor_sec=floor,
                min_goal_sec=min_goal,
                tier=tier,
                wave_cycle_id=state.cycle_id,
                wave_cycle_pos=0,
                debug={
                    **debug,
                    "mode": PlanMode.LINEAR.value,
                    "success": lin.success,
                    "win_n": lin.win_n,
                    "bumped": lin.bumped,
                },
                **common,
            )
            return self._commit(state, plan, key)

        # ── WAVE ──
        if not state.cycle:
            self._start_cycle(state, momentum)

        if state.forced_easy > 0:
            state.forced_easy -= 1
            band, goal, raw_goal = compute_wave_easy_goal(floor, median, min_goal, intensity, fatigue, w)
            plan = Plan(
                phase=Phase.WAVE,
                block_type=BlockType.CONSOLIDATE,
                mode=PlanMode.WAVE_EASY,
                target_low=band.low,
                target_high=band.high,
                push_target=0,
                goal_sec=goal,
                raw_goal_sec=raw_goal,
                floor_sec=floor,
                min_goal_sec=min_goal,
                tier=tier,
                wave_cycle_id=state.cycle_id,
                wave_cycle_pos=state.cycle_pos + 1,
                cycle_preview=cycle_preview(state.cycle, w.wave_visibility),
                debug={**debug, "mode": PlanMode.WAVE_EASY.value, "forced_easy_left": state.forced_easy},
                **common,
            )
            return self._commit(state, plan, key)

        block_type = state.cycle[state.cycle_pos]
        state.cycle_pos += 1
        preview = cycle_preview(state.cycle, w.wave_visibility)
        position = state.cycle_pos
        if state.cycle_pos >= len(state.cycle):
            # Exhausted; the next call generates a fresh cycle from current momentum
            state.cycle, state.cycle_pos = [], 0

        wave = compute_wave_goal(
            block_type, floor, median, ceiling, min_goal, intensity, momentum.level, fatigue, w, self.rng
        )
        plan = Plan(
            phase=Phase.WAVE,
            block_type=block_type,
            mode=PlanMode.WAVE,
            target_low=wave.band.low,
            target_high=wave.band.high,
            push_target=wave.push_target,
            goal_sec=wave.goal_sec,
            raw_goal_sec=wave.raw_goal_sec,
            floor_sec=floor,
            min_goal_sec=min_goal,
            tier=tier,
            wave_cycle_id=state.cycle_id,
            wave_cycle_pos=position,
            cycle_preview=preview,
            debug={
                **debug,
                "mode": PlanMode.WAVE.value,
                "base_goal_sec": wave.base_goal_sec,
                "raw_push_target": wave.raw_push_target,
            },
            **common,
        )
        return self._commit(state, plan, key)

    def _commit(self, state: PlannerState, plan: Plan, key: tuple[int, int]) -> Plan:
        self._persist(state)
        self._cache_key = key
        self._cached_plan = plan
        logger.debug(
            f"Planned {plan.mode.value}/{plan.block_type.value} for {self.user_id}: "
            f"goal={plan.goal_sec}s floor={plan.floor_sec}s push={plan.push_target}s"
        )
        return plan

    # ── Post-session update ──────────────────────

    def update_after_block(self, record: SessionRecord) -> None:
        """Fold a finished session into the recovery policy.

        Outside WAVE this only clears leftover forced-easy sessions. Inside
        WAVE a crash schedules easy sessions, and a hard crash also makes the
        next cycle recovery-biased.
        """
        self.invalidate()
        w = self.config.wave
        state = self.state.copy()

        if state.phase is not Phase.WAVE:
            state.forced_easy = 0
            self._persist(state)
            return

        if record.crash:
            recovery = crash_recovery(
                float(record.focus_seconds or 0),
                float(record.crash_threshold_seconds or 0),
                int(record.blocks_today or 0),
                w,
            )
            state.forced_easy = recovery.forced_easy
            if recovery.forced_recovery:
                state.forced_recovery = True
            logger.info(
                f"Crash ({recovery.severity}) for {self.user_id}: "
                f"{recovery.forced_easy} easy session(s), recovery mode={state.forced_recovery}"
            )

        self._persist(state)
