"""Planning data models.

Defines the records the planner reads and writes:
    SessionRecord (history, read-only) -> Metrics (per call) -> Plan (output)
    PlannerState (persisted between calls)
"""

from __future__ import annotations

import copy
import math
from dataclasses import asdict, dataclass, field, fields
from datetime import date, datetime
from enum import Enum
from typing import Any


class Phase(str, Enum):
    """Long-running training phase."""

    LINEAR = "LINEAR"
    WAVE = "WAVE"


class BlockType(str, Enum):
    """Kind of session inside a phase."""

    CONSOLIDATE = "CONSOLIDATE"
    PUSH = "PUSH"

    @classmethod
    def normalize(cls, value: Any) -> BlockType:
        """Map stored values, including retired push variants, onto current types."""
        text = str(getattr(value, "value", value) or "").upper()
        if text.startswith("PUSH"):
            return cls.PUSH
        return cls.CONSOLIDATE


class PlanMode(str, Enum):
    """Which branch of the state machine produced a plan."""

    BOOT = "BOOT"
    LINEAR = "LINEAR"
    WAVE = "WAVE"
    WAVE_EASY = "WAVE_EASY"


class MomentumLevel(str, Enum):
    HIGH = "HIGH"
    MID = "MID"
    LOW = "LOW"


class Intensity(str, Enum):
    """User-selected difficulty; picks a point inside the target band."""

    EASY = "Easy"
    BALANCED = "Balanced"
    HARD = "Hard"

    @classmethod
    def parse(cls, value: Any) -> Intensity:
        text = str(getattr(value, "value", value) or "").strip().lower()
        for member in cls:
            if member.value.lower() == text:
                return member
        return cls.BALANCED


# ─────────────────────────────────────────────────────────────────────────────
# Coercion helpers
# ─────────────────────────────────────────────────────────────────────────────


def to_seconds(value: Any) -> float | None:
    """Finite number or None. Never raises."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def _to_int(value: Any, default: int = 0) -> int:
    number = to_seconds(value)
    if number is None:
        return default
    return int(number)


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes")
    return bool(value)


def parse_timestamp(value: Any) -> datetime | None:
    """Accept datetimes, dates and ISO strings ('2026-01-05 09:00:00' included)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


def round_half_up(value: float) -> int:
    """Round to the nearest integer second, halves away from zero for positives."""
    return int(math.floor(value + 0.5))


# ─────────────────────────────────────────────────────────────────────────────
# Session history
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class SessionRecord:
    """One completed (or recovered) focus session.

    Created once when the session ends and never changed afterwards. Only
    focus_seconds is required for the math; everything else is context the
    caller captured at the time.
    """

    focus_seconds: float | None
    goal_seconds: float | None = None
    timestamp: datetime | None = None
    bucket: str | None = None

    # Planning context at session start
    phase: str = Phase.LINEAR.value
    block_type: str = BlockType.CONSOLIDATE.value
    target_low_seconds: int = 0
    target_high_seconds: int = 0
    push_target_seconds: int = 0
    wave_cycle_id: int = 0
    wave_cycle_pos: int = 0
    fatigue_factor: float = 1.0
    momentum_rate: float | None = None
    blocks_today: int = 0

    # Outcome
    validity: str = "valid"
    stop_reason: str | None = None
    is_win: bool = False
    push_hit: bool = False
    crash: bool = False
    overshoot: bool = False
    break_seconds: int = 0

    # Metric snapshots
    floor_seconds: int = 0
    floor_global_seconds: float | None = None
    floor_bucket_seconds: float | None = None
    floor_effective_seconds: float | None = None
    median_global_seconds: float | None = None
    median_bucket_seconds: float | None = None
    median_effective_seconds: float | None = None
    ceiling_global_seconds: float | None = None
    ceiling_bucket_seconds: float | None = None
    ceiling_effective_seconds: float | None = None
    crash_threshold_seconds: float | None = None
    overshoot_threshold_seconds: float | None = None

    @property
    def is_push(self) -> bool:
        return BlockType.normalize(self.block_type) is BlockType.PUSH

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat() if self.timestamp else None
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionRecord:
        """Build a record from loosely typed storage data.

        Malformed numbers become None rather than raising, so a damaged row
        is kept in history but ignored by the percentile math.
        """
        goal = data.get("goal_seconds", data.get("goal_sec", data.get("goal")))
        kwargs: dict[str, Any] = {
            "focus_seconds": to_seconds(data.get("focus_seconds")),
            "goal_seconds": to_seconds(goal),
            "timestamp": parse_timestamp(data.get("timestamp")),
            "bucket": data.get("bucket"),
            "phase": str(data.get("phase") or Phase.LINEAR.value),
            "block_type": BlockType.normalize(data.get("block_type")).value,
            "validity": str(data.get("validity") or "valid"),
            "stop_reason": data.get("stop_reason"),
            "momentum_rate": to_seconds(data.get("momentum_rate")),
        }
        for name in (
            "target_low_seconds",
            "target_high_seconds",
            "push_target_seconds",
            "wave_cycle_id",
            "wave_cycle_pos",
            "blocks_today",
            "break_seconds",
            "floor_seconds",
        ):
            kwargs[name] = _to_int(data.get(name))
        for name in ("is_win", "push_hit", "crash", "overshoot"):
            kwargs[name] = _to_bool(data.get(name, False))
        fatigue = to_seconds(data.get("fatigue_factor"))
        kwargs["fatigue_factor"] = 1.0 if fatigue is None else fatigue
        for f in fields(cls):
            if f.name.endswith(("_global_seconds", "_bucket_seconds", "_effective_seconds", "_threshold_seconds")):
                kwargs[f.name] = to_seconds(data.get(f.name))
        return cls(**kwargs)


# ─────────────────────────────────────────────────────────────────────────────
# Metrics
# ─────────────────────────────────────────────────────────────────────────────


@dataclass
class Metrics:
    """Percentile snapshot of history. Recomputed on every planning call."""

    floor: float | None = None
    median: float | None = None
    ceiling: float | None = None
    iqr: float | None = None

    recent_iqr: float | None = None
    recent_crashes: int = 0
    recent_overshoots_7: int = 0
    recent_n: int = 0
    recent_n_valid: int = 0

    crash_threshold: float | None = None
    overshoot_threshold: float | None = None
    sample_n: int = 0

    # Populated by blending
    bucket_weight: float = 0.0
    bucket_n: int = 0
    floor_global: float | None = None
    floor_bucket: float | None = None
    median_global: float | None = None
    median_bucket: float | None = None
    ceiling_global: float | None = None
    ceiling_bucket: float | None = None
    iqr_global: float | None = None
    iqr_bucket: float | None = None

    @property
    def available(self) -> bool:
        return self.floor is not None and self.median is not None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class Momentum:
    """Rolling goal-hit rate over recent goal-bearing sessions."""

    rate: float = 0.5
    level: MomentumLevel = MomentumLevel.MID
    wins: int = 0
    n: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"rate": self.rate, "level": self.level.value, "wins": self.wins, "n": self.n}


# ─────────────────────────────────────────────────────────────────────────────
# Planner state
# ─────────────────────────────────────────────────────────────────────────────


@dataclass
class PlannerState:
    """Everything the planner remembers between calls for one user."""

    phase: Phase = Phase.LINEAR
    linear_goal_sec: int = 0
    cycle_id: int = 0
    cycle_pos: int = 0
    cycle: list[BlockType] = field(default_factory=list)
    forced_easy: int = 0
    forced_recovery: bool = False
    floor_sec: int | None = None
    floor_date: str | None = None
    earned_milestones: list[int] = field(default_factory=list)
    prev_recent_iqr: float | None = None

    def copy(self) -> PlannerState:
        return copy.deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.phase.value,
            "linear_goal_sec": self.linear_goal_sec,
            "cycle_id": self.cycle_id,
            "cycle_pos": self.cycle_pos,
            "cycle": [bt.value for bt in self.cycle],
            "forced_easy": self.forced_easy,
            "forced_recovery": self.forced_recovery,
            "floor_sec": self.floor_sec,
            "floor_date": self.floor_date,
            "earned_milestones": list(self.earned_milestones),
            "prev_recent_iqr": self.prev_recent_iqr,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PlannerState:
        """Rebuild state from a stored blob, repairing anything out of shape."""
        if not isinstance(data, dict):
            raise ValueError("planner state must be a mapping")

        phase = Phase.WAVE if str(data.get("mode", data.get("phase"))) == Phase.WAVE.value else Phase.LINEAR
        cycle_raw = data.get("cycle")
        cycle = [BlockType.normalize(bt) for bt in cycle_raw] if isinstance(cycle_raw, list) else []
        cycle_pos = max(0, _to_int(data.get("cycle_pos")))
        if cycle_pos >= len(cycle):
            # Exhausted or inconsistent: regenerate at the next planning call
            cycle, cycle_pos = [], 0

        floor = to_seconds(data.get("floor_sec"))
        milestones_raw = data.get("earned_milestones")
        milestones = (
            sorted({_to_int(ms) for ms in milestones_raw if to_seconds(ms) is not None})
            if isinstance(milestones_raw, list)
            else []
        )
        floor_date = data.get("floor_date")

        return cls(
            phase=phase,
            linear_goal_sec=max(0, _to_int(data.get("linear_goal_sec"))),
            cycle_id=max(0, _to_int(data.get("cycle_id"))),
            cycle_pos=cycle_pos,
            cycle=cycle,
            forced_easy=max(0, _to_int(data.get("forced_easy"))),
            forced_recovery=_to_bool(data.get("forced_recovery", False)),
            floor_sec=None if floor is None else int(floor),
            floor_date=str(floor_date) if floor_date else None,
            earned_milestones=milestones,
            prev_recent_iqr=to_seconds(data.get("prev_recent_iqr")),
        )


# ─────────────────────────────────────────────────────────────────────────────
# Planning call input / output
# ─────────────────────────────────────────────────────────────────────────────


@dataclass
class PlanContext:
    """Per-call context supplied by the caller."""

    intensity: Intensity = Intensity.BALANCED
    blocks_today: int = 0
    bucket: str | None = None
    bucket_sessions: list[SessionRecord] | None = None
    now: datetime | None = None


@dataclass
class Plan:
    """The planner's answer for the next session."""

    phase: Phase
    block_type: BlockType
    mode: PlanMode
    target_low: int
    target_high: int
    push_target: int
    goal_sec: int
    raw_goal_sec: int
    floor_sec: int
    min_goal_sec: int
    tier: int
    wave_cycle_id: int
    wave_cycle_pos: int
    fatigue_factor: float
    momentum: Momentum
    blocks_today: int = 0
    cycle_preview: str | None = None
    new_milestone: int | None = None
    earned_milestones: list[int] = field(default_factory=list)
    debug: dict[str, Any] = field(default_factory=dict)

    @property
    def is_push(self) -> bool:
        return self.block_type is BlockType.PUSH

    def to_dict(self) -> dict[str, Any]:
        return {
            "phase": self.phase.value,
            "block_type": self.block_type.value,
            "mode": self.mode.value,
            "target_low": self.target_low,
            "target_high": self.target_high,
            "push_target": self.push_target,
            "goal_sec": self.goal_sec,
            "raw_goal_sec": self.raw_goal_sec,
            "floor_sec": self.floor_sec,
            "min_goal_sec": self.min_goal_sec,
            "tier": self.tier,
            "wave_cycle_id": self.wave_cycle_id,
            "wave_cycle_pos": self.wave_cycle_pos,
            "fatigue_factor": self.fatigue_factor,
            "momentum": self.momentum.to_dict(),
            "blocks_today": self.blocks_today,
            "cycle_preview": self.cycle_preview,
            "new_milestone": self.new_milestone,
            "earned_milestones": list(self.earned_milestones),
            "debug": self.debug,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Plan:
        """Rebuild a plan saved with to_dict (e.g. between a plan and its record)."""
        momentum = data.get("momentum") or {}
        level = str(momentum.get("level") or MomentumLevel.MID.value)
        return cls(
            phase=Phase.WAVE if data.get("phase") == Phase.WAVE.value else Phase.LINEAR,
            block_type=BlockType.normalize(data.get("block_type")),
            mode=PlanMode(data.get("mode") or PlanMode.BOOT.value),
            target_low=_to_int(data.get("target_low")),
            target_high=_to_int(data.get("target_high")),
            push_target=_to_int(data.get("push_target")),
            goal_sec=_to_int(data.get("goal_sec")),
            raw_goal_sec=_to_int(data.get("raw_goal_sec")),
            floor_sec=_to_int(data.get("floor_sec")),
            min_goal_sec=_to_int(data.get("min_goal_sec")),
            tier=_to_int(data.get("tier"), 1),
            wave_cycle_id=_to_int(data.get("wave_cycle_id")),
            wave_cycle_pos=_to_int(data.get("wave_cycle_pos")),
            fatigue_factor=to_seconds(data.get("fatigue_factor")) or 1.0,
            momentum=Momentum(
                rate=to_seconds(momentum.get("rate")) or 0.0,
                level=MomentumLevel(level) if level in MomentumLevel.__members__ else MomentumLevel.MID,
                wins=_to_int(momentum.get("wins")),
                n=_to_int(momentum.get("n")),
            ),
            blocks_today=_to_int(data.get("blocks_today")),
            cycle_preview=data.get("cycle_preview"),
            new_milestone=data.get("new_milestone"),
            earned_milestones=list(data.get("earned_milestones") or []),
            debug=dict(data.get("debug") or {}),
        )
