"""Planner configuration models (args/planner.yaml).

Every field has a default, so a missing key never fails. Numeric fields that
declare a ``clamp`` range are pulled back into that range instead of being
rejected, and values that cannot be parsed at all fall back to the field
default. A probability-like knob set to 1.7 in the YAML file behaves like 1.0.
"""

from __future__ import annotations

import math
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from focusplan.logging_config import get_logger
from focusplan.planning import CONFIG_PATH

logger = get_logger(__name__)


def _clamped(default: float, lo: float, hi: float) -> Any:
    return Field(default=default, json_schema_extra={"clamp": [lo, hi]})


class _Section(BaseModel):
    model_config = ConfigDict(extra="allow")

    @field_validator("*", mode="before")
    @classmethod
    def _coerce_numbers(cls, value: Any, info: ValidationInfo) -> Any:
        field_info = cls.model_fields.get(info.field_name)
        extra = field_info.json_schema_extra if field_info else None
        if not isinstance(extra, dict) or "clamp" not in extra:
            return value

        lo, hi = extra["clamp"]
        try:
            number = float(value)
        except (TypeError, ValueError):
            number = float("nan")
        if isinstance(value, bool) or not math.isfinite(number):
            logger.warning(f"Unusable value {value!r} for {info.field_name}, using default")
            return field_info.default
        clamped = min(hi, max(lo, number))
        if clamped != number:
            logger.debug(f"Clamped {info.field_name} from {number} to {clamped}")
        if field_info.annotation is int:
            return int(round(clamped))
        return clamped


class FloorEngineConfig(_Section):
    window_n: int = _clamped(11, 3, 200)
    percentile: float = _clamped(0.35, 0.05, 0.95)
    min_frac_goal: float = _clamped(0.5, 0.0, 1.0)
    up_rate: float = _clamped(0.35, 0.0, 1.0)
    down_rate: float = _clamped(0.10, 0.0, 1.0)
    max_daily_drop_frac: float = _clamped(0.02, 0.0, 0.2)


class AnalyticsConfig(_Section):
    median_percentile: float = _clamped(0.50, 0.05, 0.95)
    ceiling_percentile: float = _clamped(0.80, 0.05, 0.95)
    iqr_low_percentile: float = _clamped(0.25, 0.05, 0.95)
    iqr_high_percentile: float = _clamped(0.75, 0.05, 0.95)
    metrics_window_n: int = _clamped(21, 5, 500)
    recent_window_n: int = _clamped(13, 5, 200)
    overshoot_window_n: int = _clamped(7, 1, 200)

    crash_min_minutes: float = _clamped(8, 0, 240)
    crash_relative_mult: float = _clamped(0.60, 0.0, 1.0)
    overshoot_mult: float = _clamped(1.35, 1.0, 5.0)

    drop_to_stability_if_crashes_ge: int = _clamped(3, 1, 100)
    drop_to_stability_if_overshoots_ge_in7: int = _clamped(3, 1, 100)
    drop_to_stability_if_recent_iqr_widens_pct: float = _clamped(0.35, 0.0, 10.0)

    bucket_min_n: int = _clamped(3, 0, 1000)
    bucket_full_n: int = _clamped(9, 1, 1000)
    bucket_recency_days: int = _clamped(30, 1, 3650)


class WaveConfig(_Section):
    training_strategy: str = Field(default="LINEAR_THEN_WAVE")
    wave_visibility: str = Field(default="Subtle")

    # Goal floors and bands
    start_goal_minutes: float = _clamped(25, 1, 600)
    absolute_min_minutes: float = _clamped(15, 1, 600)
    milestone_minutes: float = _clamped(25, 1, 600)
    adaptive_min_ratio: float = _clamped(0.90, 0.0, 1.0)
    start_goal_band_low_minutes: float = _clamped(20, 1, 600)
    start_goal_band_high_minutes: float = _clamped(30, 1, 600)
    consolidate_band_add_minutes: float = _clamped(4, 0, 120)
    target_band_add_minutes_wave: float = _clamped(6, 0, 120)
    easy_band_add_minutes: float = _clamped(4, 0, 120)

    # Push sizing, fraction above floor by momentum level
    push_pct_high: float = _clamped(0.12, 0.0, 0.5)
    push_pct_mid: float = _clamped(0.08, 0.0, 0.5)
    push_pct_low: float = _clamped(0.05, 0.0, 0.5)
    push_jitter_pct: float = _clamped(0.02, 0.0, 0.5)
    push_cap_add_minutes: float = _clamped(10, 0, 120)

    # Fatigue curve
    fatigue_rate_per_block: float = _clamped(0.06, 0.0, 1.0)
    fatigue_floor: float = _clamped(0.75, 0.0, 1.0)

    # Momentum
    momentum_window: int = _clamped(5, 2, 100)
    momentum_high_threshold: float = _clamped(0.80, 0.0, 1.0)
    momentum_low_threshold: float = _clamped(0.40, 0.0, 1.0)

    # Crash recovery
    forced_easy_mild_crash: int = _clamped(1, 0, 20)
    forced_easy_hard_crash: int = _clamped(2, 0, 20)
    hard_crash_fraction: float = _clamped(0.80, 0.0, 1.0)
    crash_exempt_after_blocks: int = _clamped(3, 0, 100)

    # Plateau detection
    plateau_eval_blocks: int = _clamped(10, 6, 200)
    plateau_fail_ge: int = _clamped(4, 1, 200)
    plateau_flat_improve_pct: float = _clamped(0.01, -1.0, 1.0)
    plateau_volatility_up_pct: float = _clamped(0.15, 0.0, 5.0)

    # Linear progression
    linear_window_blocks: int = _clamped(5, 3, 100)
    linear_success_needed: int = _clamped(3, 1, 100)
    linear_bump_tier1_sec: int = _clamped(120, 0, 3600)
    linear_bump_tier2_sec: int = _clamped(60, 0, 3600)
    linear_bump_tier3_sec: int = _clamped(30, 0, 3600)
    linear_bump_tier4_sec: int = _clamped(15, 0, 3600)

    floor_milestones: list[int] = Field(default_factory=lambda: [15, 20, 25, 30, 40, 50, 60, 75, 90, 120])

    @field_validator("training_strategy", mode="before")
    @classmethod
    def _known_strategy(cls, value: Any) -> str:
        text = str(value or "").upper()
        if text not in ("LINEAR_THEN_WAVE", "WAVE_ONLY"):
            logger.warning(f"Unknown training_strategy {value!r}, using LINEAR_THEN_WAVE")
            return "LINEAR_THEN_WAVE"
        return text

    @field_validator("wave_visibility", mode="before")
    @classmethod
    def _known_visibility(cls, value: Any) -> str:
        text = str(value or "").capitalize()
        return text if text in ("Hidden", "Subtle", "Full") else "Subtle"

    @field_validator("floor_milestones", mode="before")
    @classmethod
    def _milestone_list(cls, value: Any) -> list[int]:
        if not isinstance(value, (list, tuple)):
            return [15, 20, 25, 30, 40, 50, 60, 75, 90, 120]
        out = set()
        for item in value:
            try:
                minutes = int(item)
            except (TypeError, ValueError):
                continue
            if minutes > 0:
                out.add(minutes)
        return sorted(out)


class BreaksConfig(_Section):
    break_percent: float = _clamped(25.0, 0.0, 100.0)
    max_break_minutes: float = _clamped(15, 0, 240)
    min_break_seconds: int = _clamped(60, 0, 3600)
    crash_break_multiplier: float = _clamped(1.5, 0.0, 10.0)
    overshoot_break_multiplier: float = _clamped(1.2, 0.0, 10.0)
    push_break_multiplier: float = _clamped(1.25, 0.0, 10.0)


class PlannerConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    floor_engine: FloorEngineConfig = Field(default_factory=FloorEngineConfig)
    analytics: AnalyticsConfig = Field(default_factory=AnalyticsConfig)
    wave: WaveConfig = Field(default_factory=WaveConfig)
    breaks: BreaksConfig = Field(default_factory=BreaksConfig)

    @field_validator("floor_engine", "analytics", "wave", "breaks", mode="before")
    @classmethod
    def _section_mapping(cls, value: Any) -> Any:
        # A section written as `wave:` with nothing under it loads as None
        return {} if value is None else value


def load_config(path: Path | None = None, overrides: dict[str, Any] | None = None) -> PlannerConfig:
    """Load planner configuration from YAML, falling back to defaults.

    Args:
        path: YAML file to read (default: args/planner.yaml)
        overrides: Section dicts merged over the file contents

    Returns:
        PlannerConfig, never raises
    """
    yaml_path = path or CONFIG_PATH

    try:
        if yaml_path.exists():
            with open(yaml_path) as f:
                raw = yaml.safe_load(f) or {}
        else:
            raw = {}
        if not isinstance(raw, dict):
            raise ValueError(f"expected a mapping at the top of {yaml_path}")
        raw = raw.get("planner", raw)

        for section, values in (overrides or {}).items():
            merged = dict(raw.get(section) or {})
            merged.update(values or {})
            raw[section] = merged

        return PlannerConfig.model_validate(raw)
    except Exception as e:
        logger.warning(f"Config validation failed for {yaml_path}: {e}, using defaults")
        return PlannerConfig()
