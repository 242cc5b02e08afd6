"""Tests for focusplan/planning/config.py

Key behaviors:
- Every key is optional
- Out-of-range numbers are clamped, garbage falls back to the default
- A missing or broken YAML file yields defaults instead of raising
"""

from pathlib import Path

import yaml

from focusplan.planning.config import (
    AnalyticsConfig,
    FloorEngineConfig,
    PlannerConfig,
    WaveConfig,
    load_config,
)


ARGS_DIR = Path(__file__).parent.parent.parent.parent / "args"


# ─────────────────────────────────────────────────────────────────────────────
# Model Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestDefaults:
    """Tests for built-in defaults."""

    def test_floor_engine_defaults(self):
        fc = FloorEngineConfig()

        assert fc.window_n == 11
        assert fc.percentile == 0.35
        assert fc.up_rate == 0.35
        assert fc.down_rate == 0.10
        assert fc.max_daily_drop_frac == 0.02

    def test_wave_defaults(self):
        w = WaveConfig()

        assert w.training_strategy == "LINEAR_THEN_WAVE"
        assert w.start_goal_band_low_minutes == 20
        assert w.start_goal_band_high_minutes == 30
        assert w.fatigue_floor == 0.75
        assert 25 in w.floor_milestones

    def test_empty_sections(self):
        config = PlannerConfig.model_validate({"wave": None, "analytics": {}})
        assert config.wave.momentum_window == 5


class TestClamping:
    """Tests for the numeric coercion validator."""

    def test_out_of_range_clamped(self):
        fc = FloorEngineConfig(percentile=1.7, up_rate=-3)

        assert fc.percentile == 0.95
        assert fc.up_rate == 0.0

    def test_int_fields_stay_int(self):
        ac = AnalyticsConfig(metrics_window_n=2, recent_window_n="20")

        assert ac.metrics_window_n == 5
        assert ac.recent_window_n == 20
        assert isinstance(ac.recent_window_n, int)

    def test_garbage_falls_back_to_default(self):
        fc = FloorEngineConfig(percentile="lots", down_rate=float("nan"), up_rate=True)

        assert fc.percentile == 0.35
        assert fc.down_rate == 0.10
        assert fc.up_rate == 0.35

    def test_unknown_strategy(self):
        assert WaveConfig(training_strategy="zigzag").training_strategy == "LINEAR_THEN_WAVE"
        assert WaveConfig(training_strategy="wave_only").training_strategy == "WAVE_ONLY"

    def test_visibility(self):
        assert WaveConfig(wave_visibility="full").wave_visibility == "Full"
        assert WaveConfig(wave_visibility="loud").wave_visibility == "Subtle"

    def test_milestones_cleaned(self):
        w = WaveConfig(floor_milestones=[30, "x", 15, 15, -5])
        assert w.floor_milestones == [15, 30]

    def test_extra_keys_allowed(self):
        config = PlannerConfig.model_validate({"wave": {"future_knob": 3}})
        assert config.wave.momentum_window == 5


# ─────────────────────────────────────────────────────────────────────────────
# Loader Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestLoadConfig:
    """Tests for load_config."""

    def test_missing_file(self, tmp_path):
        config = load_config(tmp_path / "nope.yaml")
        assert config == PlannerConfig()

    def test_reads_sections(self, tmp_path):
        path = tmp_path / "planner.yaml"
        path.write_text(yaml.safe_dump({"wave": {"push_pct_high": 0.2}, "floor_engine": {"window_n": 15}}))

        config = load_config(path)

        assert config.wave.push_pct_high == 0.2
        assert config.floor_engine.window_n == 15
        assert config.analytics.metrics_window_n == 21

    def test_planner_wrapper_key(self, tmp_path):
        path = tmp_path / "planner.yaml"
        path.write_text(yaml.safe_dump({"planner": {"breaks": {"break_percent": 30}}}))

        assert load_config(path).breaks.break_percent == 30

    def test_overrides_merge(self, tmp_path):
        path = tmp_path / "planner.yaml"
        path.write_text(yaml.safe_dump({"wave": {"push_pct_high": 0.2}}))

        config = load_config(path, overrides={"wave": {"training_strategy": "WAVE_ONLY"}})

        assert config.wave.push_pct_high == 0.2
        assert config.wave.training_strategy == "WAVE_ONLY"

    def test_broken_yaml_falls_back(self, tmp_path):
        path = tmp_path / "planner.yaml"
        path.write_text("wave: [unclosed")

        assert load_config(path) == PlannerConfig()

    def test_non_mapping_falls_back(self, tmp_path):
        path = tmp_path / "planner.yaml"
        path.write_text("- just\n- a list\n")

        assert load_config(path) == PlannerConfig()

    def test_shipped_file_matches_defaults(self):
        assert load_config(ARGS_DIR / "planner.yaml") == PlannerConfig()
