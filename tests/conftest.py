"""Shared test fixtures for focusplan tests.

This module provides common fixtures used across all test modules:
- Database isolation with temporary files
- A session record factory and ready-made histories
- Default configuration and a seeded random source

Usage:
    def test_something(make_session, config):
        history = [make_session(1800, goal=1800)]
        ...
"""

import os
import random
import tempfile
from collections.abc import Callable, Generator
from datetime import datetime, timedelta
from pathlib import Path

import pytest

from focusplan.planning.config import PlannerConfig
from focusplan.planning.models import SessionRecord


# ─────────────────────────────────────────────────────────────────────────────
# Path Constants
# ─────────────────────────────────────────────────────────────────────────────

PROJECT_ROOT = Path(__file__).parent.parent
ARGS_DIR = PROJECT_ROOT / "args"

BASE_TIME = datetime(2026, 3, 2, 9, 0)


# ─────────────────────────────────────────────────────────────────────────────
# Database Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def temp_db() -> Generator[Path, None, None]:
    """Create a temporary database file for testing.

    The database file is automatically deleted after the test completes.

    Yields:
        Path to the temporary database file
    """
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)

    yield db_path

    # Cleanup
    if db_path.exists():
        os.unlink(db_path)


# ─────────────────────────────────────────────────────────────────────────────
# Configuration Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def config() -> PlannerConfig:
    """Default planner configuration."""
    return PlannerConfig()


@pytest.fixture
def wave_only_config() -> PlannerConfig:
    """Configuration that skips the LINEAR phase."""
    return PlannerConfig(wave={"training_strategy": "WAVE_ONLY", "push_jitter_pct": 0.0})


@pytest.fixture
def rng() -> random.Random:
    """Seeded random source for reproducible push jitter."""
    return random.Random(1234)


# ─────────────────────────────────────────────────────────────────────────────
# Session Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def make_session() -> Callable[..., SessionRecord]:
    """Factory for session records.

    Returns:
        make(focus, goal=None, at=None, **fields) -> SessionRecord. Sessions
        without an explicit time are spaced an hour apart from BASE_TIME in
        call order.
    """
    counter = {"n": 0}

    def make(focus, goal=None, at=None, **fields) -> SessionRecord:
        if at is None:
            at = BASE_TIME + timedelta(hours=counter["n"])
            counter["n"] += 1
        fields.setdefault("bucket", "Morning")
        return SessionRecord(focus_seconds=focus, goal_seconds=goal, timestamp=at, **fields)

    return make


@pytest.fixture
def steady_history(make_session) -> list[SessionRecord]:
    """Twelve comfortable 30-40 minute sessions, all hitting a 30 minute goal."""
    durations = [1800, 1900, 2000, 2100, 2200, 2300, 2400, 1850, 1950, 2050, 2150, 2250]
    return [make_session(d, goal=1800) for d in durations]


@pytest.fixture
def interrupted_history(make_session) -> list[SessionRecord]:
    """Six solid sessions plus three interruptions far below their goal."""
    return [
        make_session(1800, goal=1800),
        make_session(300, goal=1800),
        make_session(1500, goal=1500),
        make_session(240, goal=1800),
        make_session(1320, goal=1500),
        make_session(1600, goal=1500),
        make_session(120, goal=1800),
        make_session(1700, goal=1500),
        make_session(1400, goal=1500),
    ]
