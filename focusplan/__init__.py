"""
focusplan - adaptive goal planning for self-directed focus training

The planner learns a statistical picture of a user's recent focus sessions
and decides how long the next session should be. Everything outside the
decision itself (timers, rendering, history storage) is the caller's job:
the caller hands in session history and configuration, and gets back a
plan plus an opaque state blob to persist.

Packages:
    planning/: metrics, floor, blend, wave and goal engines plus the
        planner state machine that orchestrates them

Configuration: args/planner.yaml
Database: data/planner.db (planner state only, one blob per user)
"""

from pathlib import Path

__version__ = "0.1.0"

# Path constants
PROJECT_ROOT = Path(__file__).parent.parent
DATA_DIR = PROJECT_ROOT / "data"
ARGS_DIR = PROJECT_ROOT / "args"

__all__ = ["PROJECT_ROOT", "DATA_DIR", "ARGS_DIR", "__version__"]
