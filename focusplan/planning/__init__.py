"""Planning Engine - decide the next focus session's goal

Philosophy:
    Learn the baseline from behaviour, never from a questionnaire.
    Raise the bar slowly, lower it even more slowly.
    A bad session is information, not a verdict.

Components (leaves first):
    floor_engine.py: Validity filter, raw floor estimate, smoothed effective floor
        - Interrupted sessions (< half the goal) never touch the baseline
        - Floor rises fast, falls slowly, and is capped per calendar day

    metrics_engine.py: Percentile snapshot of recent history
        - Floor / median / ceiling / IQR over valid sessions
        - Crash and overshoot thresholds and recent-window counts

    blend_engine.py: Time-of-day buckets
        - Bucket statistics blended in as the bucket sample grows

    wave_engine.py: Momentum, adaptive cycles, plateau and stability signals,
        fatigue and crash recovery policy

    goal_engine.py: Bands and concrete goal durations for each phase

    planner.py: State machine (BOOT -> LINEAR -> WAVE, plus WAVE_EASY)

    state_store.py: Storage port for the persisted planner state
    session_outcome.py: Turns a finished session into an immutable record
    simulate.py: Seeded synthetic users for exercising the whole loop

Configuration: args/planner.yaml
    - floor_engine: smoothing and validity settings
    - analytics: percentile, threshold and bucket settings
    - wave: phase, cycle, push, fatigue and recovery settings
    - breaks: break length policy
"""

from focusplan import ARGS_DIR, DATA_DIR

CONFIG_PATH = ARGS_DIR / "planner.yaml"
DB_PATH = DATA_DIR / "planner.db"

# Time-of-day buckets
TIME_BUCKETS = ["Morning", "Afternoon", "Evening", "Night"]

# Stop reasons that count as a failed session for plateau detection
FAIL_STOP_REASONS = ["DISTRACTED"]

# A push session counts as a success at this fraction of its push target.
# Momentum scoring and session evaluation both read it from here.
PUSH_SUCCESS_FRACTION = 0.90

__all__ = [
    "CONFIG_PATH",
    "DB_PATH",
    "TIME_BUCKETS",
    "FAIL_STOP_REASONS",
    "PUSH_SUCCESS_FRACTION",
]
