"""focusplan Test Suite

Test organization:
- unit/planning/: Unit tests for each planning module (floor, metrics, blend,
  wave, goal, planner, state store, config, session outcome, models)
- integration/: Simulated users and the CLI plan -> record loop

Running tests:
    # All tests
    uv run pytest

    # Specific module
    uv run pytest tests/unit/planning/test_wave_engine.py
"""
