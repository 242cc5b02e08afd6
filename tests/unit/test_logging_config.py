"""Tests for focusplan/logging_config.py"""

import logging

import structlog

from focusplan.logging_config import _round_floats, log_context, setup_logging


class TestLogging:
    """Tests for the structlog setup helpers."""

    def test_round_floats(self):
        event = _round_floats(None, "info", {"event": "x", "rate": 0.666666, "n": 3})

        assert event["rate"] == 0.667
        assert event["n"] == 3

    def test_log_context_binds_and_unbinds(self):
        with log_context(user="alice", action="plan"):
            bound = structlog.contextvars.get_contextvars()
            assert bound["user"] == "alice"
            assert bound["action"] == "plan"

        assert "user" not in structlog.contextvars.get_contextvars()

    def test_setup_logging_with_file(self, tmp_path):
        log_file = tmp_path / "logs" / "planner.log"
        root = logging.getLogger()
        saved_handlers, saved_level = list(root.handlers), root.level
        try:
            setup_logging(level="DEBUG", json_output=True, log_file=log_file)

            assert root.level == logging.DEBUG
            assert len(root.handlers) == 2
            assert log_file.parent.exists()
        finally:
            for handler in root.handlers:
                handler.close()
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)
