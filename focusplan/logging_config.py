"""
Structured logging for the focus planner (structlog over stdlib logging).

Planner modules log through get_logger(__name__). Entry points call
setup_logging() once and wrap their work in log_context() so every line
carries the user and action it belongs to.

Environment:
    FOCUSPLAN_LOG_LEVEL   DEBUG / INFO / WARNING (default INFO)
    FOCUSPLAN_LOG_FORMAT  "json" for one JSON object per line
    FOCUSPLAN_LOG_FILE    also append log lines to this file

Usage:
    from focusplan.logging_config import log_context, setup_logging
    setup_logging()
    with log_context(user="alice", action="plan"):
        ...
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import structlog


FLOAT_DIGITS = 3


def _round_floats(logger, method_name, event_dict):
    """Momentum rates and blend weights are unreadable at full precision."""
    for key, value in event_dict.items():
        if isinstance(value, float):
            event_dict[key] = round(value, FLOAT_DIGITS)
    return event_dict


def setup_logging(
    level: str | None = None,
    json_output: bool | None = None,
    log_file: str | Path | None = None,
) -> None:
    level = level or os.environ.get("FOCUSPLAN_LOG_LEVEL", "INFO")
    if json_output is None:
        json_output = os.environ.get("FOCUSPLAN_LOG_FORMAT", "").lower() == "json"
    log_file = log_file or os.environ.get("FOCUSPLAN_LOG_FILE") or None

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        _round_floats,
    ]

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    if json_output:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    # stderr keeps stdout free for the CLI's OK/ERROR line and JSON result
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    handlers[0].setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
            foreign_pre_chain=shared_processors,
        )
    )
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(
            structlog.stdlib.ProcessorFormatter(
                processors=[
                    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                    structlog.processors.JSONRenderer(),
                ],
                foreign_pre_chain=shared_processors,
            )
        )
        handlers.append(file_handler)

    root = logging.getLogger()
    root.handlers.clear()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


@contextmanager
def log_context(**values) -> Iterator[None]:
    """Bind key/values (user, action, profile) to every log line inside the block."""
    with structlog.contextvars.bound_contextvars(**values):
        yield


__all__ = ["get_logger", "log_context", "setup_logging"]
