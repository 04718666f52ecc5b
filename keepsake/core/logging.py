from __future__ import annotations

import logging
from typing import Any, MutableMapping, Optional

import structlog

# ffmpeg prints its whole banner and stream map before the actual error.
STDERR_TAIL_LINES = 20


def _level_number(level: int | str) -> int:
    if isinstance(level, int):
        return level
    number = logging.getLevelName(level.upper())
    return number if isinstance(number, int) else logging.INFO


def trim_encoder_stderr(_: Any, __: str, event_dict: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
    """Keep only the last lines of captured encoder stderr."""
    stderr = event_dict.get("stderr")
    if isinstance(stderr, str):
        lines = stderr.strip().splitlines()
        if len(lines) > STDERR_TAIL_LINES:
            event_dict["stderr"] = "\n".join(lines[-STDERR_TAIL_LINES:])
            event_dict["stderr_lines_dropped"] = len(lines) - STDERR_TAIL_LINES
    return event_dict


def configure_logging(
    level: int | str = logging.INFO,
    *,
    environment: Optional[str] = None,
    json_output: bool = True,
) -> None:
    """Set up structlog for the ingest pipeline.

    Every event carries ``service="keepsake"`` and, when given, the deployment
    environment. JSON lines are the default; ``json_output=False`` switches to
    structlog's console renderer for interactive runs.
    """
    number = _level_number(level)
    logging.basicConfig(format="%(message)s", level=number)
    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            trim_encoder_stderr,
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(number),
        cache_logger_on_first_use=True,
    )
    structlog.contextvars.clear_contextvars()
    context = {"service": "keepsake"}
    if environment:
        context["environment"] = environment
    structlog.contextvars.bind_contextvars(**context)


def get_logger(**initial_values: Any) -> structlog.BoundLogger:
    return structlog.get_logger().bind(**initial_values)


__all__ = ["configure_logging", "get_logger", "trim_encoder_stderr"]
