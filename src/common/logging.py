"""
Structured logging for the FSM engine.

Modules obtain a logger with `get_logger(__name__)` and emit dot-notation
events (e.g. "fsm.transition.committed") with keyword context such as
`user_id` and `state_id`. Applications call `configure_logging()` once at
startup; until then structlog's defaults apply.

Environment variables (optional)
- `FSM_LOG_MODE`:  "dev" (console renderer, default) or "prod" (JSON lines)
- `FSM_LOG_LEVEL`: minimum level name, default "INFO"
"""

from __future__ import annotations

import logging
import os
from enum import Enum
from typing import Any, Optional

import structlog


ENV_LOG_MODE = "FSM_LOG_MODE"
ENV_LOG_LEVEL = "FSM_LOG_LEVEL"


class LogMode(str, Enum):
    DEV = "dev"
    PROD = "prod"


def _mode_from_env() -> LogMode:
    raw = os.environ.get(ENV_LOG_MODE, "dev").strip().lower()
    return LogMode.PROD if raw == "prod" else LogMode.DEV


def _level_from_name(name: str) -> int:
    level = logging.getLevelName(name.strip().upper())
    return level if isinstance(level, int) else logging.INFO


def _processors(mode: LogMode) -> list[Any]:
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if mode == LogMode.PROD:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))
    return processors


def configure_logging(mode: Optional[LogMode] = None, *, level: Optional[str] = None) -> None:
    """Configure structlog for the process.

    Safe to call more than once; the last call wins.
    """
    mode = mode or _mode_from_env()
    level_name = level or os.environ.get(ENV_LOG_LEVEL, "INFO")
    structlog.configure(
        processors=_processors(mode),
        wrapper_class=structlog.make_filtering_bound_logger(_level_from_name(level_name)),
        cache_logger_on_first_use=False,
    )


def get_logger(name: Optional[str] = None) -> Any:
    return structlog.get_logger(name)
