"""Structured logging setup."""

import logging
from typing import Optional

import structlog

from protoguard.config import get_settings


def configure_logging(level: Optional[str] = None, debug: Optional[bool] = None) -> None:
    """Configure structlog for the host process.

    Library code only calls ``structlog.get_logger()``; applications embedding
    protoguard call this once at startup if they want our defaults.

    Args:
        level: Log level name, defaults to ``Settings.LOG_LEVEL``
        debug: Console rendering when True, JSON lines otherwise
    """
    settings = get_settings()
    level_name = (level or settings.LOG_LEVEL).upper()
    use_console = settings.DEBUG if debug is None else debug

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer() if use_console else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level_name, logging.INFO)),
        cache_logger_on_first_use=True,
    )
