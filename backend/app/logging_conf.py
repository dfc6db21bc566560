"""Structured logging setup shared by the server and the distribution client."""

import logging
from typing import Optional

import structlog

from app.config import Settings

_LEVELS = {
    "critical": logging.CRITICAL,
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
    "trace": logging.DEBUG,
}


def parse_log_level(name: str) -> int:
    """Map a level name to a logging level; unknown names fall back to INFO."""
    return _LEVELS.get((name or "").strip().lower(), logging.INFO)


def configure_logging(settings: Settings, log_level: Optional[str] = None) -> None:
    """Configure structlog once per process."""
    level = parse_log_level(log_level or settings.LOG_LEVEL)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer() if settings.DEBUG else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )
