"""Logging configuration for tenx."""

import logging
import sys
from pathlib import Path
from typing import TextIO

import structlog

from tenx.config import Config, get_config


def _log_stream(config: Config) -> TextIO:
    """stderr, or the configured log file opened for append."""
    if not config.logging.file:
        return sys.stderr
    path = Path(config.logging.file).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    return path.open("a", encoding="utf-8")


def configure_logging(config: Config | None = None) -> None:
    """Configure structured logging for tenx.

    Logs go to stderr unless `logging.file` is set, which keeps them out
    of the interactive console.
    """
    config = config or get_config()

    log_level = getattr(logging, config.logging.level.upper(), logging.INFO)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if config.logging.format == "console":
        processors.append(structlog.dev.ConsoleRenderer(colors=not config.logging.file))
    else:
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=_log_stream(config)),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """Get a logger instance.

    Args:
        name: Optional logger name (usually __name__)

    Returns:
        Configured structlog logger
    """
    if name:
        return structlog.get_logger(name)
    return structlog.get_logger()
