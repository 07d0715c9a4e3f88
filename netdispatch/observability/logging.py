"""Structured logging configuration."""

import logging
import sys
from typing import TextIO

import structlog

from netdispatch.settings import DispatchSettings


def configure_logging(
    level: int = logging.INFO,
    output: TextIO = sys.stderr,
    json_format: bool = True,
) -> None:
    """Configure structured logging for the dispatcher.

    Sets up structlog with JSON output format and standard processors
    for timestamps, log levels, and context binding.

    Args:
        level: Logging level (default: INFO).
        output: Output stream (default: stderr).
        json_format: Whether to use JSON format (default: True).
    """
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_format:
        processors.append(structlog.processors.JSONRenderer(sort_keys=True))
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=output),
        cache_logger_on_first_use=True,
    )

    # Route standard library logging (httpx, httpcore) to the same stream
    logging.basicConfig(
        format="%(message)s",
        stream=output,
        level=level,
    )


def configure_logging_from_settings(
    settings: DispatchSettings,
    output: TextIO = sys.stderr,
) -> None:
    """Configure logging from dispatcher settings.

    Args:
        settings: Settings carrying log_level and log_json.
        output: Output stream (default: stderr).
    """
    configure_logging(
        level=settings.log_level_number,
        output=output,
        json_format=settings.log_json,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger.

    Args:
        name: Optional logger name.

    Returns:
        Bound logger instance.
    """
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger
