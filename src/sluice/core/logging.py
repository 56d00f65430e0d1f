"""
Structured logging setup using structlog directly.

configure_logging() is called once at process start (by the CLI or the
embedding application); components take a bound logger through their
constructors and fall back to get_logger() when none is given.
"""

import logging
import sys

import structlog

from sluice.core.config import LoggingSettings


def configure_logging(settings: LoggingSettings | None = None) -> None:
    """Install structlog processors and the stdlib handler.

    Args:
        settings: Level and renderer; defaults to INFO console output
    """
    settings = settings or LoggingSettings()

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, settings.level),
        force=True,
    )

    processors: list[structlog.types.Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def reset_logging() -> None:
    """Tear down configuration installed by configure_logging()."""
    structlog.reset_defaults()


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger, named after the caller's module by convention."""
    return structlog.get_logger(name)
