"""
Structured logging configuration using structlog.

Services log through structlog with bound fields (stream_id, source_id,
backtest_id). Library modules that use ``logging.getLogger(__name__)``
are routed through the same handler so every line lands in one place.
"""

import logging
import sys
from typing import TextIO

import structlog
from structlog.types import Processor

from feedpulse.config.settings import get_settings

# Third-party loggers that are only interesting at WARNING and above
QUIET_LOGGERS = ("httpx", "httpcore", "asyncio", "openai", "anthropic", "asyncpg")


def setup_logging(stream: TextIO | None = None, json_logs: bool | None = None) -> None:
    """
    Configure structlog and the stdlib root logger.

    Logs go to stderr by default so commands that print JSON to stdout
    stay machine readable. ``json_logs`` defaults to the environment:
    JSON in production, colored console output otherwise.

    Usage:
        setup_logging()
        logger = structlog.get_logger(__name__)
        logger.info("Polled source", source_id="42", items=3)
    """
    settings = get_settings()
    stream = stream or sys.stderr
    if json_logs is None:
        json_logs = settings.is_production

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    renderer: Processor
    if json_logs:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=stream.isatty())

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(levelname)s %(name)s: %(message)s",
        stream=stream,
        level=getattr(logging, settings.log_level),
        force=True,
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_context(**kwargs) -> None:
    """
    Bind fields to every log line emitted by the current task.

    Workers call this at the top of each job; tasks get their own copy of
    the context so bindings never leak between jobs.
    """
    structlog.contextvars.bind_contextvars(**kwargs)
