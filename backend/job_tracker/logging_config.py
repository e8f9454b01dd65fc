"""Structured logging for the tracker: readable console lines and an optional JSON log file."""

from __future__ import annotations

import logging
import sys
from typing import Optional, Sequence

import structlog

# Libraries that log every request or statement at INFO
NOISY_LOGGERS = ("httpcore", "httpx", "uvicorn.access", "sqlalchemy.engine")

_SHARED_PROCESSORS: list[structlog.types.Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.UnicodeDecoder(),
]


def _formatter(*renderers: structlog.types.Processor) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, *renderers],
        foreign_pre_chain=_SHARED_PROCESSORS,
    )


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    quiet: Sequence[str] = NOISY_LOGGERS,
) -> None:
    """Route structlog events and stdlib records through the same handlers.

    Ingestion and linking events (``email_ingested``, ``linked_by_in_reply_to``,
    ``status_updated``...) go to stdout. When ``log_file`` is set they are also
    appended there as one JSON object per line, with tracebacks flattened
    into an ``exception`` field.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional path of the JSON log file.
        quiet: Loggers capped at WARNING.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    structlog.configure(
        processors=[
            *_SHARED_PROCESSORS,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(_formatter(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(console_handler)
    root_logger.setLevel(log_level)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(log_level)
        file_handler.setFormatter(
            _formatter(structlog.processors.format_exc_info, structlog.processors.JSONRenderer())
        )
        root_logger.addHandler(file_handler)

    for name in quiet:
        logging.getLogger(name).setLevel(logging.WARNING)
