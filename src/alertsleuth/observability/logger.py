"""
observability/logger.py — AlertSleuth Structured Logger

structlog on top of stdlib logging:
  - JSON lines to a rotating file under logging.log_dir
  - optional stderr output (JSON, or the coloured dev renderer); stdout
    belongs to the chat REPL
  - history_id / alert_id bound for the duration of a chat turn

Usage:
    from alertsleuth.observability.logger import get_logger, setup_logging

    setup_logging(level="INFO", log_dir="./data/logs")
    log = get_logger(__name__)
    log.info("conversation.tool_call", tool="search_alerts", iteration=2)

Components take an optional `logger` argument and fall back to
get_logger(__name__), so tests can pass a MagicMock.
"""

from __future__ import annotations

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Any

import structlog

LOG_FILE_NAME = "alertsleuth.log"

# Applied to structlog events and to records from plain stdlib loggers
# (httpx, openai, google-genai) alike.
_PRE_CHAIN: list[Any] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
]


def _formatter(renderer: Any) -> logging.Formatter:
    return structlog.stdlib.ProcessorFormatter(
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        foreign_pre_chain=_PRE_CHAIN,
    )


def setup_logging(
    level: str = "INFO",
    log_dir: str | Path = "./data/logs",
    json_format: bool = True,
    console_output: bool = False,
    max_bytes: int = 20 * 1024 * 1024,
    backup_count: int = 5,
) -> None:
    """
    Route all logging through structlog. Call once, before the first log call.

    Args:
        level:          DEBUG | INFO | WARNING | ERROR | CRITICAL
        log_dir:        Created if missing; holds alertsleuth.log and its rotations.
        json_format:    Console renderer choice (the file is always JSON).
        console_output: Also log to stderr.
        max_bytes:      Rotation threshold per file.
        backup_count:   Rotated files kept.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    file_handler = logging.handlers.RotatingFileHandler(
        log_dir / LOG_FILE_NAME,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    file_handler.setFormatter(_formatter(structlog.processors.JSONRenderer()))
    handlers: list[logging.Handler] = [file_handler]

    if console_output:
        stderr_handler = logging.StreamHandler(sys.stderr)
        renderer = (
            structlog.processors.JSONRenderer()
            if json_format
            else structlog.dev.ConsoleRenderer(colors=True)
        )
        stderr_handler.setFormatter(_formatter(renderer))
        handlers.append(stderr_handler)

    for handler in handlers:
        handler.setLevel(numeric_level)
    logging.basicConfig(level=numeric_level, handlers=handlers, force=True)

    structlog.configure(
        processors=[*_PRE_CHAIN, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = "alertsleuth", **initial_values: Any) -> structlog.stdlib.BoundLogger:
    """Module logger, optionally with context bound on every event."""
    logger = structlog.get_logger(name)
    return logger.bind(**initial_values) if initial_values else logger


def bind_session(history_id: str, alert_id: str) -> None:
    """Attach the chat session to every log event until clear_session()."""
    structlog.contextvars.bind_contextvars(history_id=history_id, alert_id=alert_id)


def clear_session() -> None:
    structlog.contextvars.clear_contextvars()
