"""Structured key=value logging (one event per line, Loki/Alloy friendly)."""
from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

_ESCAPES = (
    ("\\", "\\\\"),
    ("\n", "\\n"),
    ("\r", "\\r"),
    ("\t", "\\t"),
)


def _escape(value: str) -> str:
    for raw, escaped in _ESCAPES:
        value = value.replace(raw, escaped)
    return value


def _escape_value(value: Any) -> Any:
    if isinstance(value, str):
        return _escape(value)
    if isinstance(value, (list, tuple)):
        return [_escape(item) if isinstance(item, str) else item for item in value]
    if isinstance(value, dict):
        return {k: _escape(v) if isinstance(v, str) else v for k, v in value.items()}
    return value


def escape_newlines_processor(logger, method_name, event_dict):
    """Keep every entry on a single line.

    Must run after ``format_exc_info`` so rendered tracebacks are escaped too.
    """
    return {key: _escape_value(value) for key, value in event_dict.items()}


class SingleLineFormatter(logging.Formatter):
    """stdlib formatter for records that bypass structlog (aiohttp.access etc.)."""

    def format(self, record: logging.LogRecord) -> str:
        return super().format(record).replace("\n", "\\n").replace("\r", "\\r")


def configure_logging(level: str = "INFO") -> None:
    """Route stdlib logging to stdout and configure structlog key=value rendering.

    Output looks like::

        timestamp=2024-01-01T12:00:00Z level=info logger=webhook_service.x event='delivery succeeded' delivery_id=...
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(SingleLineFormatter("%(message)s"))

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(numeric_level)

    access_logger = logging.getLogger("aiohttp.access")
    access_logger.handlers = []
    access_logger.propagate = True

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            escape_newlines_processor,
            structlog.processors.KeyValueRenderer(
                key_order=["timestamp", "level", "logger", "event"],
                drop_missing=True,
            ),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
