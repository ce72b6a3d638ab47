"""Structured JSON logging helpers for the fund catalog search subsystem."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Optional, TextIO

__all__ = ("JSONFormatter", "configure_logging")

PACKAGE_LOGGER = "FundCatalog.SearchIndex"


class JSONFormatter(logging.Formatter):
    """Formatter emitting one JSON object per log record.

    Event payloads attached through ``extra={"event": {...}}`` are merged into
    the top-level object.
    """

    def format(self, record: logging.LogRecord) -> str:
        now = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload = {
            "timestamp": now.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        event = getattr(record, "event", None)
        if isinstance(event, dict):
            payload.update(event)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(level: str = "INFO", *, stream: Optional[TextIO] = None) -> logging.Logger:
    """Attach a JSON stream handler to the package logger once and set its level.

    Args:
        level: Logging level name (case-insensitive).
        stream: Optional stream for the handler; defaults to ``sys.stderr``.

    Returns:
        The configured package logger.
    """

    logger = logging.getLogger(PACKAGE_LOGGER)
    if not any(isinstance(handler.formatter, JSONFormatter) for handler in logger.handlers):
        handler = logging.StreamHandler(stream)
        handler.setFormatter(JSONFormatter())
        logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    return logger
