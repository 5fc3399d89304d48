"""JSON logging to stdout, one object per line, carrying the correlation ID."""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

from .correlation import get_correlation_id
from .redaction import safe_log_context


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        cid = get_correlation_id()
        if cid:
            entry["correlationId"] = cid

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        fields = getattr(record, "extra_fields", None)
        if fields:
            entry.update(fields)

        return json.dumps(entry, default=str)


def get_logger(name: str) -> logging.Logger:
    """Return a logger that writes JSON lines to stdout.

    Level comes from LOG_LEVEL (default INFO). Handlers are attached once.
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JsonFormatter())
        logger.addHandler(handler)
        logger.setLevel(os.environ.get("LOG_LEVEL", "INFO").upper())
        logger.propagate = False

    return logger


def log_event(logger: logging.Logger, level: int, message: str, **fields: Any) -> None:
    """Log ``message`` with redacted structured fields."""
    logger.log(level, message, extra={"extra_fields": safe_log_context(**fields)})
