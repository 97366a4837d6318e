"""Log formatting with worker and delivery identity on every record."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from .correlation import get_context_vars

_log = logging.getLogger(__name__)


class IdentityFilter(logging.Filter):
    """Copies worker_id, message_id and correlation_id from context onto records."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in get_context_vars().items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True


class JsonLogFormatter(logging.Formatter):
    """One JSON object per line: level, logger, message and identity fields."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in ("worker_id", "message_id", "correlation_id"):
            value = getattr(record, key, None)
            if value:
                entry[key] = value
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class TextLogFormatter(logging.Formatter):
    """``[workerID=.. msgID=.. corrID=..] message`` lines for local runs."""

    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)s %(name)s %(identity)s%(message)s")

    def format(self, record: logging.LogRecord) -> str:
        parts = [
            f"{label}={value}"
            for label, key in (
                ("workerID", "worker_id"),
                ("msgID", "message_id"),
                ("corrID", "correlation_id"),
            )
            if (value := getattr(record, key, None))
        ]
        record.identity = f"[{' '.join(parts)}] " if parts else ""
        return super().format(record)


def configure_logging(level: str = "INFO", fmt: str = "json") -> logging.Handler:
    """Install a single stderr handler on the root logger."""
    handler = logging.StreamHandler(sys.stderr)
    handler.addFilter(IdentityFilter())
    handler.setFormatter(JsonLogFormatter() if fmt == "json" else TextLogFormatter())
    root = logging.getLogger()
    for existing in root.handlers[:]:
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level.upper())
    _log.debug("logging configured (level=%s, format=%s)", level, fmt)
    return handler
