"""Structured logging configuration with ingestion cycle tracking."""

from __future__ import annotations

import json
import logging
import re
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .config import settings


# Context variable for the running ingestion cycle
cycle_id_var: ContextVar[Optional[str]] = ContextVar("cycle_id", default=None)


class StructuredFormatter(logging.Formatter):
    """JSON structured log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        cycle_id = cycle_id_var.get()
        if cycle_id:
            log_data["cycle_id"] = cycle_id

        # Structured event fields
        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if settings.debug:
            log_data["location"] = {
                "file": record.filename,
                "line": record.lineno,
                "function": record.funcName,
            }

        return json.dumps(log_data, default=str, ensure_ascii=False)


class TextFormatter(logging.Formatter):
    """Human-readable text formatter for development."""

    def format(self, record: logging.LogRecord) -> str:
        cycle_id = cycle_id_var.get()
        cid = f"[{cycle_id[:8]}] " if cycle_id else ""
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        base = f"{timestamp} {record.levelname:8} {cid}{record.name}: {record.getMessage()}"

        fields = getattr(record, "extra_fields", None)
        if fields:
            base += " " + " ".join(f"{k}={v}" for k, v in fields.items())

        if record.exc_info:
            base += "\n" + self.formatException(record.exc_info)

        return base


class SensitiveDataFilter(logging.Filter):
    """Redact credentials embedded in connection URLs."""

    _DSN_CREDENTIALS = re.compile(r"(\w+(?:\+\w+)?://[^:/\s]+:)[^@\s]+(@)")

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str) and "://" in record.msg:
            record.msg = self._DSN_CREDENTIALS.sub(r"\1[REDACTED]\2", record.msg)
        return True


def setup_logging() -> None:
    """Configure application logging."""
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.log_level))

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, settings.log_level))

    if settings.log_format == "json":
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(TextFormatter())

    handler.addFilter(SensitiveDataFilter())

    root_logger.addHandler(handler)

    # Quiet chatty libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the twstocks prefix."""
    return logging.getLogger(f"twstocks.{name}")


def log_event(logger: logging.Logger, level: int, message: str, **fields: Any) -> None:
    """Emit a structured event; fields land in the JSON payload."""
    logger.log(level, message, extra={"extra_fields": fields})
