"""Structured JSON debug logging for callai.

The library attaches no handlers of its own unless asked: CALLAI_DEBUG=1
sends JSON lines to stdout, and CALLAI_LOG_FILE adds a file. Otherwise
records propagate to whatever logging the host application configured.

Every entry carries the id of the call that produced it, so interleaved
output from concurrent calls can be separated downstream.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone

from callai.config.settings import get_settings

LOGGER_NAME = "callai"
logging.getLogger(LOGGER_NAME).addHandler(logging.NullHandler())

# Call-scoped context for correlating log entries
call_id_var: ContextVar[str] = ContextVar("call_id", default="")


class JSONFormatter(logging.Formatter):
    """Formats log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "call_id": call_id_var.get(""),
        }
        # Merge any extra fields passed via `extra={}` kwarg
        if hasattr(record, "debug_data"):
            log_entry.update(record.debug_data)
        return json.dumps(log_entry, default=str)


def setup_logging() -> None:
    """Configure the callai logger with JSON output."""
    settings = get_settings()

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, settings.effective_log_level, logging.WARNING))
    logger.handlers.clear()

    formatter = JSONFormatter()

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(formatter)
    logger.addHandler(stdout_handler)

    if settings.log_file:
        file_handler = logging.FileHandler(settings.log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    # Library output stays out of the host application's root logger
    logger.propagate = False


def get_logger(name: str = "") -> logging.Logger:
    """Return the callai logger, or a child of it (e.g. ``get_logger("stream")``)."""
    return logging.getLogger(f"{LOGGER_NAME}.{name}" if name else LOGGER_NAME)


def generate_call_id() -> str:
    return uuid.uuid4().hex[:12]


class RequestTimer:
    """Context manager to measure call latency."""

    def __init__(self):
        self.start_time: float = 0
        self.elapsed_ms: float = 0

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, *args):
        self.elapsed_ms = round((time.perf_counter() - self.start_time) * 1000, 2)
