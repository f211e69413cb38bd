"""JSON logging configuration for the relay service."""

import contextvars
import json
import logging
import sys
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator

_LOG_USER_ID: contextvars.ContextVar[str] = contextvars.ContextVar("relay_log_user_id", default="-")

QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access", "redis")


class JSONFormatter(logging.Formatter):
    """Format log records as JSON."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "user_id": getattr(record, "user_id", _LOG_USER_ID.get()),
            "message": record.getMessage(),
        }

        if hasattr(record, "context") and record.context:
            log_data["context"] = record.context

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


class UserContextFilter(logging.Filter):
    """Stamp the sender currently being served onto every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.user_id = _LOG_USER_ID.get()
        return True


@contextmanager
def log_user_context(user_id: str | None) -> Iterator[None]:
    token = _LOG_USER_ID.set((user_id or "-").strip() or "-")
    try:
        yield
    finally:
        _LOG_USER_ID.reset(token)


def setup_logging(level: str = "INFO") -> None:
    """Configure JSON logging for the application."""
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())
    handler.addFilter(UserContextFilter())
    root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the given name."""
    return logging.getLogger(f"relay.{name}")

