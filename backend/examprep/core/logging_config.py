"""
Centralized logging configuration with structured logging support.
"""
import json
import logging
import logging.config
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from examprep.core.config import settings

# Request ID for the request currently being handled; set by
# RequestLoggingMiddleware and attached to every JSON log line.
request_id_context: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

# Structured ``extra=`` keys copied into JSON log entries when present.
STRUCTURED_FIELDS = (
    "method",
    "path",
    "status_code",
    "duration_ms",
    "client_host",
    "subject",
    "session_id",
    "test_id",
    "record_id",
    "error_id",
)


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for production logging.

    Produces one JSON object per line with the standard fields plus any
    structured extras the engine passes along (session, test and record ids).
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
        log_entry: Dict[str, Any] = {
            "timestamp": timestamp.isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = request_id_context.get()
        if request_id:
            log_entry["request_id"] = request_id

        for field in STRUCTURED_FIELDS:
            if hasattr(record, field):
                log_entry[field] = getattr(record, field)

        if record.levelno >= logging.ERROR:
            log_entry["source"] = f"{record.pathname}:{record.lineno}"

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def build_logging_config() -> Dict[str, Any]:
    """Return the dictConfig mapping for the current settings."""
    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    is_production = settings.ENV == "production"

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "json": {
                "()": JSONFormatter,
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": log_level,
                "formatter": "json" if is_production else "default",
                "stream": sys.stdout,
            },
        },
        "root": {
            "level": log_level,
            "handlers": ["console"],
        },
        "loggers": {
            "examprep": {
                "level": log_level,
                "handlers": ["console"],
                "propagate": False,
            },
            "uvicorn.access": {
                "level": logging.WARNING if settings.DEBUG else logging.INFO,
                "handlers": ["console"],
                "propagate": False,
            },
            "sqlalchemy.engine": {
                "level": logging.WARNING,
                "handlers": ["console"],
                "propagate": False,
            },
        },
    }


def setup_logging() -> None:
    """
    Configure application-wide logging.

    Human-readable lines in development, JSON lines in production.
    """
    logging.config.dictConfig(build_logging_config())
