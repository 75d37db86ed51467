"""
Logging configuration: JSON records in production/staging, plain text otherwise.
"""
import logging
import sys
from typing import Any

from pythonjsonlogger.json import JsonFormatter

from backend.booking.core.config import settings


class ServiceJsonFormatter(JsonFormatter):
    """JSON formatter that stamps every record with service context."""

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = self.formatTime(record, self.datefmt)
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["app_name"] = settings.APP_NAME
        log_record["environment"] = settings.APP_ENV


def setup_logging() -> None:
    """Install a single stdout handler on the root logger."""
    if settings.APP_ENV in ("production", "staging"):
        formatter: logging.Formatter = ServiceJsonFormatter(
            fmt="%(timestamp)s %(level)s %(name)s %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(settings.LOG_LEVEL.upper())

    # SQL echo is noisy at INFO
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
