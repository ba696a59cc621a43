"""Structured logging configuration."""

import logging
import sys
from typing import Any, Dict

from pythonjsonlogger import jsonlogger

from compare_app.core.config import get_settings

settings = get_settings()

# Attributes callers may attach through ``extra=`` to tie a line to a comparison
CONTEXT_FIELDS = ("comparison_key", "session_id")
UNSET = "-"


class ComparisonContextFilter(logging.Filter):
    """Give every record the comparison context attributes so formats can reference them."""

    def filter(self, record: logging.LogRecord) -> bool:
        for field in CONTEXT_FIELDS:
            if not hasattr(record, field):
                setattr(record, field, UNSET)
        return True


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that stamps level, logger, environment and comparison context."""

    def add_fields(
        self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["environment"] = settings.environment

        # Placeholders are only for the text format
        for field in CONTEXT_FIELDS:
            if log_record.get(field) == UNSET:
                del log_record[field]

        if record.exc_info:
            log_record["exc_info"] = self.formatException(record.exc_info)


def build_formatter(log_format: str) -> logging.Formatter:
    if log_format.lower() == "json":
        return CustomJsonFormatter(
            "%(timestamp)s %(level)s %(name)s %(message)s",
            timestamp=True
        )
    return logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - [%(comparison_key)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )


def setup_logging() -> logging.Logger:
    """Configure the ``compare`` logger."""
    logger = logging.getLogger("compare")
    logger.setLevel(getattr(logging, settings.log_level.upper()))

    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.addFilter(ComparisonContextFilter())
    console_handler.setFormatter(build_formatter(settings.log_format))
    logger.addHandler(console_handler)

    logger.propagate = False

    return logger


logger = setup_logging()
