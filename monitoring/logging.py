"""Structured logging configuration.

Records may carry an explicit key/value context passed at the call site::

    logger.info("Blend finished", extra=log_context(metric="TPS", points=42))

The context belongs to that single record only; nothing is bound to the
thread or task.
"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any

CONTEXT_ATTR = "context"


class StructuredFormatter(logging.Formatter):
    """Custom formatter for structured log output."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"
        level = record.levelname.ljust(8)
        module = record.name
        message = record.getMessage()

        log_line = f"{timestamp} | {level} | {module} | {message}"

        context = getattr(record, CONTEXT_ATTR, None)
        if context:
            pairs = " ".join(f"{key}={value}" for key, value in context.items())
            log_line += f" | {pairs}"

        if record.exc_info:
            log_line += "\n" + self.formatException(record.exc_info)

        return log_line


def log_context(**fields: Any) -> dict[str, dict[str, Any]]:
    """Build the ``extra`` mapping for a single structured log call.

    Args:
        **fields: Key/value pairs rendered after the message

    Returns:
        Mapping suitable for the ``extra`` argument of logging calls
    """
    return {CONTEXT_ATTR: fields}


def setup_logging(level: str = "INFO") -> None:
    """Configure structured logging for the application.

    Args:
        level: Log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(StructuredFormatter())

    root_logger.addHandler(console_handler)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("apscheduler.executors").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the given name.

    Args:
        name: Logger name, typically __name__ of the calling module

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)
