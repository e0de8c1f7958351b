"""
Structured Logging
==================

JSON-structured logging with correlation ID tracking.

Provides:
- Structured JSON logs (parseable by log aggregators)
- Correlation ID for request tracing
- Module loggers
- Performance timing utilities

Usage:
    from helpdesk.shared.infrastructure.logging import get_logger

    logger = get_logger(__name__)
    logger.info("Ticket approved", extra={"ticket_id": 42})
"""

import logging
import sys
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any

from pythonjsonlogger import jsonlogger

_REDACTED_KEYS = ("password", "api_key", "webhook_url", "secret")


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """
    Custom JSON formatter with additional fields.

    Adds:
    - timestamp in ISO format
    - correlation_id when available
    - Environment info
    """

    def __init__(self, *args: Any, environment: str = "unknown", **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._environment = environment

    def add_fields(
        self,
        log_data: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_data, record, message_dict)

        if not log_data.get("timestamp"):
            log_data["timestamp"] = datetime.now(timezone.utc).isoformat()

        if hasattr(record, "correlation_id"):
            log_data["correlation_id"] = record.correlation_id

        log_data["environment"] = self._environment

        for key, value in list(log_data.items()):
            if isinstance(value, str) and any(k in key.lower() for k in _REDACTED_KEYS):
                log_data[key] = "***REDACTED***"


def setup_logging(
    level: str = "INFO",
    environment: str = "development",
) -> None:
    """
    Configure structured JSON logging for the application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        environment: Environment name for log context
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, level.upper()))
    handler.setFormatter(CustomJsonFormatter(
        fmt="%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        environment=environment,
    ))
    root_logger.addHandler(handler)

    # Silence noisy loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    logging.getLogger("watchdog").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the given name.

    Args:
        name: Logger name (typically __name__ of the module)

    Returns:
        logging.Logger: Configured logger instance
    """
    return logging.getLogger(name)


@contextmanager
def log_latency(logger: logging.Logger, operation: str, **extra_context: Any):
    """
    Context manager for measuring and logging operation latency.

    Usage:
        with log_latency(logger, "sla_sweep", metrics=12):
            await sweeper.sweep()
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        latency_ms = (time.perf_counter() - start) * 1000
        logger.info(
            f"{operation} completed",
            extra={
                "operation": operation,
                "latency_ms": round(latency_ms, 2),
                **extra_context,
            },
        )
