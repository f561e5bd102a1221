"""
Structured Logging
==================

JSON-structured logging with correlation ID tracking.

Provides:
- Structured JSON logs (parseable by log aggregators)
- Correlation ID for request tracing
- Contextual loggers for modules
- Performance timing utilities
- Category-tagged SLA engine events

Usage:
    from chat_sla.shared.infrastructure.logging import get_logger

    logger = get_logger(__name__)
    logger.info("Conversation processed", extra={"conversation_id": "CHAT-001"})
"""

import logging
import sys
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pythonjsonlogger import jsonlogger


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """
    Custom JSON formatter with additional fields.

    Adds:
    - timestamp in ISO format
    - correlation_id when available
    - Environment info
    """

    def add_fields(
        self,
        log_record: Dict[str, Any],
        record: logging.LogRecord,
        message_dict: Dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        if not log_record.get("timestamp"):
            log_record["timestamp"] = datetime.now(timezone.utc).isoformat()

        if hasattr(record, "correlation_id"):
            log_record["correlation_id"] = record.correlation_id
        elif "correlation_id" in message_dict:
            log_record["correlation_id"] = message_dict["correlation_id"]

        log_record.setdefault("environment", getattr(record, "environment", "unknown"))

        # Sanitize any sensitive data
        for key, value in list(log_record.items()):
            if isinstance(value, str):
                lowered = key.lower()
                if "password" in lowered or "api_key" in lowered or "token" in lowered:
                    log_record[key] = "***REDACTED***"
                elif "database_url" in lowered:
                    log_record[key] = "***REDACTED***"


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

    formatter = CustomJsonFormatter(
        fmt="%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        static_fields={"environment": environment},
    )

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    # Silence noisy loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.error").setLevel(logging.ERROR)
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


def get_context_logger(name: str, correlation_id: Optional[str] = None):
    """
    Get a logger with correlation ID for request tracing.

    Args:
        name: Logger name
        correlation_id: Request correlation ID

    Returns:
        Logger, or LoggerAdapter carrying correlation_id in extra
    """
    logger = get_logger(name)
    if correlation_id:
        return logging.LoggerAdapter(logger, {"correlation_id": correlation_id})
    return logger


@contextmanager
def log_latency(logger: logging.Logger, operation: str, **extra_context: Any):
    """
    Context manager for measuring and logging operation latency.

    Usage:
        with log_latency(logger, "sla_recalculation", batch=3):
            await service.recalculate(query)

    Args:
        logger: Logger instance
        operation: Operation name for logging
        **extra_context: Additional context to include in log
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


class SLALogCategory(str, Enum):
    """Categories of SLA engine log events."""
    CALCULATION = "calculation"
    BREACH = "breach"
    CONFIG_CHANGE = "config_change"
    BUSINESS_HOURS = "business_hours"
    API = "api"


class SLAEventLogger:
    """
    Logger for SLA engine events.

    Every record carries source="sla-engine" and a category so that
    calculations, breaches and configuration changes can be filtered
    in the log aggregator.
    """

    source = "sla-engine"

    def __init__(self, logger: Optional[logging.Logger] = None):
        self._logger = logger or get_logger("chat_sla.sla.events")

    def _emit(self, level: int, category: SLALogCategory, message: str, **context: Any) -> None:
        self._logger.log(
            level,
            message,
            extra={"source": self.source, "category": category.value, **context},
        )

    def log_calculation(self, conversation_id: str, metrics: Any, trigger: str) -> None:
        """Log a completed SLA calculation for one conversation."""
        self._emit(
            logging.DEBUG,
            SLALogCategory.CALCULATION,
            f"SLA calculation {trigger} for conversation {conversation_id}",
            conversation_id=conversation_id,
            trigger=trigger,
            overall_sla=metrics.wall_clock.overall_sla.value,
            overall_sla_bh=metrics.business_hours.overall_sla.value,
        )

    def log_breach(self, conversation_id: str, time_system: str, breached: list) -> None:
        """Log the metrics a conversation breached in one time system."""
        self._emit(
            logging.INFO,
            SLALogCategory.BREACH,
            f"SLA breached for conversation {conversation_id}",
            conversation_id=conversation_id,
            time_system=time_system,
            breach_types=breached,
        )

    def log_config_change(self, message: str, **context: Any) -> None:
        """Log a configuration load or reload."""
        self._emit(logging.INFO, SLALogCategory.CONFIG_CHANGE, message, **context)

    def log_business_hours_change(self, previous: dict, current: dict) -> None:
        """Log an office-hours change; stored business-hours metrics are now stale."""
        self._emit(
            logging.WARNING,
            SLALogCategory.BUSINESS_HOURS,
            "Office hours changed, business-hours metrics need recalculation",
            previous_office_hours=previous,
            office_hours=current,
        )

    def log_failure(self, conversation_id: str, error: str) -> None:
        """Log a conversation whose metrics could not be computed."""
        self._emit(
            logging.ERROR,
            SLALogCategory.CALCULATION,
            f"SLA calculation failed for conversation {conversation_id}",
            conversation_id=conversation_id,
            error=error,
        )

    def log_api_call(self, endpoint: str, method: str, status_code: int, **context: Any) -> None:
        """Log an SLA API call outcome."""
        self._emit(
            logging.INFO,
            SLALogCategory.API,
            f"{method} {endpoint} -> {status_code}",
            endpoint=endpoint,
            method=method,
            status_code=status_code,
            **context,
        )
