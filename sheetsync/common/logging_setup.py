"""
Structured Logging Setup

Consistent logging configuration across all sheet sync components.
Uses JSON format for structured logs in production.
"""

import logging
import sys
import os
from datetime import datetime, timezone
import json


class JsonFormatter(logging.Formatter):
    """JSON log formatter for structured logging"""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "service": getattr(record, "service", "unknown"),
            "message": record.getMessage(),
            "logger": record.name,
        }

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Add extra fields
        for key, value in record.__dict__.items():
            if key not in (
                "name", "msg", "args", "levelname", "levelno", "pathname",
                "filename", "module", "exc_info", "exc_text", "stack_info",
                "lineno", "funcName", "created", "msecs", "relativeCreated",
                "thread", "threadName", "processName", "process", "service",
                "message", "taskName",
            ):
                log_data[key] = value

        return json.dumps(log_data, default=str)


class ServiceLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that adds service name to all logs"""

    def process(self, msg: str, kwargs: dict) -> tuple[str, dict]:
        kwargs.setdefault("extra", {})
        kwargs["extra"]["service"] = self.extra.get("service", "unknown")
        return msg, kwargs


def setup_logging(
    service_name: str,
    log_level: str = "INFO",
    json_format: bool = True,
) -> logging.Logger:
    """
    Set up structured logging for a component.

    Args:
        service_name: Name of the component (e.g., "sheets.sync", "storage")
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON format (True for production, False for dev)

    Returns:
        Configured logger instance
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    logger = logging.getLogger(f"sheetsync.{service_name}")
    logger.setLevel(numeric_level)

    # Clear existing handlers
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)

    if json_format:
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    handler.setFormatter(formatter)
    logger.addHandler(handler)

    # Don't propagate to root logger
    logger.propagate = False

    return logger


def get_service_logger(service_name: str) -> ServiceLoggerAdapter:
    """
    Get a logger adapter with service context.

    Args:
        service_name: Name of the component

    Returns:
        Logger adapter with service name in all logs
    """
    # Check for environment variable override
    log_level = os.environ.get("SHEETSYNC_LOG_LEVEL", "INFO")
    json_format = os.environ.get("SHEETSYNC_LOG_FORMAT", "json").lower() == "json"

    logger = setup_logging(service_name, log_level, json_format)
    return ServiceLoggerAdapter(logger, {"service": service_name})


def log_values_applied(
    logger: logging.Logger,
    sheet_key: str,
    source: str,
    timestamp: int,
    changed: list[str],
) -> None:
    """Log a successful apply of a sheet document"""
    if changed:
        logger.info(
            f"Sheet {sheet_key[:8]} updated from {source} @ {timestamp}: "
            f"{len(changed)} value(s) changed",
            extra={
                "sheet_key": sheet_key,
                "source": source,
                "timestamp": timestamp,
                "changed": changed,
            },
        )
    else:
        logger.debug(
            f"Sheet {sheet_key[:8]} refreshed from {source} @ {timestamp} (no changes)",
            extra={"sheet_key": sheet_key, "source": source, "timestamp": timestamp},
        )


def log_refresh(
    logger: logging.Logger,
    sheet_key: str,
    status: str,
    detail: str,
    execution_time_ms: float,
) -> None:
    """Log the outcome of one refresh cycle"""
    log_method = logger.warning if status == "failed" else logger.debug
    log_method(
        f"Refresh {sheet_key[:8]}: {status} ({detail}), exec={execution_time_ms:.0f}ms",
        extra={
            "sheet_key": sheet_key,
            "status": status,
            "detail": detail,
            "execution_time_ms": execution_time_ms,
        },
    )
