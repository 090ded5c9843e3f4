"""Structured logging configuration.

Provides JSON-formatted logs carrying circulation context (loan, book, user,
notification channel) alongside a plain-text format for local development.
"""
import logging
import json
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import traceback

# Record attributes promoted to top-level JSON keys when passed via ``extra``
CONTEXT_FIELDS = (
    "request_id", "loan_id", "isbn", "user_id", "channel", "event",
    "method", "path", "status_code", "duration_ms", "error_type",
)


class JSONFormatter(logging.Formatter):
    """Render each log record as a single JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_obj["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": traceback.format_exception(*record.exc_info)
            }

        for attr in CONTEXT_FIELDS:
            if hasattr(record, attr):
                log_obj[attr] = getattr(record, attr)

        return json.dumps(log_obj, default=str)


class ContextLogger(logging.LoggerAdapter):
    """Logger adapter that stamps a fixed context onto every record.

    Example:
        >>> logger = ContextLogger(base_logger, {"channel": "email"})
        >>> logger.info("Notification rendered")
        # Record carries channel="email"
    """

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        extra = dict(self.extra)
        extra.update(kwargs.get("extra", {}))
        kwargs["extra"] = extra
        return msg, kwargs


def setup_logging(level: str = "INFO", json_format: bool = True) -> logging.Logger:
    """Configure the root logger with a single stdout handler.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use ``JSONFormatter`` instead of the human-readable format

    Returns:
        Configured root logger
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, level.upper()))

    if json_format:
        formatter = JSONFormatter()
    else:
        fmt = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        formatter = logging.Formatter(fmt)

    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    return root_logger


def get_logger(name: str, context: Optional[Dict[str, Any]] = None) -> logging.Logger:
    """Return a module logger, wrapped in ``ContextLogger`` when context is given."""
    logger = logging.getLogger(name)

    if context:
        return ContextLogger(logger, context)

    return logger


class LogTimer:
    """Context manager that logs how long an operation took.

    Example:
        >>> with LogTimer(logger, "create_loan"):
        ...     library.create_loan("U001", isbn)
        # Logs: "create_loan completed in 0.4ms"
    """

    def __init__(self, logger: logging.Logger, operation: str):
        self.logger = logger
        self.operation = operation
        self.start_time: Optional[datetime] = None

    def __enter__(self):
        self.start_time = datetime.now(timezone.utc)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.start_time:
            duration = (datetime.now(timezone.utc) - self.start_time).total_seconds() * 1000

            if exc_type:
                self.logger.warning(
                    f"{self.operation} failed after {duration:.1f}ms: {exc_val}",
                    extra={"duration_ms": duration, "error_type": exc_type.__name__}
                )
            else:
                self.logger.info(
                    f"{self.operation} completed in {duration:.1f}ms",
                    extra={"duration_ms": duration}
                )
