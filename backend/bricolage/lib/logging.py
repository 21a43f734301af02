"""
Structured logging with JSON formatter and correlation ID support.

Every record carries the correlation id of the request being served, and
any `extra=` fields are emitted as top-level JSON keys. Payment overrides go
to the dedicated `bricolage.audit` logger.
"""
import logging
import json
import sys
from datetime import datetime, timezone
from typing import Optional
from contextvars import ContextVar

from bricolage.lib.settings import settings


# Correlation id of the request being handled in this context
correlation_id_var: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)

AUDIT_LOGGER_NAME = "bricolage.audit"

# Attributes present on every LogRecord; anything else came in through `extra=`
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """One JSON object per line: timestamp, level, logger, message, context."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        correlation_id = correlation_id_var.get()
        if correlation_id:
            log_data["correlation_id"] = correlation_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in vars(record).items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                log_data[key] = value

        return json.dumps(log_data, default=str)


def setup_logging(level: str = "INFO", json_format: bool = True) -> None:
    """
    Configure the root logger with a single stdout handler.

    Args:
        level: Root log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: JSON lines when True, plain text otherwise (local runs)
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    # Audit records are never filtered out by the root level
    logging.getLogger(AUDIT_LOGGER_NAME).setLevel(logging.INFO)

    for noisy in ("httpx", "httpcore", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def get_audit_logger() -> logging.Logger:
    """Logger for administrative actions that must leave a trace."""
    return logging.getLogger(AUDIT_LOGGER_NAME)


def set_correlation_id(correlation_id: str) -> None:
    """Bind `correlation_id` to the current request context."""
    correlation_id_var.set(correlation_id)


def get_correlation_id() -> Optional[str]:
    return correlation_id_var.get()


# Initialize logging on module import
setup_logging(
    level="DEBUG" if settings.debug else settings.log_level,
    json_format=settings.log_json,
)
