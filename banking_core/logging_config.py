"""
Structured Logging Configuration Module

Provides JSON-formatted structured logging for ledger, session and encryption
operations. Tokens, national IDs and other PII must never be passed as log data;
known sensitive keys in ``extra`` are masked as a last line.
"""

import logging
import json
from datetime import datetime, timezone
from typing import Any, Optional

STRUCTURED_FIELDS = ("user_id", "action", "resource", "extra")

SENSITIVE_KEYS = frozenset({
    "national_id", "address", "password", "password_hash", "password_salt",
    "token", "token_hash", "encryption_key", "jwt_secret",
})

REDACTED = "[redacted]"

TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def redact(value: Any) -> Any:
    """Mask sensitive keys in nested dicts and lists"""
    if isinstance(value, dict):
        return {
            key: REDACTED if key in SENSITIVE_KEYS else redact(item)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [redact(item) for item in value]
    return value


class JSONFormatter(logging.Formatter):
    """One JSON object per line"""

    def format(self, record):
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "module": record.module,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in STRUCTURED_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                log_entry[name] = redact(value)

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging(level: str = "INFO", fmt: str = "json",
                  log_file: Optional[str] = None,
                  logger_name: str = "banking_core") -> logging.Logger:
    """
    Setup logging for the package.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        fmt: "json" for structured output, "text" for human readable lines
        log_file: Optional file path; logs go to stderr when omitted
        logger_name: Package logger; module loggers propagate to it

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(logger_name)

    # Replace handlers so repeated calls don't duplicate output
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    handler = logging.FileHandler(log_file) if log_file else logging.StreamHandler()
    handler.setFormatter(JSONFormatter() if fmt == "json" else logging.Formatter(TEXT_FORMAT))

    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper()))
    logger.propagate = False

    return logger


def get_logger(name: str = "banking_core") -> logging.Logger:
    """Get logger instance"""
    return logging.getLogger(name)


def log_action(logger: logging.Logger, level: str, message: str,
               user_id: Optional[str] = None, action: Optional[str] = None,
               resource: Optional[str] = None, extra: Optional[dict] = None):
    """
    Log an audit-style event with structured fields.

    ``action`` is a snake_case verb such as ``fund_account``; ``resource`` is
    the table or subsystem touched; ``extra`` carries ids and counts only.
    """
    fields = {
        "user_id": user_id,
        "action": action,
        "resource": resource,
        "extra": extra,
    }
    logger.log(
        getattr(logging, level.upper()), message,
        extra={key: value for key, value in fields.items() if value}
    )
