"""Structured logging configuration"""
import json
import logging
import sys
from datetime import datetime
from typing import Any, Dict

# Fields copied from ``extra={...}`` into the JSON record when present
_EXTRA_FIELDS = (
    "perm",
    "token_location",
    "request_id",
    "action",
    "ip",
    "path",
    "method",
    "status",
    "duration",
    "error",
)


class JSONFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging"""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.utcnow().isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Add extra fields; "name" collides with LogRecord.name so it is passed as "account"
        if hasattr(record, "account"):
            log_data["name"] = record.account
        for field in _EXTRA_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(log_level: str = "INFO", log_format: str = "json") -> logging.Logger:
    """Setup structured JSON logging"""
    logger = logging.getLogger("filauth")
    logger.setLevel(log_level)

    # Remove existing handlers
    logger.handlers = []

    handler = logging.StreamHandler(sys.stdout)
    if log_format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    logger.addHandler(handler)

    return logger


# Global logger instance
logger = setup_logging()
