"""
Structured logging for tagledger.

Everything logs under the ``tagledger`` logger. Set USE_JSON_LOGS=true to
emit one JSON object per line; extra fields passed via ``extra_fields``
(request timings, correction ids, error context) become top-level keys.
"""
import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
USE_JSON_LOGS = os.getenv("USE_JSON_LOGS", "false").lower() == "true"

logger = logging.getLogger("tagledger")


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "line": record.lineno,
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)
        return json.dumps(log_data, default=str)


def configure_logging(level: str = LOG_LEVEL, json_logs: bool = USE_JSON_LOGS) -> logging.Logger:
    """Attach a stdout handler to the package logger. Safe to call twice."""
    logger.setLevel(getattr(logging, level, logging.INFO))
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    if json_logs:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
    logger.addHandler(handler)
    logger.propagate = False
    return logger


configure_logging()


def log_correction_event(event: str, correction_id: str, message: str, **fields: Any):
    """Log a rule lifecycle event (created, reinforced, pruned, ...)."""
    extra_fields = {"type": "correction", "event": event, "correction_id": correction_id}
    extra_fields.update(fields)
    logging.getLogger("tagledger.corrections").info(message, extra={"extra_fields": extra_fields})


def log_request(
    method: str,
    path: str,
    status_code: int,
    duration_ms: float,
    client_id: Optional[str] = None,
    **kwargs
):
    extra_fields = {
        "type": "http_request",
        "method": method,
        "path": path,
        "status_code": status_code,
        "duration_ms": round(duration_ms, 2),
    }
    if client_id:
        extra_fields["client_id"] = client_id
    extra_fields.update(kwargs)

    logger.info(f"{method} {path} {status_code} ({duration_ms:.0f}ms)", extra={"extra_fields": extra_fields})


def log_error(
    error_type: str,
    message: str,
    context: Optional[Dict[str, Any]] = None,
    exception: Optional[Exception] = None
):
    """Log an error with its context; includes the traceback when ``exception`` is given."""
    extra_fields = {"type": "error", "error_type": error_type}
    if context:
        extra_fields.update(context)
    logger.error(message, exc_info=exception, extra={"extra_fields": extra_fields})
