"""
Logging setup for the skill progression engine.

JSON lines in production, a compact human-readable format elsewhere. The
request middleware stores the current request id in `request_id_var`; a
handler filter copies it onto every record so engine logs can be tied back
to the API call that caused them.

Usage:
    from skilltree.logging_config import get_logger
    logger = get_logger(__name__)
    logger.info("Skill mastered", extra={"skill_id": skill_id, "user_id": user_id})
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

NO_REQUEST = "-"

# Attributes every LogRecord has; anything else arrived through extra=
_STANDARD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime", "request_id"}

_NOISY_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "httpx", "openai")


def _extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _STANDARD_ATTRS and value is not None
    }


class RequestIdFilter(logging.Filter):
    """Stamp records with the request id of the current context."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get() or NO_REQUEST  # type: ignore[attr-defined]
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line for log aggregators."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        request_id = getattr(record, "request_id", NO_REQUEST)
        if request_id != NO_REQUEST:
            payload["request_id"] = request_id
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        for key, value in _extra_fields(record).items():
            try:
                json.dumps(value)
            except (TypeError, ValueError):
                value = str(value)
            payload[key] = value
        return json.dumps(payload)


class DevFormatter(logging.Formatter):
    """Readable single line with structured extras appended as key=value."""

    def __init__(self):
        super().__init__("%(asctime)s %(levelname)-5s [%(name)s] req=%(request_id)s %(message)s", datefmt="%H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, "request_id"):
            record.request_id = NO_REQUEST  # type: ignore[attr-defined]
        line = super().format(record)
        extras = _extra_fields(record)
        # Raw model replies are long; they only go to the JSON logs
        extras.pop("raw_response", None)
        if extras:
            line += " " + " ".join(f"{key}={value}" for key, value in extras.items())
        return line


def configure_logging(
    *,
    log_level: str = "INFO",
    environment: str = "development",
    debug: bool = False,
) -> None:
    """
    Install a single stderr handler on the root logger.

    Safe to call more than once (reloads replace the handler). `debug`
    forces DEBUG regardless of `log_level`.
    """
    level = logging.DEBUG if debug else getattr(logging, log_level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.addFilter(RequestIdFilter())
    handler.setFormatter(JsonFormatter() if environment == "production" else DevFormatter())

    root = logging.getLogger()
    for existing in root.handlers[:]:
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
