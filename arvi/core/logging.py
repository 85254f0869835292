"""
Structured logging for the "arvi" logger.

Records carry the request id and the calling user id from context, so
pipeline passes and commits running deep inside a request correlate without
threading ids through every call. Production emits one JSON object per line.
"""

import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Dict, Optional, Tuple

request_id_ctx_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
user_id_ctx_var: ContextVar[Optional[str]] = ContextVar("user_id", default=None)

_STANDARD_ATTRS = frozenset(vars(logging.makeLogRecord({})).keys()) | {"message", "asctime"}
_CONTEXT_ATTRS = ("request_id", "user_id")

# Upper bound (exclusive, ms) -> label. Sized for LLM round trips, not page loads.
LATENCY_BUCKETS: Tuple[Tuple[float, str], ...] = (
    (250, "<250ms"),
    (1000, "250ms-1s"),
    (5000, "1-5s"),
    (15000, "5-15s"),
    (30000, "15-30s"),
)

MAX_FIELD_CHARS = 500


def get_request_id(default: Optional[str] = None) -> Optional[str]:
    rid = request_id_ctx_var.get()
    return default if rid is None else rid


def bind_user_id(user_id: Optional[str]) -> None:
    """Attach the caller to every record logged for the rest of this request."""
    user_id_ctx_var.set(user_id)


def latency_bucket_ms(latency_ms: Optional[float]) -> str:
    if latency_ms is None:
        return "unknown"
    for upper, label in LATENCY_BUCKETS:
        if latency_ms < upper:
            return label
    return ">=30s"


def _truncate(value) -> str:
    try:
        text = str(value)
    except Exception:
        return "<unserializable>"
    return text if len(text) <= MAX_FIELD_CHARS else text[:MAX_FIELD_CHARS] + "...<truncated>"


class ContextFilter(logging.Filter):
    """Fill request_id/user_id from context unless the caller passed them."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = request_id_ctx_var.get()
        if getattr(record, "user_id", None) is None:
            record.user_id = user_id_ctx_var.get()
        return True


class StructuredFormatter(logging.Formatter):
    def __init__(self, as_json: bool):
        super().__init__()
        self.as_json = as_json

    def _fields(self, record: logging.LogRecord) -> Dict[str, object]:
        fields = {name: getattr(record, name, None) for name in _CONTEXT_ATTRS}
        for key, value in vars(record).items():
            if key not in _STANDARD_ATTRS and key not in _CONTEXT_ATTRS:
                fields[key] = value
        return {k: v for k, v in fields.items() if v is not None}

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace("+00:00", "Z")
        fields = self._fields(record)

        if self.as_json:
            payload = {"timestamp": ts, "level": record.levelname, "logger": record.name, "event": record.getMessage()}
            payload.update(fields)
            if record.exc_info:
                payload["exc_info"] = self.formatException(record.exc_info)
            return json.dumps(payload, default=str)

        rendered = " ".join(f"{k}={v}" for k, v in fields.items())
        line = f"{ts} {record.levelname:<7} {record.getMessage()}" + (f" {rendered}" if rendered else "")
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(env: str = "development") -> None:
    logger = logging.getLogger("arvi")
    logger.setLevel(logging.DEBUG if env.lower() == "development" else logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredFormatter(as_json=env.lower() == "production"))
    handler.addFilter(ContextFilter())

    logger.handlers = [handler]
    logger.propagate = True


def log_event(
    level: str,
    msg: str,
    *,
    request_id: Optional[str] = None,
    user_id: Optional[str] = None,
    series_id: Optional[str] = None,
    event_type: Optional[str] = None,
    error_code: Optional[str] = None,
    extra: Optional[Dict[str, object]] = None,
):
    """Log one domain event. Values in `extra` are stringified and truncated."""
    logger = logging.getLogger("arvi")
    if not logger.handlers:
        configure_logging(os.getenv("ENV", "development"))

    fields: Dict[str, object] = {
        "request_id": request_id or request_id_ctx_var.get(),
        "user_id": user_id or user_id_ctx_var.get(),
        "series_id": series_id,
        "event_type": event_type,
        "error_code": error_code,
    }
    for key, value in (extra or {}).items():
        fields[key] = _truncate(value)

    level_no = getattr(logging, level.upper(), logging.INFO)
    logger.log(level_no, msg, extra={k: v for k, v in fields.items() if v is not None})
