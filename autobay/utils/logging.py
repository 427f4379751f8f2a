"""
JSON log lines tagged with a correlation ID.

A correlation ID follows one booking call (or one reminder poll) through the
engine, the stores and the notifier. It lives in a ContextVar so concurrent
calls on the same event loop keep their own IDs.
"""
import json
import logging
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Iterator, Optional

correlation_id_ctx: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

# Booking fields copied from extra={...} into the JSON entry
EXTRA_KEYS = ("appointment_id", "technician_id", "service_id", "outcome", "error_code")

QUIET_LOGGERS = ("sqlalchemy.engine", "httpcore", "httpx", "aiosqlite")


def get_correlation_id() -> Optional[str]:
    return correlation_id_ctx.get()


def generate_correlation_id() -> str:
    """UUID4 hex, 32 chars."""
    return uuid.uuid4().hex


def ensure_correlation_id() -> str:
    """Return the ID already bound to this context, binding a fresh one if there is none."""
    cid = correlation_id_ctx.get()
    if cid is None:
        cid = generate_correlation_id()
        correlation_id_ctx.set(cid)
    return cid


@contextmanager
def correlation_scope(cid: Optional[str] = None) -> Iterator[str]:
    """Bind a correlation ID for the duration of the block, then restore the previous one."""
    cid = cid or generate_correlation_id()
    token = correlation_id_ctx.set(cid)
    try:
        yield cid
    finally:
        correlation_id_ctx.reset(token)


class StructuredJsonFormatter(logging.Formatter):
    """
    One JSON object per line:
    {"timestamp", "level", "correlation_id", "logger", "message", [exception], [booking fields]}
    """

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry = {
            "timestamp": created.strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
            "level": record.levelname,
            "correlation_id": get_correlation_id(),
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)

        entry.update(
            (key, getattr(record, key))
            for key in EXTRA_KEYS
            if getattr(record, key, None) is not None
        )
        return json.dumps(entry, default=str)


def configure_structured_logging(log_level: str = "INFO") -> None:
    """Route the root logger through a single JSON stream handler. Call once at startup."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(StructuredJsonFormatter())
    root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
