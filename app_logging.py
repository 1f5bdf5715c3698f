"""JSON logging configuration and request-context helpers.

Every log line is a single JSON object so hosted log drains can index it.
Request-scoped values (correlation id, method, path, user, database time) are
kept in :mod:`contextvars` and merged into each record by
:class:`JSONFormatter`. Values stored under keys such as ``password`` or
``email`` are redacted before they are written.
"""

from __future__ import annotations

import contextvars
import json
import logging
import os
import sys
import time
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, Mapping, Optional

_request_id: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "attendance_request_id", default=None
)
_request_context: contextvars.ContextVar[Dict[str, Any]] = contextvars.ContextVar(
    "attendance_request_context"
)

REDACTED = "[REDACTED]"
_SENSITIVE_FIELDS = frozenset(
    name.strip().lower()
    for name in os.environ.get("SENSITIVE_FIELDS", "password,token,email,phone").split(",")
    if name.strip()
)

# Keys every JSON line carries, null when unknown, so downstream queries can
# rely on them.
BASE_FIELDS = (
    "ts", "level", "logger", "msg", "request_id", "user_id", "method", "path",
    "status", "duration_ms", "client_ip", "route", "db_time_ms",
    "error_type", "error", "stack", "extra_context",
)

# ``extra=`` attributes lifted to the top level instead of ``extra_context``.
PROMOTED_FIELDS = (
    "user_id", "method", "path", "status", "duration_ms", "client_ip",
    "user_agent", "route", "db_time_ms", "error_type", "error",
)

# Attributes every LogRecord has; anything else on a record came from ``extra=``.
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}


def get_request_id() -> Optional[str]:
    return _request_id.get()


def set_request_id(request_id: str) -> None:
    _request_id.set(request_id)
    merge_request_context(request_id=request_id)


def clear_request_id() -> None:
    _request_id.set(None)


def get_request_context() -> Dict[str, Any]:
    """Return a copy of the context collected for the current request."""
    return dict(_request_context.get({}))


def merge_request_context(**values: Any) -> None:
    """Add ``values`` to the request context, ignoring ``None`` values."""
    ctx = get_request_context()
    ctx.update({key: value for key, value in values.items() if value is not None})
    _request_context.set(ctx)


def clear_request_context() -> None:
    _request_context.set({})


def redact_sensitive_data(data: Any, fields: Optional[Iterable[str]] = None) -> Any:
    """Return ``data`` with values under sensitive keys replaced.

    Walks nested mappings and sequences; key comparison ignores case.
    """
    names = {name.lower() for name in (fields or _SENSITIVE_FIELDS)}
    if isinstance(data, Mapping):
        return {
            key: REDACTED if str(key).lower() in names else redact_sensitive_data(value, names)
            for key, value in data.items()
        }
    if isinstance(data, (list, tuple, set)):
        return [redact_sensitive_data(item, names) for item in data]
    return data


class JSONFormatter(logging.Formatter):
    """Render log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = dict.fromkeys(BASE_FIELDS)
        payload.update(
            ts=datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec="milliseconds"),
            level=record.levelname,
            logger=record.name,
            msg=record.getMessage(),
            request_id=get_request_id(),
        )

        for key, value in get_request_context().items():
            if payload.get(key) is None:
                payload[key] = value

        for name in PROMOTED_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                payload[name] = value

        if record.exc_info:
            exc_type, exc, _tb = record.exc_info
            payload.update(error_type=exc_type.__name__, error=str(exc),
                           stack=self.formatException(record.exc_info))
        elif record.stack_info:
            payload["stack"] = record.stack_info

        extra = {
            key: value
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and key not in payload and not key.startswith("_")
        }
        if extra:
            payload["extra_context"] = redact_sensitive_data(extra)

        return json.dumps(payload, default=_json_default, separators=(",", ":"))


def _json_default(obj: Any) -> Any:
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    return str(obj)


_configured = False


def configure_logging() -> None:
    """Install the JSON formatter on the root logger (once per process)."""
    global _configured
    if _configured:
        return

    level = getattr(logging, os.environ.get("LOG_LEVEL", "INFO").upper(), logging.INFO)
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(JSONFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = [handler]
    logging.captureWarnings(True)

    # Requests are logged by the middleware; server access logs would duplicate them.
    for name in ("werkzeug", "gunicorn.access", "gunicorn.error", "sqlalchemy.engine"):
        noisy = logging.getLogger(name)
        noisy.handlers = []
        noisy.propagate = True
        noisy.setLevel(logging.WARNING)

    _configured = True


def get_logger(name: str) -> logging.Logger:
    configure_logging()
    return logging.getLogger(name)


class DBTimer:
    """Add the time spent inside the block to ``db_time_ms``.

    Timers within one request accumulate, so a report that runs a roster
    query and a records query logs their combined time.
    """

    def __enter__(self) -> "DBTimer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        elapsed = (time.perf_counter() - self._start) * 1000
        spent = get_request_context().get("db_time_ms", 0.0)
        merge_request_context(db_time_ms=round(spent + elapsed, 2))


__all__ = [
    "DBTimer",
    "JSONFormatter",
    "clear_request_context",
    "clear_request_id",
    "configure_logging",
    "get_logger",
    "get_request_context",
    "get_request_id",
    "merge_request_context",
    "redact_sensitive_data",
    "set_request_id",
]
