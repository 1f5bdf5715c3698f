"""Correlation ID handling for the Flask application.

Each request gets an ``X-Request-ID``: the caller's value when it sends a
usable one, otherwise a fresh UUID. The id is stored in the logging context,
on ``flask.g`` and echoed back on the response.
"""

from __future__ import annotations

import uuid
from typing import Optional

from flask import Flask, g, request

from app_logging import clear_request_context, clear_request_id, set_request_id

HEADER_NAME = "X-Request-ID"
_MAX_ID_LENGTH = 128


def _incoming_request_id() -> Optional[str]:
    header_val = request.headers.get(HEADER_NAME, "").strip()
    if not header_val or len(header_val) > _MAX_ID_LENGTH:
        return None
    return header_val


def init_correlation_id(app: Flask) -> None:
    """Register hooks that attach a correlation ID to each request."""

    @app.before_request
    def _assign_request_id() -> None:
        request_id = _incoming_request_id() or str(uuid.uuid4())
        set_request_id(request_id)
        g.request_id = request_id

    @app.after_request
    def _append_request_id(response):
        request_id = getattr(g, "request_id", None)
        if request_id:
            response.headers[HEADER_NAME] = request_id
        return response

    @app.teardown_request
    def _teardown_request(_exc):
        clear_request_id()
        clear_request_context()


__all__ = ["init_correlation_id", "HEADER_NAME"]
