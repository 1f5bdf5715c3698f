"""Request/response logging for the attendance API.

``REQUEST_LOG_SAMPLE_RATE`` (0..1) controls what share of requests get
start/end lines; ``RESPONSE_BODY_MAX_BYTES`` caps the logged JSON body.
"""

from __future__ import annotations

import json
import os
import random
import time
from typing import Any, Dict, Optional

from flask import Flask, Response, g, request

from app_logging import get_logger, merge_request_context, redact_sensitive_data

_request_logger = get_logger("attendance.request")

_UNLOGGED_PATHS = ("/health", "/static")


def _env_number(name: str, default, cast, lowest, highest=None):
    try:
        value = cast(os.environ.get(name, default))
    except ValueError:
        return default
    value = max(lowest, value)
    return value if highest is None else min(highest, value)


def _client_ip() -> str:
    # First hop of X-Forwarded-For is the original client behind a proxy.
    forwarded = request.headers.get("X-Forwarded-For", "")
    return forwarded.split(",")[0].strip() if forwarded else (request.remote_addr or "unknown")


def _should_log_request(path: str) -> bool:
    if path.startswith(_UNLOGGED_PATHS):
        return False
    rate = _env_number("REQUEST_LOG_SAMPLE_RATE", 1.0, float, 0.0, 1.0)
    return rate >= 1.0 or random.random() <= rate


def _request_payload() -> Dict[str, Any]:
    """Query string and JSON body of the current request, redacted."""
    sources = {"query": request.args.to_dict(flat=False) or None}
    if request.method not in ("GET", "HEAD", "OPTIONS"):
        sources["json"] = request.get_json(silent=True)
    return {name: redact_sensitive_data(data) for name, data in sources.items() if data is not None}


def _response_excerpt(resp: Response) -> Optional[str]:
    """Return the (redacted, truncated) JSON body of ``resp``.

    Binary downloads such as spreadsheet exports are never read.
    """
    if resp.direct_passthrough or "json" not in (resp.mimetype or ""):
        return None
    limit = _env_number("RESPONSE_BODY_MAX_BYTES", 2048, int, 0)
    if not limit:
        return None
    text = resp.get_data(as_text=True)
    try:
        text = json.dumps(redact_sensitive_data(json.loads(text)))
    except ValueError:
        pass
    overflow = len(text) - limit
    return text if overflow <= 0 else f"{text[:limit]}... truncated {overflow} bytes"


def init_request_logging(app: Flask) -> None:
    """Log a ``request_start`` and a ``request_end`` line per sampled request."""

    @app.before_request
    def _start_request_log() -> None:
        g.request_log = {
            "sampled": _should_log_request(request.path),
            "started": time.perf_counter(),
        }
        merge_request_context(
            method=request.method,
            path=request.path,
            route=request.url_rule.rule if request.url_rule else None,
            client_ip=_client_ip(),
        )
        if g.request_log["sampled"]:
            _request_logger.info(
                "request_start",
                extra={
                    "event": "request_start",
                    "user_agent": request.user_agent.string or None,
                    "request_payload": _request_payload(),
                },
            )

    @app.after_request
    def _finish_request_log(response: Response) -> Response:
        state = g.pop("request_log", None)
        elapsed = None if state is None else round((time.perf_counter() - state["started"]) * 1000, 2)
        merge_request_context(status=response.status_code, duration_ms=elapsed)
        if state is not None and state["sampled"]:
            _request_logger.info(
                "request_end",
                extra={
                    "event": "request_end",
                    "response_body": _response_excerpt(response),
                },
            )
        return response


__all__ = ["init_request_logging"]
