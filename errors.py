"""Error types raised by the attendance service.

Report and input errors are ``400 Bad Request`` subclasses with their own
problem-details title. Authentication, permission and uniqueness failures
use :mod:`werkzeug.exceptions` directly.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from werkzeug.exceptions import BadRequest


class AttendanceError(BadRequest):
    """Base class for rejected report filters and attendance input."""

    title = "Bad Request"

    def __init__(self, detail: str, **context: Any) -> None:
        super().__init__(description=detail)
        self.detail = detail
        self.context: Dict[str, Any] = context


class MissingParameter(AttendanceError):
    """A required report filter was not supplied."""

    title = "Missing Parameter"

    def __init__(self, name: str) -> None:
        super().__init__(f"Missing required parameter: {name}", parameter=name)
        self.parameter = name


class InvalidRange(AttendanceError):
    """The start of a date range lies after its end."""

    title = "Invalid Date Range"

    def __init__(self, start: Any, end: Any) -> None:
        super().__init__(f"Start date {start} is after end date {end}", start=str(start), end=str(end))


class ValidationFailed(AttendanceError):
    title = "Validation Failed"

    def __init__(self, detail: str, errors: Optional[Dict[str, str]] = None) -> None:
        super().__init__(detail)
        self.errors = errors or {}


__all__ = [
    "AttendanceError",
    "InvalidRange",
    "MissingParameter",
    "ValidationFailed",
]
