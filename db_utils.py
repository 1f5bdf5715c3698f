"""Database start-up helpers."""

from __future__ import annotations

import time
from typing import Callable, TypeVar

from sqlalchemy.exc import OperationalError

from app_logging import get_logger

T = TypeVar("T")

_logger = get_logger("attendance.db")


def retry_with_backoff(
    func: Callable[[], T],
    attempts: int = 3,
    base_delay: float = 0.1,
    max_total_delay: float = 2.0,
    retry_on: tuple = (OperationalError,),
) -> T:
    """Call ``func`` and retry on ``retry_on`` errors with exponential backoff.

    Only used around start-up work such as table creation; request handlers
    and report computations never retry. The final failure is re-raised.
    """

    total_delay = 0.0
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except retry_on as exc:
            _logger.warning(
                "database operation failed", extra={"attempt": attempt, "error": str(exc)}
            )
            if attempt >= attempts or total_delay >= max_total_delay:
                raise
            delay = min(base_delay * (2 ** (attempt - 1)), max_total_delay - total_delay)
            if delay > 0:
                time.sleep(delay)
                total_delay += delay
    raise RuntimeError("retry_with_backoff called with attempts < 1")


__all__ = ["retry_with_backoff"]
