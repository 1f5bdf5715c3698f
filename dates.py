"""Calendar-date helpers shared by the API and the report code."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Any, List, Optional

from errors import InvalidRange, ValidationFailed

DATE_FORMAT = '%Y-%m-%d'


def as_date(value: Any) -> date:
    """Reduce ``value`` to its calendar-date component.

    Accepts :class:`~datetime.date`, :class:`~datetime.datetime` (time of day
    dropped), ``YYYY-MM-DD`` strings and full ISO timestamps such as
    ``2024-01-10T08:30:00``. Anything after the date must form a valid time.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if len(text) > 10 and text[10] in 'T ':
            return datetime.fromisoformat(text).date()
        if len(text) != 10:
            raise ValueError(f"{value!r} is not a YYYY-MM-DD date")
        return datetime.strptime(text, DATE_FORMAT).date()
    raise TypeError(f"Cannot interpret {value!r} as a date")


def parse_date(value: Optional[str], name: str) -> Optional[date]:
    """Parse an optional request value; malformed input is a validation error."""
    if value is None or value == '':
        return None
    try:
        return as_date(value)
    except (TypeError, ValueError):
        raise ValidationFailed(f"Invalid {name}, must be YYYY-MM-DD", {name: 'invalid date'})


def check_span(start: date, end: date, max_days: Optional[int] = None) -> int:
    """Number of days from ``start`` to ``end`` inclusive.

    Raises :class:`InvalidRange` for an inverted range and
    :class:`ValidationFailed` when the range is longer than ``max_days``.
    """
    if start > end:
        raise InvalidRange(start, end)
    days = (end - start).days + 1
    if max_days is not None and days > max_days:
        raise ValidationFailed(
            f"Date range of {days} days exceeds the limit of {max_days} days",
            {'dateRange': f'at most {max_days} days'},
        )
    return days


def date_sequence(start: date, end: date, max_days: Optional[int] = None) -> List[date]:
    """Every calendar day from ``start`` to ``end`` inclusive."""
    days = check_span(start, end, max_days)
    return [start + timedelta(days=offset) for offset in range(days)]


def format_date(value: date) -> str:
    return value.strftime(DATE_FORMAT)
