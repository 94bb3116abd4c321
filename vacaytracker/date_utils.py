"""Date parsing and business day arithmetic for vacation requests."""
from __future__ import annotations

import calendar
from datetime import date, datetime, timedelta

from .errors import ValidationError
from .models import WeekendPolicy

# @tweakable boundary date format accepted from clients (day/month/year)
BOUNDARY_DATE_SEPARATOR = "/"
ISO_DATE_FORMAT = "%Y-%m-%d"


def parse_boundary_date(text: str) -> date:
    """Parse a ``D/M/YYYY`` boundary date.

    Day and month may have one or two digits, the year must have four.
    Raises :class:`ValidationError` when the text is malformed or names a
    calendar date that does not exist.
    """

    if not isinstance(text, str):
        raise ValidationError("invalid date format, expected DD/MM/YYYY")

    parts = text.strip().split(BOUNDARY_DATE_SEPARATOR)
    if len(parts) != 3:
        raise ValidationError("invalid date format, expected DD/MM/YYYY")

    day, month, year = parts
    if not 1 <= len(day) <= 2 or not (day.isascii() and day.isdigit()):
        raise ValidationError("invalid day")
    if not 1 <= len(month) <= 2 or not (month.isascii() and month.isdigit()):
        raise ValidationError("invalid month")
    if len(year) != 4 or not (year.isascii() and year.isdigit()):
        raise ValidationError("invalid year")

    try:
        return date(int(year), int(month), int(day))
    except ValueError as exc:
        raise ValidationError(f"invalid date: {exc}") from exc


def format_iso(value: date) -> str:
    return value.strftime(ISO_DATE_FORMAT)


def parse_iso_date(text: str) -> date:
    """Parse a persisted ``YYYY-MM-DD`` date."""
    try:
        return datetime.strptime(text, ISO_DATE_FORMAT).date()
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"invalid ISO date: {text!r}") from exc


def weekday_index(value: date) -> int:
    """Return the weekday with Sunday = 0 ... Saturday = 6."""
    return value.isoweekday() % 7


def business_days(start: date, end: date, policy: WeekendPolicy) -> int:
    """Count the days in ``[start, end]`` that the weekend policy keeps.

    Without weekend exclusion this is the plain inclusive day count. A range
    made only of excluded days yields 0, which callers must reject.
    """

    if end < start:
        return 0

    if not policy.exclude_weekends:
        return (end - start).days + 1

    count = 0
    current = start
    while current <= end:
        if not policy.is_day_excluded(weekday_index(current)):
            count += 1
        current += timedelta(days=1)
    return count


def month_bounds(month: int, year: int) -> tuple[date, date]:
    """Return the first and last calendar day of ``month``/``year``."""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def shift_month(value: date, months: int) -> tuple[int, int]:
    """Return ``(month, year)`` ``months`` away from ``value``'s month."""
    index = value.year * 12 + (value.month - 1) + months
    return index % 12 + 1, index // 12
