"""Overlap detection between an employee's vacation requests."""
from __future__ import annotations

from datetime import date

from .date_utils import parse_iso_date
from .models import BLOCKING_STATUSES


def ranges_overlap(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    """True when the inclusive ranges share at least one day."""
    return a_start <= b_end and b_start <= a_end


def has_overlap(storage, employee_id: str, start: date, end: date) -> bool:
    """Return ``True`` if a pending or approved request of the employee intersects ``[start, end]``.

    Rejected requests never block, and cancelled requests no longer exist.
    """
    for request in storage.list_employee_requests(employee_id, statuses=BLOCKING_STATUSES):
        if ranges_overlap(start, end, parse_iso_date(request['start_date']), parse_iso_date(request['end_date'])):
            return True
    return False
