"""Service: Vacation Service. Create, review and cancel vacation requests.

A request starts ``pending`` (or ``approved`` straight away when an admin
files it) and ends ``approved`` or ``rejected``; only pending requests can
be cancelled, which deletes them. Approval and the matching balance debit
commit together or not at all.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, Optional, assert_never

from . import balance_manager
from .date_utils import business_days, format_iso, month_bounds, parse_boundary_date
from .errors import (
    ForbiddenError,
    InternalError,
    NotFoundError,
    ValidationError,
    VacationTrackerError,
    already_processed,
    overlapping_request,
)
from .models import VacationStatus, is_admin
from .overlap_guard import has_overlap
from .storage import utc_timestamp
from .transaction_service import run_in_transaction

# @tweakable administrative range accepted for team calendar queries
MIN_CALENDAR_YEAR = 2000
MAX_CALENDAR_YEAR = 2100


def ensure_pending(request: dict) -> None:
    """Raise :class:`ConflictError` unless the request can still be reviewed."""
    status = request['status']
    if status is VacationStatus.PENDING:
        return
    elif status is VacationStatus.APPROVED or status is VacationStatus.REJECTED:
        raise already_processed()
    else:
        assert_never(status)


def ensure_cancellable(request: dict, employee_id: str) -> None:
    """Raise :class:`ForbiddenError` unless ``employee_id`` may cancel the request."""
    if request['employee_id'] != employee_id:
        raise ForbiddenError("not your request: you can only cancel your own requests")

    status = request['status']
    if status is VacationStatus.PENDING:
        return
    elif status is VacationStatus.APPROVED:
        raise ForbiddenError("cannot cancel approved request")
    elif status is VacationStatus.REJECTED:
        raise ForbiddenError("cannot cancel rejected request")
    else:
        assert_never(status)


def _clean_reason(reason: Optional[str]) -> Optional[str]:
    if reason is None:
        return None
    reason = reason.strip()
    return reason or None


class VacationService:
    """Vacation request lifecycle on top of a :class:`~vacaytracker.storage.Storage`."""

    def __init__(self, storage, notifier=None, clock: Optional[Callable[[], datetime]] = None):
        self.storage = storage
        self.notifier = notifier
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _now(self) -> datetime:
        now = self._clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now.astimezone(timezone.utc)

    def _call(self, fn, action):
        """Run a storage call, reporting unexpected failures as :class:`InternalError`."""
        try:
            return fn()
        except VacationTrackerError:
            raise
        except Exception as exc:
            logging.exception("Storage error while trying to %s", action)
            raise InternalError(f"failed to {action}") from exc

    def _notify(self, event, *args):
        if self.notifier is None:
            return
        try:
            getattr(self.notifier, event)(*args)
        except Exception:
            logging.exception("Notifier %s failed for request %s", event, args[0].get('id'))

    def _load_request(self, request_id):
        request = self._call(lambda: self.storage.get_request(request_id), "get vacation request")
        if request is None:
            raise NotFoundError("vacation request")
        return request

    def _load_employee(self, employee_id):
        employee = self._call(lambda: self.storage.get_employee(employee_id), "get user")
        if employee is None:
            raise NotFoundError("user")
        return employee

    def create_request(self, employee_id, start_text, end_text, reason=None):
        """Validate and file a vacation request for ``employee_id``.

        Admin requests are approved on creation and debited in the same
        atomic unit; everyone else's start out pending.
        """
        try:
            start = parse_boundary_date(start_text)
        except ValidationError as exc:
            raise ValidationError(f"invalid start date format: {exc}") from exc
        try:
            end = parse_boundary_date(end_text)
        except ValidationError as exc:
            raise ValidationError(f"invalid end date format: {exc}") from exc

        if end < start:
            raise ValidationError("end date must be after or equal to start date")

        now = self._now()
        if start < now.date():
            raise ValidationError("start date cannot be in the past")

        settings = self._call(self.storage.get_settings, "get settings")
        total_days = business_days(start, end, settings.weekend_policy)
        if total_days == 0:
            raise ValidationError("selected dates result in zero vacation days")

        employee = self._load_employee(employee_id)
        balance_manager.check_sufficient(employee, total_days)

        privileged = is_admin(employee)
        timestamp = utc_timestamp(now)
        request = {
            'id': str(uuid.uuid4()),
            'employee_id': employee_id,
            'start_date': format_iso(start),
            'end_date': format_iso(end),
            'total_days': total_days,
            'reason': _clean_reason(reason),
            'status': VacationStatus.APPROVED if privileged else VacationStatus.PENDING,
            'reviewed_by': employee_id if privileged else None,
            'reviewed_at': timestamp if privileged else None,
            'created_at': timestamp,
            'updated_at': timestamp,
        }

        def _file(tx):
            # Overlap is checked on the transactional handle so two concurrent
            # submissions for the same dates cannot both be stored.
            if has_overlap(tx, employee_id, start, end):
                raise overlapping_request()
            tx.create_request(request)
            if privileged:
                balance_manager.debit(
                    tx,
                    employee_id,
                    total_days,
                    request_id=request['id'],
                    changed_by=employee_id,
                    reason='Vacation auto-approved for admin',
                )

        run_in_transaction(self.storage, _file, "create vacation request")
        logging.info(
            "Vacation request %s created for %s (%s to %s, %s days, %s)",
            request['id'],
            employee_id,
            request['start_date'],
            request['end_date'],
            total_days,
            request['status'].value,
        )

        created = self._load_request(request['id'])
        if created['status'] is VacationStatus.PENDING:
            self._notify('notify_created', created)
        return created

    def approve_request(self, request_id, reviewer_id):
        """Approve a pending request and debit the owner's balance atomically."""
        request = self._load_request(request_id)
        ensure_pending(request)

        owner = self._load_employee(request['employee_id'])
        balance_manager.check_sufficient(owner, request['total_days'])

        reviewed_at = self._now()

        def _approve(tx):
            moved = tx.update_request_status(
                request_id,
                VacationStatus.APPROVED,
                reviewer_id,
                reviewed_at=reviewed_at,
                expected_status=VacationStatus.PENDING,
            )
            if not moved:
                current = tx.get_request(request_id)
                if current is None:
                    raise NotFoundError("vacation request")
                raise already_processed()
            return balance_manager.debit(
                tx,
                request['employee_id'],
                request['total_days'],
                request_id=request_id,
                changed_by=reviewer_id,
            )

        new_balance = run_in_transaction(self.storage, _approve, "approve request")
        logging.info(
            "Vacation request %s approved by %s; %s now has %s days",
            request_id,
            reviewer_id,
            request['employee_id'],
            new_balance,
        )

        approved = self._load_request(request_id)
        self._notify('notify_approved', approved)
        return approved

    def reject_request(self, request_id, reviewer_id, reason=None):
        """Reject a pending request. The balance is untouched."""
        request = self._load_request(request_id)
        ensure_pending(request)

        reason = _clean_reason(reason)
        moved = self._call(
            lambda: self.storage.update_request_status(
                request_id,
                VacationStatus.REJECTED,
                reviewer_id,
                rejection_reason=reason,
                reviewed_at=self._now(),
                expected_status=VacationStatus.PENDING,
            ),
            "reject request",
        )
        if not moved:
            # Reviewed or cancelled between the read and the write.
            ensure_pending(self._load_request(request_id))
            raise already_processed()

        logging.info("Vacation request %s rejected by %s", request_id, reviewer_id)
        rejected = self._load_request(request_id)
        self._notify('notify_rejected', rejected, reason)
        return rejected

    def cancel_request(self, request_id, employee_id):
        """Delete the employee's own pending request."""
        request = self._load_request(request_id)
        ensure_cancellable(request, employee_id)

        deleted = self._call(
            lambda: self.storage.delete_request(request_id, expected_status=VacationStatus.PENDING),
            "cancel request",
        )
        if not deleted:
            ensure_cancellable(self._load_request(request_id), employee_id)
            raise InternalError("failed to cancel request")

        logging.info("Vacation request %s cancelled by %s", request_id, employee_id)

    def get_request(self, request_id):
        return self._load_request(request_id)

    def list_employee_requests(self, employee_id, status=None, year=None):
        statuses = None
        if status is not None:
            try:
                statuses = [VacationStatus(status)]
            except ValueError:
                raise ValidationError(f"invalid status: {status}") from None
        return self._call(
            lambda: self.storage.list_employee_requests(employee_id, statuses=statuses, year=year),
            "list vacation requests",
        )

    def list_pending_requests(self):
        return self._call(self.storage.list_pending_requests, "list pending requests")

    def list_team_vacations(self, month, year):
        """Approved vacations that touch ``month``/``year``, for the team calendar."""
        if not isinstance(month, int) or not 1 <= month <= 12:
            raise ValidationError("month must be between 1 and 12")
        if not isinstance(year, int) or not MIN_CALENDAR_YEAR <= year <= MAX_CALENDAR_YEAR:
            raise ValidationError("invalid year")

        start, end = month_bounds(month, year)
        return self._call(lambda: self.storage.list_team_vacations(start, end), "list team vacations")
