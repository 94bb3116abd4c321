"""Storage interface used by the services, and its SQLite implementation.

The services never talk to SQLite directly. They depend on :class:`Storage`
so tests can swap in an in-memory fake. Absence is reported as ``None``;
conditional writes report whether a row was touched.
"""
from __future__ import annotations

import json
import logging
import sqlite3
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import date, datetime, timezone
from typing import Callable, Iterable, Optional, TypeVar

from .database_service import db_lock, get_db_connection
from .models import (
    MonthlyStats,
    Role,
    Settings,
    VacationStatus,
    parse_email_preferences,
    parse_newsletter_config,
    parse_weekend_policy,
)

T = TypeVar("T")


class Storage(ABC):
    """Persistence operations the vacation core relies on."""

    # Requests

    @abstractmethod
    def get_request(self, request_id: str) -> Optional[dict]: ...

    @abstractmethod
    def create_request(self, request: dict) -> None: ...

    @abstractmethod
    def update_request_status(
        self,
        request_id: str,
        status: VacationStatus,
        reviewer_id: str,
        rejection_reason: Optional[str] = None,
        reviewed_at: Optional[datetime] = None,
        expected_status: VacationStatus = VacationStatus.PENDING,
    ) -> bool:
        """Move a request out of ``expected_status``; ``False`` if it was not in it."""

    @abstractmethod
    def delete_request(self, request_id: str, expected_status: VacationStatus = VacationStatus.PENDING) -> bool: ...

    @abstractmethod
    def list_employee_requests(
        self,
        employee_id: str,
        statuses: Optional[Iterable[VacationStatus]] = None,
        year: Optional[int] = None,
    ) -> list[dict]: ...

    @abstractmethod
    def list_pending_requests(self) -> list[dict]: ...

    @abstractmethod
    def list_team_vacations(self, start: date, end: date) -> list[dict]:
        """Approved requests intersecting ``[start, end]``, by start date."""

    @abstractmethod
    def get_monthly_stats(self, year: int, month: int) -> MonthlyStats: ...

    # Employees

    @abstractmethod
    def get_employee(self, employee_id: str) -> Optional[dict]: ...

    @abstractmethod
    def get_employee_by_email(self, email: str) -> Optional[dict]: ...

    @abstractmethod
    def create_employee(self, employee: dict) -> None: ...

    @abstractmethod
    def debit_balance(self, employee_id: str, new_balance: int) -> bool: ...

    @abstractmethod
    def record_balance_change(self, entry: dict) -> None: ...

    @abstractmethod
    def list_balance_history(self, employee_id: str) -> list[dict]: ...

    @abstractmethod
    def list_admins(self) -> list[dict]: ...

    @abstractmethod
    def get_newsletter_recipients(self) -> list[dict]: ...

    @abstractmethod
    def get_low_balance_employees(self, threshold: int) -> list[dict]: ...

    # Settings

    @abstractmethod
    def get_settings(self) -> Settings: ...

    @abstractmethod
    def update_settings(self, settings: Settings) -> None: ...

    def update_last_newsletter_sent(self, sent_at: datetime) -> None:
        self.update_settings(self.get_settings().with_last_sent(sent_at))

    # Transactions

    @abstractmethod
    def run_atomic(self, fn: Callable[["Storage"], T]) -> T:
        """Run ``fn`` with a transactional handle; all of its writes commit or none do."""


def utc_timestamp(value: Optional[datetime] = None) -> str:
    value = value or datetime.now(timezone.utc)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


_REQUEST_COLUMNS = '''
    vr.id, vr.user_id, u.name AS employee_name, u.email AS employee_email,
    vr.start_date, vr.end_date, vr.total_days, vr.reason, vr.status,
    vr.reviewed_by, vr.reviewed_at, vr.rejection_reason, vr.created_at, vr.updated_at
'''

_EMPLOYEE_COLUMNS = 'id, email, name, role, vacation_balance, start_date, email_preferences, created_at, updated_at'


def _request_from_row(row) -> dict:
    record = dict(row)
    record['employee_id'] = record.pop('user_id')
    record['status'] = VacationStatus(record['status'])
    return record


def _employee_from_row(row) -> dict:
    record = dict(row)
    record['email_preferences'] = parse_email_preferences(record.get('email_preferences'))
    return record


class SQLiteStorage(Storage):
    """:class:`Storage` backed by the SQLite database from ``database_service``.

    An instance created with ``connection`` is a transactional handle: it
    reuses that connection and leaves commit/rollback to :meth:`run_atomic`.
    """

    def __init__(self, database_path: Optional[str] = None, connection: Optional[sqlite3.Connection] = None):
        self.database_path = database_path
        self._conn = connection

    @contextmanager
    def _connection(self):
        if self._conn is not None:
            yield self._conn
            return

        with db_lock:
            conn = get_db_connection(self.database_path)
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            finally:
                conn.close()

    def run_atomic(self, fn):
        if self._conn is not None:
            # Already inside a unit; join it.
            return fn(self)

        with db_lock:
            conn = get_db_connection(self.database_path)
            conn.isolation_level = None
            try:
                conn.execute('BEGIN IMMEDIATE')
                result = fn(SQLiteStorage(self.database_path, connection=conn))
                conn.execute('COMMIT')
                return result
            except Exception:
                if conn.in_transaction:
                    conn.execute('ROLLBACK')
                raise
            finally:
                conn.close()

    # Requests

    def get_request(self, request_id):
        with self._connection() as conn:
            row = conn.execute(
                f'SELECT {_REQUEST_COLUMNS} FROM vacation_requests vr '
                'JOIN users u ON vr.user_id = u.id WHERE vr.id = ?',
                (request_id,),
            ).fetchone()
        return _request_from_row(row) if row else None

    def create_request(self, request):
        with self._connection() as conn:
            conn.execute(
                '''
                INSERT INTO vacation_requests
                (id, user_id, start_date, end_date, total_days, reason, status,
                 reviewed_by, reviewed_at, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ''',
                (
                    request['id'],
                    request['employee_id'],
                    request['start_date'],
                    request['end_date'],
                    request['total_days'],
                    request.get('reason'),
                    VacationStatus(request['status']).value,
                    request.get('reviewed_by'),
                    request.get('reviewed_at'),
                    request.get('created_at') or utc_timestamp(),
                    request.get('updated_at') or request.get('created_at') or utc_timestamp(),
                ),
            )

    def update_request_status(
        self,
        request_id,
        status,
        reviewer_id,
        rejection_reason=None,
        reviewed_at=None,
        expected_status=VacationStatus.PENDING,
    ):
        with self._connection() as conn:
            cursor = conn.execute(
                '''
                UPDATE vacation_requests
                SET status = ?, reviewed_by = ?, reviewed_at = ?, rejection_reason = ?
                WHERE id = ? AND status = ?
                ''',
                (
                    VacationStatus(status).value,
                    reviewer_id,
                    utc_timestamp(reviewed_at),
                    rejection_reason,
                    request_id,
                    VacationStatus(expected_status).value,
                ),
            )
            return cursor.rowcount == 1

    def delete_request(self, request_id, expected_status=VacationStatus.PENDING):
        with self._connection() as conn:
            cursor = conn.execute(
                'DELETE FROM vacation_requests WHERE id = ? AND status = ?',
                (request_id, VacationStatus(expected_status).value),
            )
            return cursor.rowcount == 1

    def list_employee_requests(self, employee_id, statuses=None, year=None):
        query = (
            f'SELECT {_REQUEST_COLUMNS} FROM vacation_requests vr '
            'JOIN users u ON vr.user_id = u.id WHERE vr.user_id = ?'
        )
        params: list = [employee_id]
        if statuses is not None:
            values = [VacationStatus(s).value for s in statuses]
            if not values:
                return []
            query += f" AND vr.status IN ({', '.join('?' for _ in values)})"
            params.extend(values)
        if year is not None:
            query += " AND substr(vr.start_date, 1, 4) = ?"
            params.append(f"{int(year):04d}")
        query += ' ORDER BY vr.created_at DESC'

        with self._connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [_request_from_row(row) for row in rows]

    def list_pending_requests(self):
        with self._connection() as conn:
            rows = conn.execute(
                f'SELECT {_REQUEST_COLUMNS} FROM vacation_requests vr '
                'JOIN users u ON vr.user_id = u.id '
                "WHERE vr.status = 'pending' ORDER BY vr.created_at ASC"
            ).fetchall()
        return [_request_from_row(row) for row in rows]

    def list_team_vacations(self, start, end):
        with self._connection() as conn:
            rows = conn.execute(
                f'SELECT {_REQUEST_COLUMNS} FROM vacation_requests vr '
                'JOIN users u ON vr.user_id = u.id '
                "WHERE vr.status = 'approved' AND vr.start_date <= ? AND vr.end_date >= ? "
                'ORDER BY vr.start_date ASC',
                (end.isoformat(), start.isoformat()),
            ).fetchall()
        return [_request_from_row(row) for row in rows]

    def get_monthly_stats(self, year, month):
        with self._connection() as conn:
            row = conn.execute(
                '''
                SELECT
                    COUNT(*) AS total,
                    COALESCE(SUM(CASE WHEN status = 'approved' THEN 1 ELSE 0 END), 0) AS approved,
                    COALESCE(SUM(CASE WHEN status = 'rejected' THEN 1 ELSE 0 END), 0) AS rejected,
                    COALESCE(SUM(CASE WHEN status = 'pending' THEN 1 ELSE 0 END), 0) AS pending,
                    COALESCE(SUM(CASE WHEN status = 'approved' THEN total_days ELSE 0 END), 0) AS days_used
                FROM vacation_requests
                WHERE substr(created_at, 1, 7) = ?
                ''',
                (f"{int(year):04d}-{int(month):02d}",),
            ).fetchone()
        return MonthlyStats(
            total_submitted=row['total'],
            total_approved=row['approved'],
            total_rejected=row['rejected'],
            total_pending=row['pending'],
            total_days_used=row['days_used'],
        )

    # Employees

    def get_employee(self, employee_id):
        with self._connection() as conn:
            row = conn.execute(
                f'SELECT {_EMPLOYEE_COLUMNS} FROM users WHERE id = ?', (employee_id,)
            ).fetchone()
        return _employee_from_row(row) if row else None

    def get_employee_by_email(self, email):
        with self._connection() as conn:
            row = conn.execute(
                f'SELECT {_EMPLOYEE_COLUMNS} FROM users WHERE email = ?', (email.strip().lower(),)
            ).fetchone()
        return _employee_from_row(row) if row else None

    def create_employee(self, employee):
        now = utc_timestamp()
        with self._connection() as conn:
            conn.execute(
                '''
                INSERT INTO users (id, email, name, role, vacation_balance, start_date, email_preferences, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ''',
                (
                    employee['id'],
                    employee['email'],
                    employee['name'],
                    Role(employee['role']).value,
                    employee['vacation_balance'],
                    employee.get('start_date'),
                    json.dumps(employee['email_preferences']),
                    now,
                    now,
                ),
            )

    def debit_balance(self, employee_id, new_balance):
        with self._connection() as conn:
            cursor = conn.execute(
                'UPDATE users SET vacation_balance = ? WHERE id = ?', (new_balance, employee_id)
            )
            return cursor.rowcount == 1

    def record_balance_change(self, entry):
        with self._connection() as conn:
            conn.execute(
                '''
                INSERT INTO balance_history
                (id, employee_id, request_id, change_amount, previous_balance, new_balance, reason, changed_by, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ''',
                (
                    entry['id'],
                    entry['employee_id'],
                    entry.get('request_id'),
                    entry['change_amount'],
                    entry['previous_balance'],
                    entry['new_balance'],
                    entry.get('reason'),
                    entry.get('changed_by', 'SYSTEM'),
                    entry.get('created_at') or utc_timestamp(),
                ),
            )

    def list_balance_history(self, employee_id):
        with self._connection() as conn:
            rows = conn.execute(
                'SELECT * FROM balance_history WHERE employee_id = ? ORDER BY created_at, rowid',
                (employee_id,),
            ).fetchall()
        return [dict(row) for row in rows]

    def list_admins(self):
        with self._connection() as conn:
            rows = conn.execute(
                f"SELECT {_EMPLOYEE_COLUMNS} FROM users WHERE role = 'admin' ORDER BY name ASC"
            ).fetchall()
        return [_employee_from_row(row) for row in rows]

    def get_newsletter_recipients(self):
        with self._connection() as conn:
            rows = conn.execute(
                f"SELECT {_EMPLOYEE_COLUMNS} FROM users "
                "WHERE json_extract(email_preferences, '$.weeklyDigest') = 1 ORDER BY name ASC"
            ).fetchall()
        return [_employee_from_row(row) for row in rows]

    def get_low_balance_employees(self, threshold):
        with self._connection() as conn:
            rows = conn.execute(
                f"SELECT {_EMPLOYEE_COLUMNS} FROM users "
                "WHERE vacation_balance <= ? AND role = 'employee' ORDER BY vacation_balance ASC, name ASC",
                (threshold,),
            ).fetchall()
        return [_employee_from_row(row) for row in rows]

    # Settings

    def get_settings(self):
        with self._connection() as conn:
            row = conn.execute(
                "SELECT weekend_policy, newsletter, default_vacation_days, vacation_reset_month "
                "FROM settings WHERE id = 'settings'"
            ).fetchone()
        if row is None:
            logging.info("No settings row found; using defaults")
            return Settings()
        return Settings(
            weekend_policy=parse_weekend_policy(row['weekend_policy']),
            newsletter=parse_newsletter_config(row['newsletter']),
            default_vacation_days=row['default_vacation_days'],
            vacation_reset_month=row['vacation_reset_month'],
        )

    def update_settings(self, settings):
        with self._connection() as conn:
            conn.execute(
                '''
                INSERT INTO settings (id, weekend_policy, newsletter, default_vacation_days, vacation_reset_month)
                VALUES ('settings', ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    weekend_policy = excluded.weekend_policy,
                    newsletter = excluded.newsletter,
                    default_vacation_days = excluded.default_vacation_days,
                    vacation_reset_month = excluded.vacation_reset_month
                ''',
                (
                    json.dumps(settings.weekend_policy.to_dict()),
                    json.dumps(settings.newsletter.to_dict()),
                    settings.default_vacation_days,
                    settings.vacation_reset_month,
                ),
            )

    def update_last_newsletter_sent(self, sent_at):
        # Read and write under one lock so a concurrent settings edit is not lost.
        self.run_atomic(lambda tx: tx.update_settings(tx.get_settings().with_last_sent(sent_at)))
