from datetime import date, datetime, timezone

import pytest

from vacaytracker import employee_service
from vacaytracker.database_service import get_db_connection
from vacaytracker.models import FRIDAY, SATURDAY, NewsletterConfig, Role, Settings, VacationStatus, WeekendPolicy


def _employee(storage, name, balance=20, role=Role.EMPLOYEE, digest=False):
    return employee_service.create_employee(
        storage,
        {
            'email': f'{name.lower()}@example.com',
            'name': name,
            'role': role.value,
            'vacation_balance': balance,
            'email_preferences': {'weeklyDigest': digest},
        },
    )


def _request(storage, request_id, employee_id, start, end, status=VacationStatus.PENDING, created_at=None, days=1):
    storage.create_request(
        {
            'id': request_id,
            'employee_id': employee_id,
            'start_date': start,
            'end_date': end,
            'total_days': days,
            'status': status,
            'created_at': created_at,
        }
    )


def test_request_round_trip_includes_owner(sqlite_storage):
    emp = _employee(sqlite_storage, 'Ana')
    _request(sqlite_storage, 'r1', emp['id'], '2027-06-14', '2027-06-18', days=5)

    request = sqlite_storage.get_request('r1')

    assert request['employee_id'] == emp['id']
    assert request['employee_name'] == 'Ana'
    assert request['employee_email'] == 'ana@example.com'
    assert request['status'] is VacationStatus.PENDING
    assert request['total_days'] == 5
    assert sqlite_storage.get_request('missing') is None


def test_conditional_status_update(sqlite_storage):
    emp = _employee(sqlite_storage, 'Ana')
    _request(sqlite_storage, 'r1', emp['id'], '2027-06-14', '2027-06-18')
    reviewed_at = datetime(2027, 6, 2, 8, 30, tzinfo=timezone.utc)

    assert sqlite_storage.update_request_status('r1', VacationStatus.REJECTED, emp['id'], 'No', reviewed_at)
    assert not sqlite_storage.update_request_status('r1', VacationStatus.APPROVED, emp['id'])

    request = sqlite_storage.get_request('r1')
    assert request['status'] is VacationStatus.REJECTED
    assert request['rejection_reason'] == 'No'
    assert request['reviewed_at'] == '2027-06-02T08:30:00Z'


def test_conditional_delete(sqlite_storage):
    emp = _employee(sqlite_storage, 'Ana')
    _request(sqlite_storage, 'r1', emp['id'], '2027-06-14', '2027-06-18', status=VacationStatus.APPROVED)
    _request(sqlite_storage, 'r2', emp['id'], '2027-07-14', '2027-07-18')

    assert not sqlite_storage.delete_request('r1')
    assert sqlite_storage.delete_request('r2')
    assert not sqlite_storage.delete_request('r2')
    assert sqlite_storage.get_request('r1') is not None


def test_list_employee_requests_filters_by_status_and_year(sqlite_storage):
    emp = _employee(sqlite_storage, 'Ana')
    _request(sqlite_storage, 'r1', emp['id'], '2027-06-14', '2027-06-18', created_at='2027-05-01T10:00:00Z')
    _request(
        sqlite_storage, 'r2', emp['id'], '2028-01-10', '2028-01-11',
        status=VacationStatus.REJECTED, created_at='2027-05-02T10:00:00Z',
    )

    assert [r['id'] for r in sqlite_storage.list_employee_requests(emp['id'])] == ['r2', 'r1']
    assert [r['id'] for r in sqlite_storage.list_employee_requests(emp['id'], year=2028)] == ['r2']
    pending = sqlite_storage.list_employee_requests(emp['id'], statuses=[VacationStatus.PENDING])
    assert [r['id'] for r in pending] == ['r1']
    assert sqlite_storage.list_employee_requests(emp['id'], statuses=[]) == []


def test_team_vacations_only_approved_and_intersecting(sqlite_storage):
    emp = _employee(sqlite_storage, 'Ana')
    _request(sqlite_storage, 'r1', emp['id'], '2027-06-28', '2027-07-02', status=VacationStatus.APPROVED)
    _request(sqlite_storage, 'r2', emp['id'], '2027-07-12', '2027-07-13')
    _request(sqlite_storage, 'r3', emp['id'], '2027-08-02', '2027-08-03', status=VacationStatus.APPROVED)

    july = sqlite_storage.list_team_vacations(date(2027, 7, 1), date(2027, 7, 31))

    assert [r['id'] for r in july] == ['r1']


def test_monthly_stats_counts_requests_created_in_month(sqlite_storage):
    emp = _employee(sqlite_storage, 'Ana')
    _request(sqlite_storage, 'r1', emp['id'], '2025-12-01', '2025-12-05',
             status=VacationStatus.APPROVED, created_at='2025-11-03T10:00:00Z', days=5)
    _request(sqlite_storage, 'r2', emp['id'], '2025-12-08', '2025-12-08',
             status=VacationStatus.REJECTED, created_at='2025-11-04T10:00:00Z')
    _request(sqlite_storage, 'r3', emp['id'], '2025-12-09', '2025-12-09', created_at='2025-11-30T23:59:59Z')
    _request(sqlite_storage, 'r4', emp['id'], '2025-12-10', '2025-12-10', created_at='2025-12-01T00:00:00Z')

    stats = sqlite_storage.get_monthly_stats(2025, 11)

    assert stats.total_submitted == 3
    assert stats.total_approved == 1
    assert stats.total_rejected == 1
    assert stats.total_pending == 1
    assert stats.total_days_used == 5


def test_recipients_admins_and_low_balance(sqlite_storage):
    _employee(sqlite_storage, 'Zoe', balance=2, digest=True)
    _employee(sqlite_storage, 'Ana', balance=5)
    _employee(sqlite_storage, 'Max', balance=6, digest=True)
    _employee(sqlite_storage, 'Bo', balance=1, role=Role.ADMIN, digest=True)

    assert [e['name'] for e in sqlite_storage.get_newsletter_recipients()] == ['Bo', 'Max', 'Zoe']
    assert [e['name'] for e in sqlite_storage.list_admins()] == ['Bo']
    assert [e['name'] for e in sqlite_storage.get_low_balance_employees(5)] == ['Zoe', 'Ana']


def test_settings_defaults_and_update(sqlite_storage):
    settings = sqlite_storage.get_settings()
    assert settings.weekend_policy == WeekendPolicy()
    assert settings.newsletter == NewsletterConfig()

    sqlite_storage.update_settings(
        Settings(
            weekend_policy=WeekendPolicy(excluded_days=frozenset({FRIDAY, SATURDAY})),
            newsletter=NewsletterConfig(enabled=True, frequency='weekly'),
        )
    )

    stored = sqlite_storage.get_settings()
    assert stored.weekend_policy.excluded_days == frozenset({FRIDAY, SATURDAY})
    assert stored.newsletter.enabled is True
    assert stored.newsletter.frequency == 'weekly'


def test_update_last_newsletter_sent_keeps_other_settings(sqlite_storage):
    sqlite_storage.update_settings(Settings(newsletter=NewsletterConfig(enabled=True, day_of_month=15)))
    sent_at = datetime(2025, 12, 15, 9, 0, tzinfo=timezone.utc)

    sqlite_storage.update_last_newsletter_sent(sent_at)

    newsletter = sqlite_storage.get_settings().newsletter
    assert newsletter.last_sent_at == sent_at
    assert newsletter.enabled is True
    assert newsletter.day_of_month == 15


def test_run_atomic_rolls_back_every_write(sqlite_storage):
    emp = _employee(sqlite_storage, 'Ana')

    def unit(tx):
        _request(tx, 'r1', emp['id'], '2027-06-14', '2027-06-18')
        tx.debit_balance(emp['id'], 10)
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        sqlite_storage.run_atomic(unit)

    assert sqlite_storage.get_request('r1') is None
    assert sqlite_storage.get_employee(emp['id'])['vacation_balance'] == 20


@pytest.mark.parametrize("raw", ["not json", "{\"enabled\": true", "null", "[]", "\"monthly\"", "42"])
def test_malformed_settings_fall_back_to_defaults(sqlite_storage, db_path, raw):
    conn = get_db_connection(db_path)
    try:
        conn.execute("UPDATE settings SET weekend_policy = ?, newsletter = ?", (raw, raw))
        conn.commit()
    finally:
        conn.close()

    settings = sqlite_storage.get_settings()
    assert settings.weekend_policy == WeekendPolicy()
    assert settings.newsletter == NewsletterConfig()
