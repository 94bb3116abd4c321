import pytest

from vacaytracker import employee_service
from vacaytracker.errors import NotFoundError, ValidationError
from vacaytracker.models import Role


def test_create_employee_normalises_and_applies_defaults(sqlite_storage):
    employee = employee_service.create_employee(
        sqlite_storage, {'email': '  Emma@Example.COM ', 'name': ' Emma Stone '}
    )

    assert employee['email'] == 'emma@example.com'
    assert employee['name'] == 'Emma Stone'
    assert employee['role'] == Role.EMPLOYEE.value
    assert employee['vacation_balance'] == employee_service.DEFAULT_VACATION_DAYS
    assert employee['email_preferences'] == {
        'vacationUpdates': True,
        'weeklyDigest': False,
        'teamNotifications': True,
    }


@pytest.mark.parametrize(
    "data",
    [
        {'email': 'a@example.com', 'name': ''},
        {'email': 'not-an-email', 'name': 'A'},
        {'email': 'a@example.com', 'name': 'A', 'role': 'owner'},
        {'email': 'a@example.com', 'name': 'A', 'vacation_balance': -1},
        {'email': 'a@example.com', 'name': 'A', 'vacation_balance': 'lots'},
        {'email': 'a@example.com', 'name': 'x' * 101},
    ],
)
def test_create_employee_validation(sqlite_storage, data):
    with pytest.raises(ValidationError):
        employee_service.create_employee(sqlite_storage, data)


def test_create_employee_rejects_duplicate_email(sqlite_storage):
    employee_service.create_employee(sqlite_storage, {'email': 'a@example.com', 'name': 'A'})

    with pytest.raises(ValidationError, match="already exists"):
        employee_service.create_employee(sqlite_storage, {'email': 'A@example.com', 'name': 'B'})


def test_get_employee_raises_when_missing(sqlite_storage):
    with pytest.raises(NotFoundError, match="user not found"):
        employee_service.get_employee(sqlite_storage, 'missing')


def test_ensure_admin_creates_once(sqlite_storage):
    first = employee_service.ensure_admin(sqlite_storage, 'admin@example.com', 'Admin', 30)
    second = employee_service.ensure_admin(sqlite_storage, 'admin@example.com', 'Someone Else', 10)

    assert first['id'] == second['id']
    assert second['role'] == Role.ADMIN.value
    assert second['vacation_balance'] == 30
    assert [a['id'] for a in sqlite_storage.list_admins()] == [first['id']]
