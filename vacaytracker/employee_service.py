"""
Service: Employee Service. Purpose: Create and look up the employees whose
balances the vacation core manages.
"""

import logging
import uuid

from .errors import NotFoundError, ValidationError
from .models import DEFAULT_EMAIL_PREFERENCES, Role

# @tweakable employee validation configuration
ENABLE_EMPLOYEE_VALIDATION = True
VALIDATE_EMAIL_UNIQUENESS = True
MAX_NAME_LENGTH = 100
DEFAULT_VACATION_DAYS = 25
ENABLE_EMPLOYEE_AUDIT = True


def create_employee(storage, employee_data):
    """Create a new employee record with validation"""
    if ENABLE_EMPLOYEE_VALIDATION:
        _validate_employee_data(storage, employee_data)

    preferences = dict(DEFAULT_EMAIL_PREFERENCES)
    preferences.update(employee_data.get('email_preferences') or {})

    record = {
        'id': employee_data.get('id') or str(uuid.uuid4()),
        'email': employee_data.get('email', '').strip().lower(),
        'name': employee_data.get('name', '').strip(),
        'role': Role(employee_data.get('role', Role.EMPLOYEE.value)).value,
        'vacation_balance': int(employee_data.get('vacation_balance', DEFAULT_VACATION_DAYS)),
        'start_date': employee_data.get('start_date'),
        'email_preferences': preferences,
    }
    storage.create_employee(record)

    if ENABLE_EMPLOYEE_AUDIT:
        logging.info("Employee created: %s <%s> (%s)", record['name'], record['email'], record['role'])

    return storage.get_employee(record['id'])


def get_employee(storage, employee_id):
    """Return the employee or raise :class:`NotFoundError`."""
    employee = storage.get_employee(employee_id)
    if employee is None:
        raise NotFoundError("user")
    return employee


def ensure_admin(storage, email, name, vacation_balance=DEFAULT_VACATION_DAYS):
    """Create the bootstrap admin account unless one with ``email`` exists."""
    existing = storage.get_employee_by_email(email)
    if existing:
        return existing
    return create_employee(
        storage,
        {
            'email': email,
            'name': name,
            'role': Role.ADMIN.value,
            'vacation_balance': vacation_balance,
        },
    )


def _validate_employee_data(storage, data):
    """Validate employee data before creation"""
    name = (data.get('name') or '').strip()
    email = (data.get('email') or '').strip().lower()
    role = data.get('role', Role.EMPLOYEE.value)
    balance = data.get('vacation_balance', DEFAULT_VACATION_DAYS)

    if not name or len(name) > MAX_NAME_LENGTH:
        raise ValidationError(f"Invalid name (max {MAX_NAME_LENGTH} characters)")
    if not email or '@' not in email:
        raise ValidationError("Invalid email address")
    if role not in {r.value for r in Role}:
        raise ValidationError(f"Invalid role: {role}")
    try:
        balance = int(balance)
    except (TypeError, ValueError):
        raise ValidationError("Vacation balance must be a whole number of days") from None
    if balance < 0:
        raise ValidationError("Vacation balance cannot be negative")

    if VALIDATE_EMAIL_UNIQUENESS and storage.get_employee_by_email(email):
        raise ValidationError(f"Employee with email {email} already exists")
