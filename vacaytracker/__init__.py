"""Service package exports for the vacation tracker."""

from . import (
    balance_manager,
    database_service,
    date_utils,
    email_service,
    employee_service,
    newsletter_service,
    notification_service,
    overlap_guard,
    scheduler,
    storage,
    transaction_service,
    vacation_service,
)

__all__ = [
    'balance_manager',
    'database_service',
    'date_utils',
    'email_service',
    'employee_service',
    'newsletter_service',
    'notification_service',
    'overlap_guard',
    'scheduler',
    'storage',
    'transaction_service',
    'vacation_service',
]
