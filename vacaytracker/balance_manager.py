"""Balance manager: the only code path that changes an employee's vacation balance.

Debits happen inside an atomic unit (see ``transaction_service``) together
with the status change that authorises them. The sufficiency check is
repeated against the freshest read inside that unit, so a balance that
drifted since the caller's check is reported instead of being clamped.
"""

import logging
import uuid

from .errors import InsufficientBalanceError, NotFoundError
from .storage import utc_timestamp

# @tweakable balance management configuration
ENABLE_BALANCE_AUDIT = True


def check_sufficient(employee, amount):
    """Raise :class:`InsufficientBalanceError` if ``employee`` cannot cover ``amount`` days."""
    available = int(employee['vacation_balance'])
    if available < amount:
        raise InsufficientBalanceError(requested=amount, available=available)


def debit(tx, employee_id, amount, request_id=None, changed_by='SYSTEM', reason=None):
    """Deduct ``amount`` days from the employee's balance and return the new balance.

    ``tx`` must be the transactional storage handle passed to the atomic
    unit; the read, the check and the write all happen on it.
    """
    if amount <= 0:
        raise ValueError(f"Debit amount must be positive, got {amount}")

    employee = tx.get_employee(employee_id)
    if employee is None:
        raise NotFoundError("user")

    check_sufficient(employee, amount)

    previous_balance = int(employee['vacation_balance'])
    new_balance = previous_balance - amount

    if not tx.debit_balance(employee_id, new_balance):
        raise NotFoundError("user")

    if ENABLE_BALANCE_AUDIT:
        tx.record_balance_change(
            {
                'id': str(uuid.uuid4()),
                'employee_id': employee_id,
                'request_id': request_id,
                'change_amount': amount,
                'previous_balance': previous_balance,
                'new_balance': new_balance,
                'reason': reason or 'Vacation request approved',
                'changed_by': changed_by,
                'created_at': utc_timestamp(),
            }
        )

    logging.info(
        "Debited %s days from %s (balance %s -> %s, request %s)",
        amount,
        employee_id,
        previous_balance,
        new_balance,
        request_id,
    )
    return new_balance


def get_balance_history(storage, employee_id):
    """Get the audit trail of balance changes for an employee"""
    return storage.list_balance_history(employee_id)
