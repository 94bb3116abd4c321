"""Run a status change and a balance debit as one all-or-nothing unit."""
from __future__ import annotations

import logging
from typing import Callable, TypeVar

from .errors import InternalError, VacationTrackerError

T = TypeVar("T")


def run_in_transaction(storage, fn: Callable[..., T], action: str) -> T:
    """Execute ``fn(tx)`` atomically through ``storage.run_atomic``.

    Domain errors raised inside the unit (a request that is no longer
    pending, a balance that drifted below the request) roll the unit back
    and propagate unchanged. Anything else rolls back and is reported as
    :class:`InternalError`. Nothing is retried.
    """
    try:
        return storage.run_atomic(fn)
    except VacationTrackerError:
        raise
    except Exception as exc:
        logging.exception("Transaction failed while trying to %s", action)
        raise InternalError(f"failed to {action}") from exc
