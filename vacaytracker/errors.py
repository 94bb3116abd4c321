"""Error taxonomy for the vacation tracker.

Every failure the core reports to its callers is one of the classes below.
Each carries a machine readable ``code`` and optional ``details`` so the
HTTP layer can map it to a status code and a JSON body.
"""
from __future__ import annotations

from typing import Any, Optional


class VacationTrackerError(Exception):
    """Base class for all domain errors raised by the core."""

    code = "INTERNAL_ERROR"

    def __init__(self, message: str, code: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = dict(self.details)
        return payload

    def __str__(self) -> str:
        return self.message


class ValidationError(VacationTrackerError, ValueError):
    code = "VALIDATION_ERROR"


class NotFoundError(VacationTrackerError):
    code = "NOT_FOUND"

    def __init__(self, resource: str):
        super().__init__(f"{resource} not found")
        self.resource = resource


class ConflictError(VacationTrackerError):
    code = "ALREADY_PROCESSED"


class ForbiddenError(VacationTrackerError):
    code = "FORBIDDEN"


class InsufficientBalanceError(VacationTrackerError, ValueError):
    code = "INSUFFICIENT_BALANCE"

    def __init__(self, requested: int, available: int):
        super().__init__(
            f"Insufficient vacation balance: requested {requested} days, available {available} days",
            details={"requested": requested, "available": available},
        )
        self.requested = requested
        self.available = available


class InternalError(VacationTrackerError):
    code = "INTERNAL_ERROR"


def already_processed() -> ConflictError:
    return ConflictError("request already processed")


def overlapping_request() -> ConflictError:
    return ConflictError(
        "overlapping request: the dates overlap an existing vacation request",
        code="OVERLAPPING_REQUEST",
    )
