"""Domain types shared by the services.

Rows coming out of storage are plain dictionaries (the same shape the SQLite
layer returns); the types here cover the closed value sets and the settings
documents that are stored as JSON.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Optional


class VacationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# Statuses that block another request over the same dates.
BLOCKING_STATUSES = frozenset({VacationStatus.PENDING, VacationStatus.APPROVED})


class Role(str, Enum):
    ADMIN = "admin"
    EMPLOYEE = "employee"


def is_admin(employee: dict) -> bool:
    return Role(employee["role"]) is Role.ADMIN


# Weekday indices use Sunday = 0 ... Saturday = 6.
SUNDAY = 0
MONDAY = 1
FRIDAY = 5
SATURDAY = 6


DEFAULT_EMAIL_PREFERENCES = {
    "vacationUpdates": True,
    "weeklyDigest": False,
    "teamNotifications": True,
}


def parse_email_preferences(raw: Optional[str]) -> dict:
    """Return the employee's email preferences merged over the defaults."""

    prefs = dict(DEFAULT_EMAIL_PREFERENCES)
    if not raw:
        return prefs
    try:
        prefs.update(json.loads(raw))
    except (TypeError, ValueError):
        logging.warning("Invalid email preferences %r; using defaults", raw)
    return prefs


@dataclass(frozen=True)
class WeekendPolicy:
    exclude_weekends: bool = True
    excluded_days: frozenset = frozenset({SUNDAY, SATURDAY})

    def is_day_excluded(self, weekday: int) -> bool:
        return self.exclude_weekends and weekday in self.excluded_days

    def to_dict(self) -> dict:
        return {
            "excludeWeekends": self.exclude_weekends,
            "excludedDays": sorted(self.excluded_days),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "WeekendPolicy":
        default = cls()
        excluded = data.get("excludedDays")
        return cls(
            exclude_weekends=bool(data.get("excludeWeekends", default.exclude_weekends)),
            excluded_days=frozenset(int(d) for d in excluded) if excluded is not None else default.excluded_days,
        )


@dataclass(frozen=True)
class NewsletterConfig:
    enabled: bool = False
    frequency: str = "monthly"
    day_of_month: int = 1
    last_sent_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "enabled": self.enabled,
            "frequency": self.frequency,
            "dayOfMonth": self.day_of_month,
            "lastSentAt": self.last_sent_at.isoformat() if self.last_sent_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "NewsletterConfig":
        last_sent = data.get("lastSentAt")
        return cls(
            enabled=bool(data.get("enabled", False)),
            frequency=str(data.get("frequency", "monthly")),
            day_of_month=int(data.get("dayOfMonth", 1)),
            last_sent_at=datetime.fromisoformat(last_sent) if last_sent else None,
        )


@dataclass(frozen=True)
class Settings:
    weekend_policy: WeekendPolicy = field(default_factory=WeekendPolicy)
    newsletter: NewsletterConfig = field(default_factory=NewsletterConfig)
    default_vacation_days: int = 25
    vacation_reset_month: int = 1

    def with_last_sent(self, sent_at: datetime) -> "Settings":
        return replace(self, newsletter=replace(self.newsletter, last_sent_at=sent_at))


def _load_json_document(raw: Optional[str], factory, label: str):
    if not raw:
        return factory()
    try:
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError(f"expected a JSON object, got {type(data).__name__}")
        return factory.from_dict(data)
    except (TypeError, ValueError) as exc:
        logging.warning("Invalid %s settings %r (%s); using defaults", label, raw, exc)
        return factory()


def parse_weekend_policy(raw: Optional[str]) -> WeekendPolicy:
    return _load_json_document(raw, WeekendPolicy, "weekend policy")


def parse_newsletter_config(raw: Optional[str]) -> NewsletterConfig:
    return _load_json_document(raw, NewsletterConfig, "newsletter")


@dataclass
class MonthlyStats:
    total_submitted: int = 0
    total_approved: int = 0
    total_rejected: int = 0
    total_pending: int = 0
    total_days_used: int = 0
