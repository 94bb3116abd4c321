"""Newsletter (digest) content assembly and sending."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from typing import Callable, Optional

from .date_utils import month_bounds, parse_iso_date, shift_month
from .models import MonthlyStats

# @tweakable number of vacation days at or below which an employee is flagged in the digest
LOW_BALANCE_THRESHOLD = 5
NEWSLETTER_SUBJECT = "VacayTracker Monthly Summary"


@dataclass
class LowBalanceEmployee:
    name: str
    remaining_days: int


@dataclass
class NewsletterData:
    app_url: str
    recipient_name: str
    period: str
    stats: MonthlyStats
    upcoming_vacations: list = field(default_factory=list)
    low_balance_employees: list = field(default_factory=list)

    @property
    def has_upcoming(self) -> bool:
        return bool(self.upcoming_vacations)

    @property
    def has_low_balance(self) -> bool:
        return bool(self.low_balance_employees)

    def for_recipient(self, name: str) -> "NewsletterData":
        return replace(self, recipient_name=name)


def _format_day(iso_date: str) -> str:
    return parse_iso_date(iso_date).strftime("%B %d, %Y")


def format_newsletter_email(data: NewsletterData) -> str:
    """Build the plain text body of the digest."""

    stats = data.stats
    lines = [
        f"Hi {data.recipient_name},",
        "",
        f"Here is your vacation summary for {data.period}.",
        "",
        " Requests",
        f" - Submitted: {stats.total_submitted}",
        f" - Approved: {stats.total_approved}",
        f" - Rejected: {stats.total_rejected}",
        f" - Pending: {stats.total_pending}",
        f" - Vacation days taken: {stats.total_days_used}",
        "",
        " Upcoming Vacations",
    ]
    if data.has_upcoming:
        for vacation in data.upcoming_vacations:
            lines.append(
                f" - {vacation['employee_name']}: {_format_day(vacation['start_date'])} - "
                f"{_format_day(vacation['end_date'])} ({vacation['total_days']} days)"
            )
    else:
        lines.append(" - No approved vacations next month.")

    if data.has_low_balance:
        lines.extend(["", " Low Balance Reminders"])
        for employee in data.low_balance_employees:
            lines.append(f" - {employee.name}: {employee.remaining_days} days left")

    lines.extend(
        [
            "",
            f"Open VacayTracker: {data.app_url}",
            "",
            "Best regards,",
            "VacayTracker",
        ]
    )
    return "\n".join(lines)


class NewsletterService:
    """Collects the digest content and hands it to the notifier."""

    def __init__(self, storage, notifier, app_url: str = "", clock: Optional[Callable[[], datetime]] = None):
        self.storage = storage
        self.notifier = notifier
        self.app_url = app_url
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def get_recipients(self):
        return self.storage.get_newsletter_recipients()

    def get_stats(self, now: datetime) -> tuple[MonthlyStats, str]:
        """Statistics for the month before ``now`` and its label."""
        month, year = shift_month(now.date(), -1)
        stats = self.storage.get_monthly_stats(year, month)
        period = date(year, month, 1).strftime("%B %Y")
        return stats, period

    def get_upcoming_vacations(self, now: datetime) -> list:
        month, year = shift_month(now.date(), 1)
        start, end = month_bounds(month, year)
        return self.storage.list_team_vacations(start, end)

    def get_low_balance_employees(self) -> list[LowBalanceEmployee]:
        return [
            LowBalanceEmployee(name=employee['name'], remaining_days=employee['vacation_balance'])
            for employee in self.storage.get_low_balance_employees(LOW_BALANCE_THRESHOLD)
        ]

    def build_newsletter_data(self, recipient_name: str, now: Optional[datetime] = None) -> NewsletterData:
        now = now or self._clock()
        stats, period = self.get_stats(now)
        return NewsletterData(
            app_url=self.app_url,
            recipient_name=recipient_name,
            period=period,
            stats=stats,
            upcoming_vacations=self.get_upcoming_vacations(now),
            low_balance_employees=self.get_low_balance_employees(),
        )

    def generate_preview(self, now: Optional[datetime] = None) -> dict:
        """Render the digest for a placeholder recipient without sending it."""
        recipients = self.get_recipients()
        data = self.build_newsletter_data("Preview User", now)
        return {
            'subject': NEWSLETTER_SUBJECT,
            'text_body': format_newsletter_email(data),
            'recipients': [r['email'] for r in recipients],
            'recipient_count': len(recipients),
        }

    def send(self, now: Optional[datetime] = None) -> int:
        """Send the digest to every opted-in employee; return how many were addressed."""
        now = now or self._clock()
        recipients = self.get_recipients()
        if not recipients:
            logging.info("Newsletter: no recipients found")
            return 0

        data = self.build_newsletter_data("", now)
        sent_count = self.notifier.notify_digest(recipients, data)

        if sent_count > 0:
            try:
                self.storage.update_last_newsletter_sent(now)
            except Exception:
                logging.exception("Newsletter: failed to update last sent timestamp")

        logging.info("Newsletter sent to %s of %s recipients", sent_count, len(recipients))
        return sent_count
