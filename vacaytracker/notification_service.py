"""Notifications sent when a vacation request changes state, and the digest.

Delivery is fire-and-forget: a notifier logs its own failures and never
raises back into the state transition that triggered it.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime

from . import email_service
from .newsletter_service import NEWSLETTER_SUBJECT, format_newsletter_email

REQUEST_SUBMITTED_SUBJECT = "Vacation Request Submitted"
REQUEST_APPROVED_SUBJECT = "Vacation Request Approved"
REQUEST_REJECTED_SUBJECT = "Vacation Request Update"
ADMIN_NEW_REQUEST_SUBJECT = "New Vacation Request Pending Review"


class Notifier(ABC):
    """Receives domain events from the vacation core."""

    @abstractmethod
    def notify_created(self, request: dict) -> None: ...

    @abstractmethod
    def notify_approved(self, request: dict) -> None: ...

    @abstractmethod
    def notify_rejected(self, request: dict, reason: str | None) -> None: ...

    @abstractmethod
    def notify_digest(self, recipients: list, data) -> int:
        """Send the digest and return how many recipients were addressed."""


class NullNotifier(Notifier):
    """Used when email is not configured; only logs."""

    def notify_created(self, request):
        logging.info("Email disabled: not announcing vacation request %s", request['id'])

    def notify_approved(self, request):
        logging.info("Email disabled: not announcing approval of %s", request['id'])

    def notify_rejected(self, request, reason):
        logging.info("Email disabled: not announcing rejection of %s", request['id'])

    def notify_digest(self, recipients, data):
        logging.info("Email disabled: newsletter for %s recipients not sent", len(recipients))
        return 0


def _format_date(iso_date: str) -> str:
    try:
        return datetime.fromisoformat(iso_date).strftime("%B %d, %Y")
    except (TypeError, ValueError):  # fall back to raw value
        return iso_date


def format_request_email(request: dict, headline: str, app_url: str, reason: str | None = None) -> str:
    """Build the email body sent to the employee about their request."""

    body = f"""Hi {request.get('employee_name') or 'there'},

{headline}

 Vacation Details
 - Start: {_format_date(request['start_date'])}
 - End: {_format_date(request['end_date'])}
 - Vacation Days: {request['total_days']}
"""
    if reason:
        body += f"""
Reason
{reason}
"""
    body += f"""
Open VacayTracker to see your requests: {app_url}

Best regards,
VacayTracker"""
    return body


def format_admin_new_request_email(request: dict, app_url: str) -> str:
    """Build the email body asking admins to review a new request."""

    return f"""A new vacation request has been submitted and requires your approval.

 Employee Details
 - Employee Name: {request.get('employee_name')}
 - Request ID: {request['id']}

 Vacation Details
 - Start: {_format_date(request['start_date'])}
 - End: {_format_date(request['end_date'])}
 - Vacation Days: {request['total_days']}

Reason for Vacation
{request.get('reason') or 'No additional details provided.'}

Please log in to VacayTracker to review and take action: {app_url}
Status: Pending Approval

Best regards,
VacayTracker"""


class EmailNotifier(Notifier):
    """Delivers notifications through ``email_service`` over SMTP."""

    def __init__(self, storage, config):
        self.storage = storage
        self.config = config
        self.app_url = config.app_url

    def _send(self, to_addr, subject, body, ics_content=None):
        ok, error = email_service.send_notification_email(
            to_addr,
            subject,
            body,
            smtp_server=self.config.smtp_server,
            smtp_port=self.config.smtp_port,
            username=self.config.smtp_username,
            password=self.config.smtp_password,
            from_addr=self.config.email_from_address,
            ics_content=ics_content,
        )
        if ok:
            logging.info("Notification email sent to %s (%s)", to_addr, subject)
        else:
            logging.error("Notification email to %s failed: %s", to_addr, error)
        return ok

    def _owner_wants_updates(self, request):
        owner = self.storage.get_employee(request['employee_id'])
        if owner is None:
            logging.warning("Owner %s of request %s no longer exists", request['employee_id'], request['id'])
            return None
        if not owner['email_preferences'].get('vacationUpdates', True):
            logging.info("Skipping email for %s - user preferences disabled", owner['email'])
            return None
        return owner

    def notify_created(self, request):
        try:
            owner = self._owner_wants_updates(request)
            if owner:
                self._send(
                    owner['email'],
                    REQUEST_SUBMITTED_SUBJECT,
                    format_request_email(request, "Your vacation request has been submitted and is awaiting review.", self.app_url),
                )
            admin_body = format_admin_new_request_email(request, self.app_url)
            for admin in self.storage.list_admins():
                self._send(admin['email'], ADMIN_NEW_REQUEST_SUBJECT, admin_body)
        except Exception:
            logging.exception("Failed to send notifications for new request %s", request['id'])

    def notify_approved(self, request):
        try:
            owner = self._owner_wants_updates(request)
            if not owner:
                return
            try:
                ics = email_service.generate_ics_content(
                    request['start_date'],
                    request['end_date'],
                    "Vacation",
                    f"Approved vacation ({request['total_days']} days)",
                )
            except ValueError:
                logging.warning("Could not build calendar event for request %s", request['id'])
                ics = None
            self._send(
                owner['email'],
                REQUEST_APPROVED_SUBJECT,
                format_request_email(request, "Good news! Your vacation request has been approved.", self.app_url),
                ics_content=ics,
            )
        except Exception:
            logging.exception("Failed to send approval notification for request %s", request['id'])

    def notify_rejected(self, request, reason):
        try:
            owner = self._owner_wants_updates(request)
            if owner:
                self._send(
                    owner['email'],
                    REQUEST_REJECTED_SUBJECT,
                    format_request_email(request, "Your vacation request has been declined.", self.app_url, reason),
                )
        except Exception:
            logging.exception("Failed to send rejection notification for request %s", request['id'])

    def notify_digest(self, recipients, data):
        sent = 0
        for recipient in recipients:
            try:
                body = format_newsletter_email(data.for_recipient(recipient['name']))
                if self._send(recipient['email'], NEWSLETTER_SUBJECT, body):
                    sent += 1
            except Exception:
                logging.exception("Failed to send newsletter to %s", recipient.get('email'))
        return sent
