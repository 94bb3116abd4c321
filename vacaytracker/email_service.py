"""SMTP delivery for vacation notifications.

Messages are plain text. An approved vacation can carry an all-day
iCalendar event inline so mail clients offer to add it to the calendar.
Connection settings are passed in by the caller and fall back to the
``SMTP_*`` environment variables; with no server configured nothing is sent.
"""

import logging
import os
import smtplib
import uuid
from datetime import date, datetime, timedelta, timezone
from email.message import EmailMessage

SMTP_SERVER = os.getenv("SMTP_SERVER")
SMTP_PORT = os.getenv("SMTP_PORT")
SMTP_USERNAME = os.getenv("SMTP_USERNAME")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
# @tweakable submission port used when neither the caller nor SMTP_PORT sets one
DEFAULT_SMTP_PORT = 587
# @tweakable seconds to wait on the SMTP server before giving up
SMTP_TIMEOUT = 30
# @tweakable product identifier written into generated calendar events
ICS_PRODUCT_ID = "-//VacayTracker//EN"
CALENDAR_CONTENT_CLASS = "urn:content-classes:calendarmessage"


def _ics_text(value: str) -> str:
    """Escape a TEXT property value (RFC 5545, section 3.3.11)."""
    return (
        value.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\r\n", "\\n")
        .replace("\n", "\\n")
    )


def generate_ics_content(
    start_date: str,
    end_date: str,
    summary: str,
    description: str | None = None,
) -> str:
    """Return a VCALENDAR with one all-day event covering the vacation.

    ``start_date`` and ``end_date`` are inclusive ISO dates. DTEND in
    iCalendar is exclusive, so it is written as the day after ``end_date``.
    Raises ``ValueError`` for dates that are not ISO formatted.
    """

    first_day = date.fromisoformat(start_date)
    day_after = date.fromisoformat(end_date) + timedelta(days=1)

    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:{ICS_PRODUCT_ID}",
        "METHOD:REQUEST",
        "BEGIN:VEVENT",
        f"UID:{uuid.uuid4()}@vacaytracker",
        f"DTSTAMP:{datetime.now(timezone.utc):%Y%m%dT%H%M%SZ}",
        f"DTSTART;VALUE=DATE:{first_day:%Y%m%d}",
        f"DTEND;VALUE=DATE:{day_after:%Y%m%d}",
        f"SUMMARY:{_ics_text(summary)}",
        "TRANSP:OPAQUE",
    ]
    if description:
        lines.append(f"DESCRIPTION:{_ics_text(description)}")
    lines += ["END:VEVENT", "END:VCALENDAR"]

    return "\r\n".join(lines)


def build_message(
    to_addr: str,
    subject: str,
    body: str,
    from_addr: str,
    ics_content: str | None = None,
) -> EmailMessage:
    """Assemble the message; a calendar event becomes a ``text/calendar`` alternative."""

    msg = EmailMessage()
    msg["From"] = from_addr
    msg["To"] = to_addr
    msg["Subject"] = subject
    msg.set_content(body)

    if ics_content:
        msg.add_alternative(ics_content, subtype="calendar", params={"method": "REQUEST"})
        msg["Content-Class"] = CALENDAR_CONTENT_CLASS
    return msg


def _resolve_settings(smtp_server, smtp_port, username, password):
    return (
        smtp_server or SMTP_SERVER,
        int(smtp_port or SMTP_PORT or DEFAULT_SMTP_PORT),
        username or SMTP_USERNAME,
        password or SMTP_PASSWORD,
    )


def send_notification_email(
    to_addr: str,
    subject: str,
    body: str,
    smtp_server: str | None = None,
    smtp_port: int | None = None,
    username: str | None = None,
    password: str | None = None,
    from_addr: str | None = None,
    ics_content: str | None = None,
) -> tuple[bool, str | None]:
    """Deliver one message over STARTTLS.

    Returns ``(True, None)`` on success and ``(False, reason)`` otherwise;
    delivery problems are logged here and never raised to the caller.
    Login is skipped when no credentials are configured (local relays).
    """

    try:
        server, port, username, password = _resolve_settings(smtp_server, smtp_port, username, password)
    except ValueError as exc:
        logging.error("Invalid SMTP port %r: %s", smtp_port or SMTP_PORT, exc)
        return False, f"invalid SMTP port: {exc}"

    if not server:
        return False, "SMTP server is not configured"

    msg = build_message(to_addr, subject, body, from_addr or username or "", ics_content)
    logging.debug("Sending %r to %s via %s:%s (calendar event: %s)", subject, to_addr, server, port, bool(ics_content))

    try:
        with smtplib.SMTP(server, port, timeout=SMTP_TIMEOUT) as smtp:
            smtp.starttls()
            if username and password:
                smtp.login(username, password)
            smtp.send_message(msg)
    except (smtplib.SMTPException, OSError) as e:
        logging.exception("Email sending failed to %s with subject %s: %s", to_addr, subject, e)
        return False, str(e)
    return True, None
