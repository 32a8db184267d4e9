"""
Transactional email through Resend.

Without RESEND_API_KEY nothing is sent: the message is logged, so local
development and tests never reach the provider. Send failures are logged and
reported as False; callers never see an exception from here.
"""

from __future__ import annotations

import html
import logging
from datetime import datetime

import resend

from .config import APP_BASE_URL, EMAIL_FROM_ADDRESS, RESEND_API_KEY

logger = logging.getLogger(__name__)

resend.api_key = RESEND_API_KEY


def is_email_enabled() -> bool:
    return bool(RESEND_API_KEY)


def send_email(to: str, subject: str, html_body: str) -> bool:
    if not to:
        logger.warning("Email '%s' skipped: no recipient", subject)
        return False

    if not is_email_enabled():
        logger.info("[EMAIL MOCK] '%s' would be sent to %s", subject, to)
        return False

    try:
        resend.Emails.send({
            "from": EMAIL_FROM_ADDRESS,
            "to": [to],
            "subject": subject,
            "html": html_body,
        })
        logger.info("Email '%s' sent to %s", subject, to)
        return True
    except Exception:
        logger.exception("Failed to send email '%s' to %s", subject, to)
        return False


# =========================
# Body helpers
# =========================
def _fmt_day(dt: datetime) -> str:
    return dt.strftime("%a %d %b %Y")


def _fmt_range(start: datetime, end: datetime | None) -> str:
    text = f"{_fmt_day(start)} {start.strftime('%H:%M')}"
    if end:
        text += f" - {end.strftime('%H:%M')}"
    return text


def _body(greeting_name: str, intro: str, rows: list[tuple[str, str]], outro: str = "", link_path: str = "") -> str:
    items = "".join(
        f"<li><strong>{html.escape(label)}:</strong> {html.escape(value)}</li>" for label, value in rows
    )
    parts = [
        f"<p>Dear {html.escape(greeting_name)},</p>",
        f"<p>{html.escape(intro)}</p>",
        f"<ul>{items}</ul>",
    ]
    if outro:
        parts.append(f"<p>{html.escape(outro)}</p>")
    if link_path:
        url = f"{APP_BASE_URL}{link_path}"
        parts.append(f'<p><a href="{html.escape(url, quote=True)}">{html.escape(url)}</a></p>')
    parts.append("<p>This message was sent automatically by the LeadOff Health booking system.</p>")
    return "\n".join(parts)


# =========================
# Workflow mails
# =========================
def send_appointment_request_email(therapist_email: str, therapist_name: str, appt: dict) -> bool:
    """Therapist: a company asked for one of their slots."""
    start, end = appt["start_time"], appt.get("end_time")
    rows = [
        ("When", _fmt_range(start, end)),
        ("Company", appt.get("company_name") or "-"),
        ("Employee", appt["employee_name"]),
        ("Employee ID", appt["employee_id"]),
        ("Symptoms", ", ".join(appt.get("symptoms") or []) or "-"),
    ]
    if appt.get("notes"):
        rows.append(("Notes", appt["notes"]))

    body = _body(
        therapist_name,
        "A new appointment request has arrived.",
        rows,
        "Please approve or reject it from the appointments page.",
        "/therapist/appointments",
    )
    return send_email(therapist_email, f"[New booking request] {_fmt_day(start)}", body)


def send_appointment_approved_email(user_email: str, user_name: str, appt: dict) -> bool:
    start, end = appt["start_time"], appt.get("end_time")
    rows = [
        ("When", _fmt_range(start, end)),
        ("Therapist", appt.get("therapist_name") or "-"),
        ("Employee", appt["employee_name"]),
        ("Employee ID", appt["employee_id"]),
    ]
    body = _body(user_name, "Your appointment has been confirmed.", rows)
    return send_email(user_email, f"[Booking confirmed] {_fmt_day(start)}", body)


def send_appointment_rejected_email(user_email: str, user_name: str, appt: dict) -> bool:
    start = appt["start_time"]
    rows = [
        ("When", _fmt_range(start, None)),
        ("Employee", appt["employee_name"]),
        ("Employee ID", appt["employee_id"]),
        ("Reason", appt.get("rejected_reason") or "No reason given"),
    ]
    body = _body(
        user_name,
        "We are sorry, the following appointment request was rejected.",
        rows,
        "Please book another time slot.",
        "/company/schedule",
    )
    return send_email(user_email, f"[Booking rejected] {_fmt_day(start)}", body)


def send_appointment_cancelled_email(therapist_email: str, therapist_name: str, appt: dict) -> bool:
    start, end = appt["start_time"], appt.get("end_time")
    rows = [
        ("When", _fmt_range(start, end)),
        ("Company", appt.get("company_name") or "-"),
        ("Employee", appt["employee_name"]),
    ]
    body = _body(therapist_name, "The following appointment was cancelled. The slot is open again.", rows)
    return send_email(therapist_email, f"[Booking cancelled] {_fmt_day(start)}", body)


def send_treatment_completed_email(user_email: str, user_name: str, appt: dict) -> bool:
    start = appt["start_time"]
    rows = [
        ("When", _fmt_range(start, appt.get("end_time"))),
        ("Therapist", appt.get("therapist_name") or "-"),
        ("Employee", appt["employee_name"]),
    ]
    body = _body(
        user_name,
        "The treatment report for this appointment is now available.",
        rows,
        link_path="/company/treatments",
    )
    return send_email(user_email, f"[Treatment report] {_fmt_day(start)}", body)


def send_reminder_email(to_email: str, to_name: str, appt: dict) -> bool:
    start, end = appt["start_time"], appt.get("end_time")
    rows = [
        ("When", _fmt_range(start, end)),
        ("Company", appt.get("company_name") or "-"),
        ("Therapist", appt.get("therapist_name") or "-"),
        ("Employee", appt["employee_name"]),
        ("Service", appt.get("service_name") or "-"),
    ]
    body = _body(to_name, "Reminder: you have an appointment tomorrow.", rows)
    return send_email(to_email, f"[Reminder] Appointment on {_fmt_day(start)}", body)
