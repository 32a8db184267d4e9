from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import func, select, update

from . import email_service
from .appointment_views import appointment_flat, appointment_query
from .db import db_session
from .errors import NotFound
from .models import Appointment, AppointmentStatus, AvailableSlot, Notification, NotificationType

logger = logging.getLogger(__name__)


# =========================
# In-app notifications
# =========================
def create_notification(
    user_id: str,
    type: NotificationType,
    title: str,
    message: str,
    appointment_id: str | None = None,
) -> bool:
    """
    Use case: tell a user about something that happened.
    - runs in its own transaction, after the workflow committed
    - a failure is logged and reported as False, never raised
    """
    try:
        with db_session() as s:
            s.add(
                Notification(
                    user_id=user_id,
                    type=type,
                    title=title,
                    message=message,
                    appointment_id=appointment_id,
                    is_read=False,
                )
            )
        return True
    except Exception:
        logger.exception("Failed to create %s notification for user %s", type.value, user_id)
        return False


def notification_flat(n: Notification) -> dict:
    return {
        "id": n.id,
        "type": n.type.value,
        "title": n.title,
        "message": n.message,
        "appointment_id": n.appointment_id,
        "is_read": n.is_read,
        "created_at": n.created_at,
    }


def recent_notifications(user_id: str, limit: int = 10) -> list[dict]:
    with db_session() as s:
        rows = s.scalars(
            select(Notification)
            .where(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(limit)
        )
        return [notification_flat(n) for n in rows]


def unread_notifications(user_id: str, limit: int = 50) -> list[dict]:
    with db_session() as s:
        rows = s.scalars(
            select(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
            .order_by(Notification.created_at.asc(), Notification.id.asc())
            .limit(limit)
        )
        return [notification_flat(n) for n in rows]


def unread_count(user_id: str) -> int:
    with db_session() as s:
        return s.execute(
            select(func.count(Notification.id)).where(
                Notification.user_id == user_id, Notification.is_read.is_(False)
            )
        ).scalar_one()


def mark_read(user_id: str, notification_id: int) -> None:
    with db_session() as s:
        n = s.get(Notification, notification_id)
        # someone else's notification looks exactly like a missing one
        if not n or n.user_id != user_id:
            raise NotFound("Notification not found.")
        n.is_read = True


def mark_all_read(user_id: str) -> int:
    with db_session() as s:
        res = s.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
            .values(is_read=True)
        )
        return res.rowcount


# =========================
# Reminders (scheduled job)
# =========================
def _tomorrow_window(now: datetime) -> tuple[datetime, datetime]:
    start = datetime.combine(now.date() + timedelta(days=1), datetime.min.time())
    return start, start + timedelta(days=1)


def send_reminders(now: datetime | None = None) -> dict:
    """
    Use case: day-before reminder for every approved appointment starting tomorrow.
    - email + in-app notification for the therapist and for the requester
    - an appointment with missing data or a failing send is logged and skipped
    """
    now = now or datetime.now()
    start, end = _tomorrow_window(now)

    with db_session() as s:
        q = (
            appointment_query()
            .join(AvailableSlot, AvailableSlot.id == Appointment.slot_id)
            .where(
                Appointment.status == AppointmentStatus.APPROVED,
                AvailableSlot.start_time >= start,
                AvailableSlot.start_time < end,
            )
            .order_by(AvailableSlot.start_time.asc())
        )
        appointments = [appointment_flat(a) for a in s.scalars(q)]

    sent = 0
    for appt in appointments:
        try:
            if not appt["therapist_user_id"] or not appt["requested_by"]:
                logger.error("Missing data for reminder of appointment %s", appt["id"])
                continue

            at = appt["start_time"].strftime("%H:%M")
            company = appt["company_name"] or "unknown company"

            email_service.send_reminder_email(appt["therapist_email"], appt["therapist_name"], appt)
            create_notification(
                appt["therapist_user_id"],
                NotificationType.REMINDER,
                "Appointment tomorrow",
                f"Tomorrow at {at}: {company} - {appt['employee_name']}.",
                appt["id"],
            )

            email_service.send_reminder_email(appt["requester_email"], appt["employee_name"], appt)
            create_notification(
                appt["requested_by"],
                NotificationType.REMINDER,
                "Appointment tomorrow",
                f"Tomorrow at {at}: treatment for {appt['employee_name']}.",
                appt["id"],
            )
            sent += 1
        except Exception:
            logger.exception("Failed to send reminder for appointment %s", appt["id"])

    logger.info("Reminders sent: %d of %d", sent, len(appointments))
    return {"reminders_sent": sent, "total_appointments": len(appointments)}
