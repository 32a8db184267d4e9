from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import select

from . import email_service
from .appointment_views import appointment_flat, appointment_query, load_appointment
from .auth_service import therapist_id_for
from .config import BOOKING_LEAD_DAYS, CANCEL_DEADLINE_HOUR
from .db import db_session
from .errors import Conflict, NotFound, PermissionDenied, ValidationFailed
from .models import (
    Appointment,
    AppointmentStatus,
    AvailableSlot,
    Company,
    NotificationType,
    SlotStatus,
    User,
    UserRole,
)
from .notification_service import create_notification
from .workflow import claim_slot, transition_appointment

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = (AppointmentStatus.PENDING, AppointmentStatus.APPROVED, AppointmentStatus.COMPLETED)


# =========================
# Rules
# =========================
def booking_lead_ok(start_time: datetime, now: datetime) -> bool:
    return start_time >= now + timedelta(days=BOOKING_LEAD_DAYS)


def cancel_deadline(start_time: datetime) -> datetime:
    """CANCEL_DEADLINE_HOUR:00 on the day before the appointment."""
    day_before = start_time.date() - timedelta(days=1)
    return datetime.combine(day_before, datetime.min.time()).replace(hour=CANCEL_DEADLINE_HOUR)


def _resolve_company(s, actor: User, company_id: str | None) -> str:
    if actor.role == UserRole.COMPANY_USER:
        if not actor.company_id:
            raise PermissionDenied("Your account is not linked to a company.")
        if company_id and company_id != actor.company_id:
            raise PermissionDenied("You can only book for your own company.")
        return actor.company_id

    if actor.role == UserRole.ADMIN:
        if not company_id:
            raise ValidationFailed("Choose the company to book for.")
        if not s.get(Company, company_id):
            raise NotFound("Company not found.")
        return company_id

    raise PermissionDenied("Therapists cannot book appointments.")


def _can_manage(s, actor: User, appointment: Appointment) -> bool:
    """Admin, or the therapist who owns the slot."""
    if actor.role == UserRole.ADMIN:
        return True
    if actor.role == UserRole.THERAPIST:
        return therapist_id_for(s, actor.id) == appointment.slot.therapist_id
    return False


def _can_view(s, actor: User, appointment: Appointment) -> bool:
    if actor.role == UserRole.COMPANY_USER:
        return actor.company_id is not None and appointment.company_id == actor.company_id
    return _can_manage(s, actor, appointment)


# =========================
# Booking (use case core)
# =========================
def request_appointment(
    actor: User,
    slot_id: str,
    employee_name: str,
    employee_id: str,
    symptoms: list[str] | None = None,
    notes: str | None = None,
    company_id: str | None = None,
    now: datetime | None = None,
) -> dict:
    """
    Use case: a company asks for a therapist's slot.
    - company users book for their company, admins on behalf of a named company
    - the slot must be open, visible to the company and far enough ahead
    - slot available -> pending and the appointment insert share one transaction
    - the therapist is notified after commit
    """
    now = now or datetime.now()
    employee_name = (employee_name or "").strip()
    employee_id = (employee_id or "").strip()
    if not slot_id or not employee_name or not employee_id:
        raise ValidationFailed("Slot, employee name and employee ID are required.")

    with db_session() as s:
        target_company = _resolve_company(s, actor, company_id)

        slot = s.get(AvailableSlot, slot_id)
        if not slot:
            raise NotFound("Slot not found.")
        if slot.status != SlotStatus.AVAILABLE:
            raise Conflict("This slot is already booked.")
        if slot.company_id and slot.company_id != target_company:
            raise PermissionDenied("This slot is reserved for another company.")
        if not booking_lead_ok(slot.start_time, now):
            raise ValidationFailed(f"Appointments must be booked at least {BOOKING_LEAD_DAYS} days ahead.")

        taken = s.execute(
            select(Appointment.id).where(
                Appointment.slot_id == slot_id, Appointment.status.in_(ACTIVE_STATUSES)
            )
        ).first()
        if taken:
            raise Conflict("This slot is already booked.")

        claim_slot(s, slot_id)

        appt = Appointment(
            slot_id=slot_id,
            company_id=target_company,
            requested_by=actor.id,
            employee_name=employee_name,
            employee_id=employee_id,
            symptoms=[x for x in (symptoms or []) if x],
            notes=(notes or "").strip() or None,
            status=AppointmentStatus.PENDING,
        )
        s.add(appt)
        s.flush()

        result = appointment_flat(load_appointment(s, appt.id))

    logger.info("Appointment %s requested on slot %s by %s", result["id"], slot_id, actor.email)
    _notify_requested(result)
    return result


def approve_appointment(actor: User, appointment_id: str) -> dict:
    """
    Use case: approve a pending request.
    - admin or the slot's therapist
    - pending -> approved, slot pending -> booked
    """
    with db_session() as s:
        appt = load_appointment(s, appointment_id)
        if not appt:
            raise NotFound("Appointment not found.")
        if not _can_manage(s, actor, appt):
            raise PermissionDenied("You cannot approve this appointment.")

        transition_appointment(s, appt, AppointmentStatus.APPROVED)
        result = appointment_flat(appt)

    by_admin = actor.role == UserRole.ADMIN
    logger.info("Appointment %s approved by %s", appointment_id, actor.email)
    _notify_approved(result, by_admin)
    return result


def reject_appointment(actor: User, appointment_id: str, reason: str) -> dict:
    reason = (reason or "").strip()
    if not reason:
        raise ValidationFailed("A rejection reason is required.")

    with db_session() as s:
        appt = load_appointment(s, appointment_id)
        if not appt:
            raise NotFound("Appointment not found.")
        if not _can_manage(s, actor, appt):
            raise PermissionDenied("You cannot reject this appointment.")

        transition_appointment(s, appt, AppointmentStatus.REJECTED, rejected_reason=reason)
        result = appointment_flat(appt)

    logger.info("Appointment %s rejected by %s", appointment_id, actor.email)
    _notify_rejected(result)
    return result


def cancel_appointment(actor: User, appointment_id: str, now: datetime | None = None) -> dict:
    """
    Use case: the company (or an admin) withdraws a booking.
    - pending or approved only
    - not after CANCEL_DEADLINE_HOUR:00 the day before
    - slot goes back to available
    """
    now = now or datetime.now()

    with db_session() as s:
        appt = load_appointment(s, appointment_id)
        if not appt:
            raise NotFound("Appointment not found.")

        if actor.role == UserRole.COMPANY_USER:
            if appt.company_id != actor.company_id:
                raise PermissionDenied("You cannot cancel another company's appointment.")
        elif actor.role != UserRole.ADMIN:
            raise PermissionDenied("Only the company or an administrator can cancel.")

        if appt.status not in (AppointmentStatus.PENDING, AppointmentStatus.APPROVED):
            raise Conflict("Only pending or approved appointments can be cancelled.")
        if now > cancel_deadline(appt.slot.start_time):
            raise ValidationFailed(
                f"Cancellations close at {CANCEL_DEADLINE_HOUR}:00 on the day before the appointment."
            )

        transition_appointment(
            s,
            appt,
            AppointmentStatus.CANCELLED,
            cancelled_at=now,
            cancelled_by=actor.id,
        )
        result = appointment_flat(appt)

    logger.info("Appointment %s cancelled by %s", appointment_id, actor.email)
    _notify_cancelled(result)
    return result


# =========================
# Queries
# =========================
def list_appointments(
    actor: User,
    status: AppointmentStatus | None = None,
    company_id: str | None = None,
    therapist_id: str | None = None,
) -> list[dict]:
    """Newest slot first, scoped to what the actor may see."""
    with db_session() as s:
        q = appointment_query().join(AvailableSlot, AvailableSlot.id == Appointment.slot_id)

        if actor.role == UserRole.COMPANY_USER:
            if not actor.company_id:
                return []
            q = q.where(Appointment.company_id == actor.company_id)
        elif actor.role == UserRole.THERAPIST:
            own = therapist_id_for(s, actor.id)
            if not own:
                return []
            q = q.where(AvailableSlot.therapist_id == own)

        if status is not None:
            q = q.where(Appointment.status == status)
        if company_id:
            q = q.where(Appointment.company_id == company_id)
        if therapist_id:
            q = q.where(AvailableSlot.therapist_id == therapist_id)

        q = q.order_by(AvailableSlot.start_time.desc())
        return [appointment_flat(a) for a in s.scalars(q)]


def get_appointment(actor: User, appointment_id: str) -> dict:
    with db_session() as s:
        appt = load_appointment(s, appointment_id)
        # hide existence from actors outside the scope
        if not appt or not _can_view(s, actor, appt):
            raise NotFound("Appointment not found.")
        return appointment_flat(appt)


# =========================
# Side effects (after commit)
# =========================
def _day(appt: dict) -> str:
    return appt["start_time"].strftime("%d %b")


def _notify_requested(appt: dict) -> None:
    try:
        if appt["therapist_email"]:
            email_service.send_appointment_request_email(appt["therapist_email"], appt["therapist_name"], appt)
        if appt["therapist_user_id"]:
            create_notification(
                appt["therapist_user_id"],
                NotificationType.APPOINTMENT_REQUESTED,
                "New booking request",
                f"{appt['company_name']} asked for an appointment on {_day(appt)}.",
                appt["id"],
            )
    except Exception:
        logger.exception("Failed to notify therapist about appointment %s", appt["id"])


def _notify_approved(appt: dict, by_admin: bool) -> None:
    approver = "an administrator" if by_admin else "the therapist"
    try:
        if appt["requester_email"]:
            email_service.send_appointment_approved_email(appt["requester_email"], appt["requester_name"], appt)
        create_notification(
            appt["requested_by"],
            NotificationType.APPOINTMENT_APPROVED,
            "Booking confirmed",
            f"The appointment on {_day(appt)} for {appt['employee_name']} was approved by {approver}.",
            appt["id"],
        )
    except Exception:
        logger.exception("Failed to notify requester about approval of %s", appt["id"])


def _notify_rejected(appt: dict) -> None:
    try:
        if appt["requester_email"]:
            email_service.send_appointment_rejected_email(appt["requester_email"], appt["requester_name"], appt)
        create_notification(
            appt["requested_by"],
            NotificationType.APPOINTMENT_REJECTED,
            "Booking rejected",
            f"The appointment on {_day(appt)} was rejected. Reason: {appt['rejected_reason']}",
            appt["id"],
        )
    except Exception:
        logger.exception("Failed to notify requester about rejection of %s", appt["id"])


def _notify_cancelled(appt: dict) -> None:
    try:
        if appt["therapist_email"]:
            email_service.send_appointment_cancelled_email(appt["therapist_email"], appt["therapist_name"], appt)
        if appt["therapist_user_id"]:
            create_notification(
                appt["therapist_user_id"],
                NotificationType.APPOINTMENT_CANCELLED,
                "Booking cancelled",
                f"{appt['company_name']} cancelled the appointment on {_day(appt)}.",
                appt["id"],
            )
    except Exception:
        logger.exception("Failed to notify therapist about cancellation of %s", appt["id"])
