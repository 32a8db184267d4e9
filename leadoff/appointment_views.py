from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from .models import Appointment, AvailableSlot, Therapist
from .workflow import status_label


def appointment_query():
    """Appointment with everything the flat view touches, loaded up front."""
    return select(Appointment).options(
        selectinload(Appointment.slot).selectinload(AvailableSlot.therapist).selectinload(Therapist.user),
        selectinload(Appointment.slot).selectinload(AvailableSlot.service_menu),
        selectinload(Appointment.company),
        selectinload(Appointment.requester),
        selectinload(Appointment.treatment_record),
    )


def load_appointment(s: Session, appointment_id: str) -> Appointment | None:
    return s.execute(appointment_query().where(Appointment.id == appointment_id)).scalar_one_or_none()


def appointment_flat(a: Appointment) -> dict:
    """Serializable view of an appointment; call while the session is open."""
    slot = a.slot
    therapist = slot.therapist if slot else None
    therapist_user = therapist.user if therapist else None
    menu = slot.service_menu if slot else None

    return {
        "id": a.id,
        "status": a.status.value,
        "status_label": status_label(a.status),
        "slot_id": a.slot_id,
        "start_time": slot.start_time if slot else None,
        "end_time": slot.end_time if slot else None,
        "company_id": a.company_id,
        "company_name": a.company.name if a.company else None,
        "requested_by": a.requested_by,
        "requester_name": a.requester.full_name if a.requester else None,
        "requester_email": a.requester.email if a.requester else None,
        "employee_name": a.employee_name,
        "employee_id": a.employee_id,
        "symptoms": list(a.symptoms or []),
        "notes": a.notes,
        "rejected_reason": a.rejected_reason,
        "cancelled_at": a.cancelled_at,
        "cancelled_by": a.cancelled_by,
        "therapist_id": therapist.id if therapist else None,
        "therapist_user_id": therapist_user.id if therapist_user else None,
        "therapist_name": therapist_user.full_name if therapist_user else None,
        "therapist_email": therapist_user.email if therapist_user else None,
        "service_menu_id": menu.id if menu else None,
        "service_name": menu.name if menu else None,
        "treatment_record_id": a.treatment_record.id if a.treatment_record else None,
        "created_at": a.created_at,
    }
