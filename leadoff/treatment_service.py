from __future__ import annotations

import json
import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from . import email_service
from .appointment_views import appointment_flat, load_appointment
from .auth_service import therapist_id_for
from .db import db_session
from .errors import Conflict, NotFound, PermissionDenied, ValidationFailed
from .models import (
    Appointment,
    AppointmentStatus,
    AvailableSlot,
    Symptom,
    TreatmentRecord,
    TreatmentSymptom,
    User,
    UserRole,
)
from .workflow import transition_appointment

logger = logging.getLogger(__name__)

MIN_LEVEL, MAX_LEVEL = 1, 5
MIN_DURATION, MAX_DURATION = 1, 300


# =========================
# Helper / DTO
# =========================
def parse_body_diagram(value: Any) -> dict | None:
    """Accepts a dict or a JSON string; anything unreadable becomes None."""
    if value is None or value == "":
        return None
    if isinstance(value, dict):
        return value
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            logger.warning("Body diagram payload is not valid JSON, stored as empty")
            return None
        if isinstance(parsed, dict):
            return parsed
    logger.warning("Body diagram payload of type %s ignored", type(value).__name__)
    return None


def _validate_report(
    treatment_content: str,
    patient_condition: str,
    improvement_level: int,
    satisfaction_level: int,
    actual_duration_minutes: int,
    symptom_ids: list[str],
) -> None:
    if not (treatment_content or "").strip() or not (patient_condition or "").strip():
        raise ValidationFailed("Treatment content and patient condition are required.")
    for label, level in (("Improvement", improvement_level), ("Satisfaction", satisfaction_level)):
        if level is None or not MIN_LEVEL <= int(level) <= MAX_LEVEL:
            raise ValidationFailed(f"{label} level must be between {MIN_LEVEL} and {MAX_LEVEL}.")
    if actual_duration_minutes is None or not MIN_DURATION <= int(actual_duration_minutes) <= MAX_DURATION:
        raise ValidationFailed(f"Treatment duration must be between {MIN_DURATION} and {MAX_DURATION} minutes.")
    if not symptom_ids:
        raise ValidationFailed("Select at least one symptom.")


def _symptom_links(s: Session, symptom_ids: list[str]) -> list[TreatmentSymptom]:
    ids = list(dict.fromkeys(symptom_ids))
    found = set(s.scalars(select(Symptom.id).where(Symptom.id.in_(ids))))
    missing = [i for i in ids if i not in found]
    if missing:
        raise ValidationFailed("Unknown symptom selected.")
    return [TreatmentSymptom(symptom_id=i) for i in ids]


def _record_query():
    return select(TreatmentRecord).options(
        selectinload(TreatmentRecord.symptom_links).selectinload(TreatmentSymptom.symptom),
        selectinload(TreatmentRecord.appointment).selectinload(Appointment.slot),
        selectinload(TreatmentRecord.appointment).selectinload(Appointment.company),
    )


def record_flat(r: TreatmentRecord) -> dict:
    appt = r.appointment
    slot = appt.slot if appt else None
    symptoms = sorted(
        (link.symptom for link in r.symptom_links if link.symptom is not None),
        key=lambda x: x.display_order,
    )
    return {
        "id": r.id,
        "appointment_id": r.appointment_id,
        "therapist_id": r.therapist_id,
        "company_id": appt.company_id if appt else None,
        "company_name": appt.company.name if appt and appt.company else None,
        "employee_name": appt.employee_name if appt else None,
        "employee_id": appt.employee_id if appt else None,
        "start_time": slot.start_time if slot else None,
        "treatment_content": r.treatment_content,
        "patient_condition": r.patient_condition,
        "improvement_level": r.improvement_level,
        "satisfaction_level": r.satisfaction_level,
        "actual_duration_minutes": r.actual_duration_minutes,
        "next_recommendation": r.next_recommendation,
        "body_diagram_data": r.body_diagram_data,
        "admin_comments": r.admin_comments,
        "symptoms": [{"id": x.id, "name": x.name} for x in symptoms],
        "created_at": r.created_at,
        "updated_at": r.updated_at,
    }


def _load_record(s: Session, record_id: str) -> TreatmentRecord | None:
    return s.execute(_record_query().where(TreatmentRecord.id == record_id)).scalar_one_or_none()


# =========================
# Use cases
# =========================
def create_treatment_record(
    actor: User,
    appointment_id: str,
    treatment_content: str,
    patient_condition: str,
    improvement_level: int,
    satisfaction_level: int,
    actual_duration_minutes: int,
    symptom_ids: list[str],
    next_recommendation: str | None = None,
    body_diagram_data: Any = None,
) -> dict:
    """
    Use case: the therapist files the report of a session.
    - appointment must be approved and without a report
    - record, symptom links and approved -> completed share one transaction
    - the requester gets an email afterwards
    """
    _validate_report(
        treatment_content, patient_condition, improvement_level,
        satisfaction_level, actual_duration_minutes, symptom_ids,
    )
    diagram = parse_body_diagram(body_diagram_data)

    with db_session() as s:
        appt = load_appointment(s, appointment_id)
        if not appt:
            raise NotFound("Appointment not found.")

        slot_therapist = appt.slot.therapist_id
        if actor.role == UserRole.THERAPIST:
            if therapist_id_for(s, actor.id) != slot_therapist:
                raise PermissionDenied("You can only report on your own appointments.")
        elif actor.role != UserRole.ADMIN:
            raise PermissionDenied("Only therapists and administrators file treatment reports.")

        if appt.treatment_record is not None:
            raise Conflict("A treatment report already exists for this appointment.")
        if appt.status != AppointmentStatus.APPROVED:
            raise Conflict("Only approved appointments can receive a treatment report.")

        rec = TreatmentRecord(
            appointment=appt,
            therapist_id=slot_therapist,
            treatment_content=treatment_content.strip(),
            patient_condition=patient_condition.strip(),
            improvement_level=int(improvement_level),
            satisfaction_level=int(satisfaction_level),
            actual_duration_minutes=int(actual_duration_minutes),
            next_recommendation=(next_recommendation or "").strip() or None,
            body_diagram_data=diagram,
        )
        rec.symptom_links = _symptom_links(s, symptom_ids)
        s.add(rec)
        s.flush()

        transition_appointment(s, appt, AppointmentStatus.COMPLETED)
        appt_view = appointment_flat(appt)
        record_id = rec.id

    logger.info("Treatment record %s filed for appointment %s", record_id, appointment_id)

    try:
        if appt_view["requester_email"]:
            email_service.send_treatment_completed_email(
                appt_view["requester_email"], appt_view["requester_name"], appt_view
            )
    except Exception:
        logger.exception("Failed to send treatment completed email for %s", appointment_id)

    return get_treatment_record(actor, record_id)


def update_treatment_record(
    actor: User,
    record_id: str,
    treatment_content: str,
    patient_condition: str,
    improvement_level: int,
    satisfaction_level: int,
    actual_duration_minutes: int,
    symptom_ids: list[str],
    next_recommendation: str | None = None,
    body_diagram_data: Any = None,
) -> dict:
    _validate_report(
        treatment_content, patient_condition, improvement_level,
        satisfaction_level, actual_duration_minutes, symptom_ids,
    )
    diagram = parse_body_diagram(body_diagram_data)

    with db_session() as s:
        rec = _load_record(s, record_id)
        if not rec:
            raise NotFound("Treatment record not found.")
        if actor.role != UserRole.ADMIN and therapist_id_for(s, actor.id) != rec.therapist_id:
            raise PermissionDenied("You can only edit your own treatment reports.")

        rec.treatment_content = treatment_content.strip()
        rec.patient_condition = patient_condition.strip()
        rec.improvement_level = int(improvement_level)
        rec.satisfaction_level = int(satisfaction_level)
        rec.actual_duration_minutes = int(actual_duration_minutes)
        rec.next_recommendation = (next_recommendation or "").strip() or None
        rec.body_diagram_data = diagram

        # drop the old links before inserting the new ones (unique pair)
        rec.symptom_links = []
        s.flush()
        rec.symptom_links = _symptom_links(s, symptom_ids)
        s.flush()

    logger.info("Treatment record %s updated by %s", record_id, actor.email)
    return get_treatment_record(actor, record_id)


def set_admin_comments(actor: User, record_id: str, comments: str | None) -> dict:
    if actor.role != UserRole.ADMIN:
        raise PermissionDenied("Only administrators can comment on treatment reports.")

    with db_session() as s:
        rec = s.get(TreatmentRecord, record_id)
        if not rec:
            raise NotFound("Treatment record not found.")
        rec.admin_comments = (comments or "").strip() or None

    return get_treatment_record(actor, record_id)


# =========================
# Queries
# =========================
def _can_view(s: Session, actor: User, rec: TreatmentRecord) -> bool:
    if actor.role == UserRole.ADMIN:
        return True
    if actor.role == UserRole.THERAPIST:
        return therapist_id_for(s, actor.id) == rec.therapist_id
    return actor.company_id is not None and rec.appointment.company_id == actor.company_id


def get_treatment_record(actor: User, record_id: str) -> dict:
    with db_session() as s:
        rec = _load_record(s, record_id)
        if not rec or not _can_view(s, actor, rec):
            raise NotFound("Treatment record not found.")
        return record_flat(rec)


def list_treatment_records(actor: User, company_id: str | None = None) -> list[dict]:
    """Newest session first, scoped to the actor."""
    with db_session() as s:
        q = (
            _record_query()
            .join(Appointment, Appointment.id == TreatmentRecord.appointment_id)
            .join(AvailableSlot, AvailableSlot.id == Appointment.slot_id)
        )

        if actor.role == UserRole.THERAPIST:
            own = therapist_id_for(s, actor.id)
            if not own:
                return []
            q = q.where(TreatmentRecord.therapist_id == own)
        elif actor.role == UserRole.COMPANY_USER:
            if not actor.company_id:
                return []
            q = q.where(Appointment.company_id == actor.company_id)

        if company_id:
            q = q.where(Appointment.company_id == company_id)

        q = q.order_by(AvailableSlot.start_time.desc())
        return [record_flat(r) for r in s.scalars(q)]
