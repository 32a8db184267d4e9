from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field, field_validator

from .api_deps import get_current_user, require_admin, require_roles
from .booking_service import (
    approve_appointment,
    cancel_appointment,
    get_appointment,
    list_appointments,
    reject_appointment,
    request_appointment,
)
from .models import AppointmentStatus, SlotStatus, User, UserRole
from .slot_service import create_slot, delete_slot, list_slots, update_slot
from .treatment_service import (
    create_treatment_record,
    get_treatment_record,
    list_treatment_records,
    set_admin_comments,
    update_treatment_record,
)

router = APIRouter(prefix="/api")

slot_managers = require_roles(UserRole.THERAPIST, UserRole.ADMIN)
bookers = require_roles(UserRole.COMPANY_USER, UserRole.ADMIN)


# Schemas

def local_naive(value: datetime | None) -> datetime | None:
    """Times are stored as naive local time; offsets (e.g. a trailing Z) are converted."""
    if value is not None and value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


class SlotUpdateIn(BaseModel):
    service_menu_id: str
    start_time: datetime
    end_time: datetime
    company_id: str | None = None

    @field_validator("start_time", "end_time")
    @classmethod
    def to_local_naive(cls, v: datetime) -> datetime:
        return local_naive(v)


class SlotIn(SlotUpdateIn):
    therapist_id: str


class AppointmentIn(BaseModel):
    slot_id: str
    employee_name: str = Field(..., min_length=1)
    employee_id: str = Field(..., min_length=1)
    symptoms: list[str] = []
    notes: str | None = None
    # admins booking on behalf of a company
    company_id: str | None = None


class RejectIn(BaseModel):
    reason: str = Field(..., min_length=1)


class TreatmentIn(BaseModel):
    treatment_content: str
    patient_condition: str
    improvement_level: int = Field(..., ge=1, le=5)
    satisfaction_level: int = Field(..., ge=1, le=5)
    actual_duration_minutes: int = Field(..., ge=1, le=300)
    symptom_ids: list[str] = Field(..., min_length=1)
    next_recommendation: str | None = None
    body_diagram_data: dict[str, Any] | str | None = None


class AdminCommentsIn(BaseModel):
    comments: str | None = None


# Slots

@router.get("/slots")
def api_list_slots(
    therapist_id: str | None = None,
    company_id: str | None = None,
    slot_status: SlotStatus | None = Query(None, alias="status"),
    start: datetime | None = None,
    end: datetime | None = None,
    user: User = Depends(get_current_user),
) -> list[dict]:
    return list_slots(
        actor=user,
        therapist_id=therapist_id,
        company_id=company_id,
        status=slot_status,
        start=local_naive(start),
        end=local_naive(end),
    )


@router.post("/slots", status_code=status.HTTP_201_CREATED)
def api_create_slot(payload: SlotIn, user: User = Depends(slot_managers)) -> dict[str, Any]:
    return create_slot(
        user,
        therapist_id=payload.therapist_id,
        service_menu_id=payload.service_menu_id,
        start_time=payload.start_time,
        end_time=payload.end_time,
        company_id=payload.company_id,
    )


@router.patch("/slots/{slot_id}")
def api_update_slot(slot_id: str, payload: SlotUpdateIn, user: User = Depends(slot_managers)) -> dict[str, Any]:
    return update_slot(
        user,
        slot_id,
        service_menu_id=payload.service_menu_id,
        start_time=payload.start_time,
        end_time=payload.end_time,
        company_id=payload.company_id,
    )


@router.delete("/slots/{slot_id}")
def api_delete_slot(slot_id: str, user: User = Depends(slot_managers)) -> dict[str, Any]:
    delete_slot(user, slot_id)
    return {"ok": True}


# Appointments

@router.get("/appointments")
def api_list_appointments(
    appointment_status: AppointmentStatus | None = Query(None, alias="status"),
    company_id: str | None = None,
    therapist_id: str | None = None,
    user: User = Depends(get_current_user),
) -> list[dict]:
    return list_appointments(user, status=appointment_status, company_id=company_id, therapist_id=therapist_id)


@router.get("/appointments/{appointment_id}")
def api_get_appointment(appointment_id: str, user: User = Depends(get_current_user)) -> dict[str, Any]:
    return get_appointment(user, appointment_id)


@router.post("/appointments", status_code=status.HTTP_201_CREATED)
def api_request_appointment(payload: AppointmentIn, user: User = Depends(bookers)) -> dict[str, Any]:
    return request_appointment(
        user,
        slot_id=payload.slot_id,
        employee_name=payload.employee_name,
        employee_id=payload.employee_id,
        symptoms=payload.symptoms,
        notes=payload.notes,
        company_id=payload.company_id,
    )


@router.post("/appointments/{appointment_id}/approve")
def api_approve(appointment_id: str, user: User = Depends(slot_managers)) -> dict[str, Any]:
    return approve_appointment(user, appointment_id)


@router.post("/appointments/{appointment_id}/reject")
def api_reject(appointment_id: str, payload: RejectIn, user: User = Depends(slot_managers)) -> dict[str, Any]:
    return reject_appointment(user, appointment_id, payload.reason)


@router.post("/appointments/{appointment_id}/cancel")
def api_cancel(appointment_id: str, user: User = Depends(bookers)) -> dict[str, Any]:
    return cancel_appointment(user, appointment_id)


# Treatment records

@router.get("/treatments")
def api_list_treatments(company_id: str | None = None, user: User = Depends(get_current_user)) -> list[dict]:
    return list_treatment_records(user, company_id=company_id)


@router.get("/treatments/{record_id}")
def api_get_treatment(record_id: str, user: User = Depends(get_current_user)) -> dict[str, Any]:
    return get_treatment_record(user, record_id)


@router.post("/appointments/{appointment_id}/treatment", status_code=status.HTTP_201_CREATED)
def api_create_treatment(
    appointment_id: str,
    payload: TreatmentIn,
    user: User = Depends(slot_managers),
) -> dict[str, Any]:
    return create_treatment_record(user, appointment_id, **payload.model_dump())


@router.put("/treatments/{record_id}")
def api_update_treatment(record_id: str, payload: TreatmentIn, user: User = Depends(slot_managers)) -> dict[str, Any]:
    return update_treatment_record(user, record_id, **payload.model_dump())


@router.put("/treatments/{record_id}/admin-comments")
def api_admin_comments(record_id: str, payload: AdminCommentsIn, user: User = Depends(require_admin)) -> dict[str, Any]:
    return set_admin_comments(user, record_id, payload.comments)
