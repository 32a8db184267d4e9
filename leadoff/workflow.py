"""
Appointment / slot status machine.

Every status change of an appointment goes through `transition_appointment`,
which updates the appointment row and its slot row inside the caller's
transaction with conditional UPDATEs (optimistic lock on the current status).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import update
from sqlalchemy.orm import Session

from .errors import Conflict
from .models import Appointment, AppointmentStatus, AvailableSlot, SlotStatus

APPOINTMENT_TRANSITIONS: dict[AppointmentStatus, tuple[AppointmentStatus, ...]] = {
    AppointmentStatus.PENDING: (
        AppointmentStatus.APPROVED,
        AppointmentStatus.REJECTED,
        AppointmentStatus.CANCELLED,
    ),
    AppointmentStatus.APPROVED: (AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED),
    AppointmentStatus.REJECTED: (),
    AppointmentStatus.CANCELLED: (),
    AppointmentStatus.COMPLETED: (),
}

# Slot status that goes with each appointment status
SLOT_STATUS_FOR: dict[AppointmentStatus, SlotStatus] = {
    AppointmentStatus.PENDING: SlotStatus.PENDING,
    AppointmentStatus.APPROVED: SlotStatus.BOOKED,
    AppointmentStatus.COMPLETED: SlotStatus.BOOKED,
    AppointmentStatus.REJECTED: SlotStatus.AVAILABLE,
    AppointmentStatus.CANCELLED: SlotStatus.AVAILABLE,
}

STATUS_LABELS: dict[AppointmentStatus, str] = {
    AppointmentStatus.PENDING: "Awaiting approval",
    AppointmentStatus.APPROVED: "Approved",
    AppointmentStatus.REJECTED: "Rejected",
    AppointmentStatus.CANCELLED: "Cancelled",
    AppointmentStatus.COMPLETED: "Completed",
}


def _coerce(status: AppointmentStatus | str) -> AppointmentStatus | None:
    if isinstance(status, AppointmentStatus):
        return status
    try:
        return AppointmentStatus(status)
    except ValueError:
        return None


def is_valid_status(status: AppointmentStatus | str) -> bool:
    return _coerce(status) is not None


def can_transition(current: AppointmentStatus | str, new: AppointmentStatus | str) -> bool:
    cur, nxt = _coerce(current), _coerce(new)
    if cur is None or nxt is None:
        return False
    return nxt in APPOINTMENT_TRANSITIONS[cur]


def available_transitions(current: AppointmentStatus | str) -> list[AppointmentStatus]:
    cur = _coerce(current)
    if cur is None:
        return []
    return list(APPOINTMENT_TRANSITIONS[cur])


def status_label(status: AppointmentStatus | str) -> str:
    st = _coerce(status)
    if st is None:
        return str(status)
    return STATUS_LABELS[st]


def claim_slot(s: Session, slot_id: str) -> None:
    """available -> pending, only if nobody got there first."""
    res = s.execute(
        update(AvailableSlot)
        .where(AvailableSlot.id == slot_id, AvailableSlot.status == SlotStatus.AVAILABLE)
        .values(status=SlotStatus.PENDING, updated_at=datetime.now())
        .execution_options(synchronize_session="fetch")
    )
    if res.rowcount != 1:
        raise Conflict("This slot is already booked.")


def transition_appointment(
    s: Session,
    appointment: Appointment,
    new_status: AppointmentStatus,
    **changes: Any,
) -> None:
    """
    Move `appointment` to `new_status` and its slot to the paired status.

    - invalid transition: Conflict
    - row changed concurrently (status no longer the one we read): Conflict
    Both rows are updated in the caller's transaction, so a Conflict raised
    here rolls back the whole unit of work.
    """
    current = appointment.status
    if not can_transition(current, new_status):
        raise Conflict(
            f"Cannot change an appointment from '{current.value}' to '{new_status.value}'."
        )

    now = datetime.now()
    res = s.execute(
        update(Appointment)
        .where(Appointment.id == appointment.id, Appointment.status == current)
        .values(status=new_status, updated_at=now, **changes)
        .execution_options(synchronize_session="fetch")
    )
    if res.rowcount != 1:
        raise Conflict("The appointment was changed by someone else. Reload and try again.")

    expected_slot = SLOT_STATUS_FOR[current]
    target_slot = SLOT_STATUS_FOR[new_status]
    if expected_slot == target_slot:
        return

    res = s.execute(
        update(AvailableSlot)
        .where(AvailableSlot.id == appointment.slot_id, AvailableSlot.status == expected_slot)
        .values(status=target_slot, updated_at=now)
        .execution_options(synchronize_session="fetch")
    )
    if res.rowcount != 1:
        raise Conflict("The slot of this appointment is out of sync. Reload and try again.")
