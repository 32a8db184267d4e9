from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import and_, delete, select
from sqlalchemy.orm import Session, selectinload

from .auth_service import therapist_id_for
from .config import SLOT_RETENTION_DAYS
from .db import db_session
from .errors import Conflict, NotFound, PermissionDenied, ValidationFailed
from .models import Appointment, AvailableSlot, Company, ServiceMenu, SlotStatus, Therapist, User, UserRole

logger = logging.getLogger(__name__)


def slot_flat(sl: AvailableSlot) -> dict:
    therapist_user = sl.therapist.user if sl.therapist else None
    return {
        "id": sl.id,
        "therapist_id": sl.therapist_id,
        "therapist_name": therapist_user.full_name if therapist_user else None,
        "service_menu_id": sl.service_menu_id,
        "service_name": sl.service_menu.name if sl.service_menu else None,
        "duration_minutes": sl.service_menu.duration_minutes if sl.service_menu else None,
        "company_id": sl.company_id,
        "start_time": sl.start_time,
        "end_time": sl.end_time,
        "status": sl.status.value,
        "auto_delete_at": sl.auto_delete_at,
    }


# =========================
# Validation
# =========================
def _overlaps(s: Session, therapist_id: str, start: datetime, end: datetime, exclude_id: str | None = None) -> bool:
    """Any non-cancelled slot of the therapist intersecting [start, end)."""
    q = select(AvailableSlot.id).where(
        and_(
            AvailableSlot.therapist_id == therapist_id,
            AvailableSlot.status != SlotStatus.CANCELLED,
            AvailableSlot.start_time < end,
            AvailableSlot.end_time > start,
        )
    )
    if exclude_id:
        q = q.where(AvailableSlot.id != exclude_id)
    return s.execute(q.limit(1)).first() is not None


def _check_owner(s: Session, actor: User, therapist_id: str) -> None:
    if actor.role == UserRole.ADMIN:
        return
    if actor.role == UserRole.THERAPIST and therapist_id_for(s, actor.id) == therapist_id:
        return
    raise PermissionDenied("You can only manage your own slots.")


def _validate_slot(
    s: Session,
    therapist_id: str,
    service_menu_id: str,
    start_time: datetime,
    end_time: datetime,
    company_id: str | None,
    now: datetime,
    exclude_id: str | None = None,
) -> None:
    if not therapist_id or not service_menu_id or not start_time or not end_time:
        raise ValidationFailed("Therapist, service menu, start and end are required.")
    if end_time <= start_time:
        raise ValidationFailed("End time must be after start time.")
    if start_time < now:
        raise ValidationFailed("Slots cannot start in the past.")

    therapist = s.get(Therapist, therapist_id)
    if not therapist:
        raise NotFound("Therapist not found.")
    if not therapist.is_available:
        raise ValidationFailed("This therapist is not taking bookings.")

    menu = s.get(ServiceMenu, service_menu_id)
    if not menu:
        raise NotFound("Service menu not found.")
    if not menu.is_active:
        raise ValidationFailed(f"Service menu '{menu.name}' is no longer offered.")

    actual = int((end_time - start_time).total_seconds() // 60)
    if actual != menu.duration_minutes:
        raise ValidationFailed(
            f"The slot lasts {actual} minutes but '{menu.name}' takes {menu.duration_minutes} minutes."
        )

    if company_id and not s.get(Company, company_id):
        raise NotFound("Company not found.")

    if _overlaps(s, therapist_id, start_time, end_time, exclude_id=exclude_id):
        raise Conflict("This time overlaps another slot of the therapist.")


# =========================
# Use cases
# =========================
def create_slot(
    actor: User,
    therapist_id: str,
    service_menu_id: str,
    start_time: datetime,
    end_time: datetime,
    company_id: str | None = None,
    now: datetime | None = None,
) -> dict:
    """
    Use case: a therapist (or an admin for them) opens a bookable slot.
    - length must match the service menu
    - no overlap with the therapist's other live slots
    - auto_delete_at = start + SLOT_RETENTION_DAYS
    """
    now = now or datetime.now()
    company_id = company_id or None

    with db_session() as s:
        _check_owner(s, actor, therapist_id)
        _validate_slot(s, therapist_id, service_menu_id, start_time, end_time, company_id, now)

        sl = AvailableSlot(
            therapist_id=therapist_id,
            service_menu_id=service_menu_id,
            company_id=company_id,
            start_time=start_time,
            end_time=end_time,
            status=SlotStatus.AVAILABLE,
            auto_delete_at=start_time + timedelta(days=SLOT_RETENTION_DAYS),
        )
        s.add(sl)
        s.flush()
        s.refresh(sl)
        logger.info("Slot %s created for therapist %s at %s", sl.id, therapist_id, start_time.isoformat())
        return slot_flat(sl)


def update_slot(
    actor: User,
    slot_id: str,
    service_menu_id: str,
    start_time: datetime,
    end_time: datetime,
    company_id: str | None = None,
    now: datetime | None = None,
) -> dict:
    now = now or datetime.now()
    company_id = company_id or None

    with db_session() as s:
        sl = s.get(AvailableSlot, slot_id)
        if not sl:
            raise NotFound("Slot not found.")
        _check_owner(s, actor, sl.therapist_id)
        if sl.status != SlotStatus.AVAILABLE:
            raise Conflict("Only open slots can be changed.")

        _validate_slot(s, sl.therapist_id, service_menu_id, start_time, end_time, company_id, now, exclude_id=sl.id)

        sl.service_menu_id = service_menu_id
        sl.start_time = start_time
        sl.end_time = end_time
        sl.company_id = company_id
        sl.auto_delete_at = start_time + timedelta(days=SLOT_RETENTION_DAYS)
        s.flush()
        s.refresh(sl)
        return slot_flat(sl)


def delete_slot(actor: User, slot_id: str, now: datetime | None = None) -> None:
    """Only open, future slots that were never booked can go."""
    now = now or datetime.now()

    with db_session() as s:
        sl = s.get(AvailableSlot, slot_id)
        if not sl:
            raise NotFound("Slot not found.")
        _check_owner(s, actor, sl.therapist_id)

        if sl.status != SlotStatus.AVAILABLE:
            raise Conflict("Only open slots can be deleted.")
        if sl.start_time < now:
            raise ValidationFailed("Past slots cannot be deleted.")

        has_history = s.execute(select(Appointment.id).where(Appointment.slot_id == slot_id).limit(1)).first()
        if has_history:
            raise Conflict("This slot has booking history and cannot be deleted.")

        s.delete(sl)
        logger.info("Slot %s deleted by %s", slot_id, actor.email)


def list_slots(
    actor: User | None = None,
    therapist_id: str | None = None,
    company_id: str | None = None,
    status: SlotStatus | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[dict]:
    """
    Slots in chronological order.
    Company users only see slots open to everybody or reserved for their company.
    """
    with db_session() as s:
        q = select(AvailableSlot).options(
            selectinload(AvailableSlot.therapist).selectinload(Therapist.user),
            selectinload(AvailableSlot.service_menu),
        )

        if actor is not None and actor.role == UserRole.COMPANY_USER:
            q = q.where(
                (AvailableSlot.company_id.is_(None)) | (AvailableSlot.company_id == actor.company_id)
            )
        elif company_id:
            q = q.where((AvailableSlot.company_id.is_(None)) | (AvailableSlot.company_id == company_id))

        if therapist_id:
            q = q.where(AvailableSlot.therapist_id == therapist_id)
        if status is not None:
            q = q.where(AvailableSlot.status == status)
        if start:
            q = q.where(AvailableSlot.start_time >= start)
        if end:
            q = q.where(AvailableSlot.start_time < end)

        q = q.order_by(AvailableSlot.start_time.asc())
        return [slot_flat(sl) for sl in s.scalars(q)]


def purge_expired_slots(now: datetime | None = None) -> int:
    """Delete slots past auto_delete_at that never got an appointment."""
    now = now or datetime.now()
    with db_session() as s:
        res = s.execute(
            delete(AvailableSlot)
            .where(
                AvailableSlot.auto_delete_at.is_not(None),
                AvailableSlot.auto_delete_at < now,
                AvailableSlot.id.not_in(select(Appointment.slot_id)),
            )
            .execution_options(synchronize_session=False)
        )
        count = res.rowcount

    logger.info("Purged %d expired slots", count)
    return count
