from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from leadoff.booking_service import (
    approve_appointment,
    cancel_appointment,
    cancel_deadline,
    get_appointment,
    list_appointments,
    reject_appointment,
    request_appointment,
)
from leadoff.db import db_session
from leadoff.errors import Conflict, NotFound, PermissionDenied, ValidationFailed
from leadoff.models import AppointmentStatus, AvailableSlot, SlotStatus
from leadoff.notification_service import recent_notifications
from leadoff.slot_service import create_slot

from .conftest import NOW, SLOT_START


def _slot_status(slot_id):
    with db_session() as s:
        return s.get(AvailableSlot, slot_id).status


def _book(actor, slot, **kw):
    kw.setdefault("now", NOW)
    return request_appointment(actor, slot["id"], "Eve Employee", "E-001", symptoms=["Headache"], **kw)


def test_request_creates_pending_appointment_and_notifies_therapist(company_user, company, slot, therapist, sent_emails):
    appt = _book(company_user, slot, notes="  window seat  ")

    assert appt["status"] == "pending"
    assert appt["company_id"] == company["id"]
    assert appt["requested_by"] == company_user.id
    assert appt["symptoms"] == ["Headache"]
    assert appt["notes"] == "window seat"
    assert _slot_status(slot["id"]) == SlotStatus.PENDING

    therapist_user, _ = therapist
    notes = recent_notifications(therapist_user.id)
    assert [n["type"] for n in notes] == ["appointment_requested"]
    assert notes[0]["appointment_id"] == appt["id"]
    assert sent_emails and sent_emails[0][0] == therapist_user.email


def test_request_requires_employee_fields(company_user, slot):
    with pytest.raises(ValidationFailed):
        request_appointment(company_user, slot["id"], "  ", "E-1", now=NOW)
    with pytest.raises(ValidationFailed):
        request_appointment(company_user, slot["id"], "Eve", "", now=NOW)


def test_request_needs_lead_time(company_user, slot):
    too_late = datetime(2026, 3, 5, 12, 0)
    with pytest.raises(ValidationFailed):
        _book(company_user, slot, now=too_late)
    assert _slot_status(slot["id"]) == SlotStatus.AVAILABLE


def test_therapist_cannot_book(therapist, slot):
    therapist_user, _ = therapist
    with pytest.raises(PermissionDenied):
        _book(therapist_user, slot)


def test_admin_books_on_behalf_of_a_company(admin, company, slot):
    with pytest.raises(ValidationFailed):
        _book(admin, slot)

    appt = _book(admin, slot, company_id=company["id"])
    assert appt["company_id"] == company["id"]
    assert appt["requested_by"] == admin.id


def test_slot_reserved_for_another_company(admin, therapist, menu, company_user, other_company):
    _, therapist_id = therapist
    reserved = create_slot(
        admin, therapist_id, menu["id"], SLOT_START, SLOT_START + timedelta(minutes=60),
        company_id=other_company["id"], now=NOW,
    )
    with pytest.raises(PermissionDenied):
        _book(company_user, reserved)


def test_double_booking_is_a_conflict(company_user, other_company_user, slot):
    _book(company_user, slot)
    with pytest.raises(Conflict):
        _book(other_company_user, slot)


def test_unknown_slot(company_user):
    with pytest.raises(NotFound):
        request_appointment(company_user, "missing", "Eve", "E-1", now=NOW)


def test_therapist_approves_own_appointment(company_user, therapist, slot, sent_emails):
    appt = _book(company_user, slot)
    therapist_user, _ = therapist

    approved = approve_appointment(therapist_user, appt["id"])

    assert approved["status"] == "approved"
    assert _slot_status(slot["id"]) == SlotStatus.BOOKED
    notes = recent_notifications(company_user.id)
    assert notes[0]["type"] == "appointment_approved"
    assert "the therapist" in notes[0]["message"]
    assert any(to == company_user.email for to, _ in sent_emails)


def test_admin_approval_is_labelled(company_user, admin, slot):
    appt = _book(company_user, slot)
    approve_appointment(admin, appt["id"])
    assert "an administrator" in recent_notifications(company_user.id)[0]["message"]


def test_other_therapist_cannot_approve(company_user, other_therapist, slot):
    appt = _book(company_user, slot)
    with pytest.raises(PermissionDenied):
        approve_appointment(other_therapist[0], appt["id"])


def test_company_user_cannot_approve(company_user, slot):
    appt = _book(company_user, slot)
    with pytest.raises(PermissionDenied):
        approve_appointment(company_user, appt["id"])


def test_approve_twice_is_a_conflict(company_user, admin, slot):
    appt = _book(company_user, slot)
    approve_appointment(admin, appt["id"])
    with pytest.raises(Conflict):
        approve_appointment(admin, appt["id"])


def test_reject_needs_reason_and_frees_the_slot(company_user, other_company_user, therapist, slot):
    appt = _book(company_user, slot)
    therapist_user, _ = therapist

    with pytest.raises(ValidationFailed):
        reject_appointment(therapist_user, appt["id"], "   ")

    rejected = reject_appointment(therapist_user, appt["id"], "Fully booked that day")
    assert rejected["status"] == "rejected"
    assert rejected["rejected_reason"] == "Fully booked that day"
    assert _slot_status(slot["id"]) == SlotStatus.AVAILABLE
    assert recent_notifications(company_user.id)[0]["type"] == "appointment_rejected"

    # the freed slot can be booked again
    again = _book(other_company_user, slot)
    assert again["status"] == "pending"


def test_cancel_before_deadline(company_user, admin, therapist, slot):
    appt = _book(company_user, slot)
    approve_appointment(admin, appt["id"])

    just_in_time = datetime(2026, 3, 6, 19, 59)
    cancelled = cancel_appointment(company_user, appt["id"], now=just_in_time)

    assert cancelled["status"] == "cancelled"
    assert cancelled["cancelled_by"] == company_user.id
    assert cancelled["cancelled_at"] == just_in_time
    assert _slot_status(slot["id"]) == SlotStatus.AVAILABLE

    therapist_user, _ = therapist
    assert recent_notifications(therapist_user.id)[0]["type"] == "appointment_cancelled"


def test_cancel_after_deadline(company_user, slot):
    appt = _book(company_user, slot)
    with pytest.raises(ValidationFailed):
        cancel_appointment(company_user, appt["id"], now=datetime(2026, 3, 6, 20, 1))


def test_cancel_deadline_is_evening_before():
    assert cancel_deadline(datetime(2026, 3, 7, 10, 0)) == datetime(2026, 3, 6, 20, 0)


def test_cancel_other_company_denied(company_user, other_company_user, slot):
    appt = _book(company_user, slot)
    with pytest.raises(PermissionDenied):
        cancel_appointment(other_company_user, appt["id"], now=NOW)


def test_therapist_cannot_cancel(company_user, therapist, slot):
    appt = _book(company_user, slot)
    with pytest.raises(PermissionDenied):
        cancel_appointment(therapist[0], appt["id"], now=NOW)


def test_cancel_rejected_is_a_conflict(company_user, admin, slot):
    appt = _book(company_user, slot)
    reject_appointment(admin, appt["id"], "no")
    with pytest.raises(Conflict):
        cancel_appointment(company_user, appt["id"], now=NOW)


def test_listing_is_scoped(admin, company_user, other_company_user, therapist, other_therapist, menu):
    _, therapist_id = therapist
    slots = [
        create_slot(admin, therapist_id, menu["id"], SLOT_START + timedelta(hours=h),
                    SLOT_START + timedelta(hours=h, minutes=60), now=NOW)
        for h in (0, 2)
    ]
    mine = _book(company_user, slots[0])
    theirs = _book(other_company_user, slots[1])

    assert [a["id"] for a in list_appointments(company_user)] == [mine["id"]]
    assert [a["id"] for a in list_appointments(other_company_user)] == [theirs["id"]]
    # newest slot first
    assert [a["id"] for a in list_appointments(admin)] == [theirs["id"], mine["id"]]
    assert len(list_appointments(therapist[0])) == 2
    assert list_appointments(other_therapist[0]) == []
    assert list_appointments(admin, status=AppointmentStatus.APPROVED) == []


def test_get_appointment_hidden_outside_scope(company_user, other_company_user, slot):
    appt = _book(company_user, slot)
    assert get_appointment(company_user, appt["id"])["employee_name"] == "Eve Employee"
    with pytest.raises(NotFound):
        get_appointment(other_company_user, appt["id"])
