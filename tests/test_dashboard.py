from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from leadoff.booking_service import approve_appointment, request_appointment
from leadoff.errors import NotFound
from leadoff.models import UserRole
from leadoff.report_service import dashboard_summary
from leadoff.slot_service import create_slot
from leadoff.treatment_service import create_treatment_record

from .conftest import make_user

BOOKED_ON = datetime(2026, 2, 20, 9, 0)
# Saturday 2026-03-07, before the first session of the day
TODAY = datetime(2026, 3, 7, 8, 0)


def _book(admin, company_user, therapist_id, menu, start, employee, approve=True):
    slot = create_slot(admin, therapist_id, menu["id"], start, start + timedelta(minutes=60), now=BOOKED_ON)
    appt = request_appointment(company_user, slot["id"], employee, employee[:1] + "-1", now=BOOKED_ON)
    if approve:
        approve_appointment(admin, appt["id"])
    return appt


def _complete(admin, appt, symptoms):
    create_treatment_record(
        admin, appt["id"],
        treatment_content="Work",
        patient_condition="Ok",
        improvement_level=4,
        satisfaction_level=4,
        actual_duration_minutes=55,
        symptom_ids=[symptoms[0]["id"]],
    )


@pytest.fixture
def week(admin, company_user, therapist, menu, symptoms):
    _, therapist_id = therapist
    appts = {
        "today": _book(admin, company_user, therapist_id, menu, datetime(2026, 3, 7, 10), "Alice"),
        "today_pending": _book(admin, company_user, therapist_id, menu, datetime(2026, 3, 7, 14), "Bob", approve=False),
        "done": _book(admin, company_user, therapist_id, menu, datetime(2026, 3, 4, 11), "Cleo"),
        "no_report": _book(admin, company_user, therapist_id, menu, datetime(2026, 3, 5, 11), "Dan"),
        "last_month": _book(admin, company_user, therapist_id, menu, datetime(2026, 2, 26, 10), "Eve"),
    }
    _complete(admin, appts["done"], symptoms)
    _complete(admin, appts["last_month"], symptoms)
    return appts


def test_admin_dashboard(week, admin):
    d = dashboard_summary(admin, now=TODAY)

    assert d["role"] == "admin"
    assert [a["id"] for a in d["today_appointments"]] == [week["today"]["id"]]
    assert d["today_count"] == 1
    assert d["pending_count"] == 1
    # week runs Sunday 1st to Saturday 7th
    assert d["week_count"] == 3
    assert d["month_completed_count"] == 1
    assert d["active_companies"] == 1


def test_therapist_dashboard(week, therapist, other_therapist):
    d = dashboard_summary(therapist[0], now=TODAY)

    assert [a["id"] for a in d["today_appointments"]] == [week["today"]["id"], week["today_pending"]["id"]]
    assert d["pending_count"] == 1
    assert d["week_count"] == 3
    assert d["month_completed_count"] == 1
    assert [a["id"] for a in d["awaiting_report"]] == [week["no_report"]["id"]]

    quiet = dashboard_summary(other_therapist[0], now=TODAY)
    assert (quiet["today_count"], quiet["pending_count"], quiet["week_count"]) == (0, 0, 0)
    assert quiet["awaiting_report"] == []


def test_company_dashboard(week, company_user, other_company_user):
    d = dashboard_summary(company_user, now=TODAY)

    assert d["company_name"] == "Acme Corp"
    assert d["next_appointment"]["id"] == week["today"]["id"]
    assert d["month_appointments"] == 3
    assert d["month_completed_count"] == 1

    other = dashboard_summary(other_company_user, now=TODAY)
    assert other["next_appointment"] is None
    assert other["month_appointments"] == 0


def test_dashboard_needs_a_profile():
    bare = make_user("bare@test.local", UserRole.THERAPIST)
    with pytest.raises(NotFound):
        dashboard_summary(bare, now=TODAY)

    loose = make_user("loose@test.local", UserRole.COMPANY_USER)
    with pytest.raises(NotFound):
        dashboard_summary(loose, now=TODAY)
