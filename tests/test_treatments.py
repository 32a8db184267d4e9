from __future__ import annotations

import pytest

from leadoff.booking_service import approve_appointment, get_appointment, request_appointment
from leadoff.db import db_session
from leadoff.errors import Conflict, NotFound, PermissionDenied, ValidationFailed
from leadoff.models import AvailableSlot, SlotStatus
from leadoff.treatment_service import (
    create_treatment_record,
    get_treatment_record,
    list_treatment_records,
    parse_body_diagram,
    set_admin_comments,
    update_treatment_record,
)

from .conftest import NOW


@pytest.fixture
def approved(admin, company_user, slot):
    appt = request_appointment(company_user, slot["id"], "Eve Employee", "E-001", now=NOW)
    approve_appointment(admin, appt["id"])
    return appt


def _report(actor, appointment_id, symptom_ids, **overrides):
    data = dict(
        treatment_content="Shoulder and neck release",
        patient_condition="Tension in the trapezius",
        improvement_level=4,
        satisfaction_level=5,
        actual_duration_minutes=55,
        symptom_ids=symptom_ids,
    )
    data.update(overrides)
    return create_treatment_record(actor, appointment_id, **data)


def test_therapist_files_report_and_completes_appointment(therapist, company_user, approved, symptoms, sent_emails):
    rec = _report(
        therapist[0], approved["id"], [symptoms[0]["id"], symptoms[2]["id"]],
        body_diagram_data='{"views": {"front": []}}',
        next_recommendation="  Stretch daily ",
    )

    assert rec["therapist_id"] == therapist[1]
    assert rec["improvement_level"] == 4
    assert rec["next_recommendation"] == "Stretch daily"
    assert rec["body_diagram_data"] == {"views": {"front": []}}
    assert [x["name"] for x in rec["symptoms"]] == ["Stiff shoulders", "Headache"]

    appt = get_appointment(company_user, approved["id"])
    assert appt["status"] == "completed"
    assert appt["treatment_record_id"] == rec["id"]
    with db_session() as s:
        assert s.get(AvailableSlot, approved["slot_id"]).status == SlotStatus.BOOKED
    assert any(to == company_user.email for to, _ in sent_emails)


def test_report_needs_approved_appointment(admin, company_user, slot, symptoms):
    appt = request_appointment(company_user, slot["id"], "Eve", "E-1", now=NOW)
    with pytest.raises(Conflict):
        _report(admin, appt["id"], [symptoms[0]["id"]])


def test_one_report_per_appointment(admin, approved, symptoms):
    _report(admin, approved["id"], [symptoms[0]["id"]])
    with pytest.raises(Conflict):
        _report(admin, approved["id"], [symptoms[0]["id"]])


def test_only_slot_therapist_reports(other_therapist, company_user, approved, symptoms):
    with pytest.raises(PermissionDenied):
        _report(other_therapist[0], approved["id"], [symptoms[0]["id"]])
    with pytest.raises(PermissionDenied):
        _report(company_user, approved["id"], [symptoms[0]["id"]])


@pytest.mark.parametrize(
    "overrides",
    [
        {"improvement_level": 0},
        {"satisfaction_level": 6},
        {"actual_duration_minutes": 0},
        {"actual_duration_minutes": 301},
        {"treatment_content": "  "},
        {"symptom_ids": []},
        {"symptom_ids": ["not-a-symptom"]},
    ],
)
def test_report_validation(admin, approved, symptoms, overrides):
    overrides.setdefault("symptom_ids", [symptoms[0]["id"]])
    with pytest.raises(ValidationFailed):
        _report(admin, approved["id"], **overrides)
    # nothing was committed
    assert get_appointment(admin, approved["id"])["status"] == "approved"


def test_parse_body_diagram():
    assert parse_body_diagram(None) is None
    assert parse_body_diagram("") is None
    assert parse_body_diagram({"a": 1}) == {"a": 1}
    assert parse_body_diagram('{"a": 1}') == {"a": 1}
    assert parse_body_diagram("{broken") is None
    assert parse_body_diagram("[1, 2]") is None


def test_update_replaces_symptoms(therapist, approved, symptoms):
    rec = _report(therapist[0], approved["id"], [symptoms[0]["id"], symptoms[1]["id"]])

    updated = update_treatment_record(
        therapist[0], rec["id"],
        treatment_content="Lower back work",
        patient_condition="Better",
        improvement_level=5,
        satisfaction_level=5,
        actual_duration_minutes=60,
        symptom_ids=[symptoms[1]["id"], symptoms[2]["id"]],
    )
    assert updated["treatment_content"] == "Lower back work"
    assert [x["name"] for x in updated["symptoms"]] == ["Lower back pain", "Headache"]


def test_update_by_other_therapist_denied(therapist, other_therapist, approved, symptoms):
    rec = _report(therapist[0], approved["id"], [symptoms[0]["id"]])
    with pytest.raises(PermissionDenied):
        update_treatment_record(
            other_therapist[0], rec["id"], "x", "y", 3, 3, 30, [symptoms[0]["id"]],
        )


def test_admin_comments(admin, therapist, approved, symptoms):
    rec = _report(therapist[0], approved["id"], [symptoms[0]["id"]])

    with pytest.raises(PermissionDenied):
        set_admin_comments(therapist[0], rec["id"], "nice")

    assert set_admin_comments(admin, rec["id"], " Well documented ")["admin_comments"] == "Well documented"


def test_visibility(admin, therapist, other_therapist, company_user, other_company_user, approved, symptoms):
    rec = _report(therapist[0], approved["id"], [symptoms[0]["id"]])

    assert [r["id"] for r in list_treatment_records(admin)] == [rec["id"]]
    assert [r["id"] for r in list_treatment_records(therapist[0])] == [rec["id"]]
    assert [r["id"] for r in list_treatment_records(company_user)] == [rec["id"]]
    assert list_treatment_records(other_therapist[0]) == []
    assert list_treatment_records(other_company_user) == []

    assert get_treatment_record(company_user, rec["id"])["company_name"] == "Acme Corp"
    with pytest.raises(NotFound):
        get_treatment_record(other_company_user, rec["id"])
