from __future__ import annotations

from datetime import date

import pytest

from leadoff.auth_service import authenticate, get_user_by_email
from leadoff.errors import Conflict, NotFound, ValidationFailed
from leadoff.master_service import (
    create_company,
    create_service_menu,
    create_symptom,
    deactivate_company,
    deactivate_service_menu,
    list_companies,
    list_service_menus,
    list_symptoms,
    update_company,
    update_service_menu,
    update_symptom,
)
from leadoff.models import UserRole
from leadoff.staff_service import (
    add_therapist_profile,
    create_company_user,
    create_therapist,
    deactivate_company_user,
    deactivate_therapist,
    list_company_users,
    list_therapists,
    parse_specialties,
    reset_company_user_password,
    update_company_user,
    update_therapist,
)

from .conftest import PASSWORD


# Companies / menus / symptoms

def test_company_requires_name_and_email():
    with pytest.raises(ValidationFailed):
        create_company("  ", "a@b.c")
    with pytest.raises(ValidationFailed):
        create_company("Acme", "")


def test_company_contract_dates():
    with pytest.raises(ValidationFailed):
        create_company("Acme", "hr@acme.test", contract_start_date=date(2026, 5, 1), contract_end_date=date(2026, 4, 1))


def test_deactivated_company_hidden_from_active_list(company):
    deactivate_company(company["id"])
    assert list_companies(active_only=True) == []
    assert list_companies()[0]["is_active"] is False


def test_service_menu_validation():
    with pytest.raises(ValidationFailed):
        create_service_menu("Zero", 0, 100)
    with pytest.raises(ValidationFailed):
        create_service_menu("Negative", 30, -1)
    m = create_service_menu(" Quick ", 15, 0)
    assert m["name"] == "Quick"
    assert list_service_menus()[0]["id"] == m["id"]


def test_update_company(company):
    c = update_company(
        company["id"], " Acme Holdings ", "HR@Acme.test",
        address="1 Main St", contract_start_date=date(2026, 1, 1), contract_end_date=date(2026, 12, 31),
        is_active=False,
    )
    assert c["name"] == "Acme Holdings"
    assert c["email"] == "hr@acme.test"
    assert c["address"] == "1 Main St"
    assert c["is_active"] is False

    with pytest.raises(NotFound):
        update_company("missing", "X", "x@y.z")
    with pytest.raises(ValidationFailed):
        update_company(company["id"], "Acme", "hr@acme.test",
                       contract_start_date=date(2026, 5, 1), contract_end_date=date(2026, 4, 1))


def test_update_and_deactivate_service_menu(menu):
    m = update_service_menu(menu["id"], "Body care 60+", 60, 6500, description="Longer")
    assert (m["name"], m["price"], m["description"]) == ("Body care 60+", 6500, "Longer")
    with pytest.raises(ValidationFailed):
        update_service_menu(menu["id"], "Body care", 0, 100)

    deactivate_service_menu(menu["id"])
    assert list_service_menus() == []
    assert list_service_menus(active_only=False)[0]["is_active"] is False
    with pytest.raises(NotFound):
        deactivate_service_menu("missing")


def test_symptom_order_defaults_to_end():
    a = create_symptom("Neck pain")
    b = create_symptom("Eye strain", display_order=0)
    c = create_symptom("Fatigue", display_order=10)
    d = create_symptom("Poor sleep")
    assert (a["display_order"], b["display_order"], c["display_order"], d["display_order"]) == (1, 2, 10, 11)
    assert [x["name"] for x in list_symptoms()] == ["Neck pain", "Eye strain", "Fatigue", "Poor sleep"]


def test_symptom_names_are_unique():
    a = create_symptom("Neck pain")
    b = create_symptom("Headache")
    with pytest.raises(ValidationFailed):
        create_symptom("Neck pain")
    with pytest.raises(ValidationFailed):
        update_symptom(b["id"], "Neck pain", 3)
    # renaming to its own name is fine
    assert update_symptom(a["id"], "Neck pain", 5)["display_order"] == 5


# Therapists

def test_create_new_therapist_with_initial_password():
    t = create_therapist("new.therapist@test.local", "Nina New", specialties="sports, , posture")

    assert t["initial_password"]
    assert t["specialties"] == ["sports", "posture"]
    u = get_user_by_email("new.therapist@test.local")
    assert u.role == UserRole.THERAPIST
    assert u.must_change_password is True
    assert authenticate("new.therapist@test.local", t["initial_password"]) is not None


def test_demo_therapist_skips_password_change():
    create_therapist("demo.therapist@demo.com", "Demo")
    assert get_user_by_email("demo.therapist@demo.com").must_change_password is False


def test_company_user_is_promoted(company_user):
    t = create_therapist(company_user.email, "Carol Promoted")

    assert t["initial_password"] is None
    assert t["user_id"] == company_user.id
    u = get_user_by_email(company_user.email)
    assert u.role == UserRole.THERAPIST
    assert u.company_id is None
    # keeps the existing password
    assert authenticate(company_user.email, PASSWORD) is not None


def test_existing_therapist_or_admin_is_a_conflict(therapist, admin):
    with pytest.raises(Conflict):
        create_therapist(therapist[0].email, "Again")
    with pytest.raises(Conflict):
        create_therapist(admin.email, "Admin")


def test_deactivate_therapist(therapist):
    deactivate_therapist(therapist[1])
    assert list_therapists(available_only=True) == []
    assert authenticate(therapist[0].email, PASSWORD) is None


def test_update_therapist(therapist):
    t = update_therapist(therapist[1], "Tara Renamed", phone="123", specialties=["a", "b"], is_available=False)
    assert t["full_name"] == "Tara Renamed"
    assert t["specialties"] == ["a", "b"]
    assert t["is_available"] is False
    with pytest.raises(NotFound):
        update_therapist("missing", "x")


def test_add_therapist_profile(company_user):
    t = add_therapist_profile(company_user.id, license_number=" L-42 ", specialties="sports")
    assert t["user_id"] == company_user.id
    assert t["license_number"] == "L-42"
    assert t["is_available"] is True
    u = get_user_by_email(company_user.email)
    assert u.role == UserRole.THERAPIST
    assert u.company_id is None


def test_add_therapist_profile_conflicts(admin, therapist):
    with pytest.raises(Conflict):
        add_therapist_profile(admin.id)
    with pytest.raises(Conflict):
        add_therapist_profile(therapist[0].id)
    with pytest.raises(NotFound):
        add_therapist_profile("missing")


def test_parse_specialties():
    assert parse_specialties(None) is None
    assert parse_specialties(" , ") is None
    assert parse_specialties(["x ", ""]) == ["x"]


# Company users

def test_create_company_user(company):
    cu = create_company_user("Dan@Acme.test", "Dan", company["id"])
    assert cu["email"] == "dan@acme.test"
    assert cu["company_name"] == "Acme Corp"
    assert cu["must_change_password"] is True
    assert authenticate("dan@acme.test", cu["initial_password"]) is not None
    assert [u["email"] for u in list_company_users(company["id"])] == ["dan@acme.test"]


def test_company_user_duplicate_email_and_missing_company(company, company_user):
    with pytest.raises(Conflict):
        create_company_user(company_user.email, "Again", company["id"])
    with pytest.raises(NotFound):
        create_company_user("x@y.z", "X", "missing")


def test_reset_company_user_password(company_user, therapist):
    out = reset_company_user_password(company_user.id)

    assert authenticate(company_user.email, PASSWORD) is None
    u = authenticate(company_user.email, out["initial_password"])
    assert u is not None and u.must_change_password is True

    with pytest.raises(ValidationFailed, match="only available for company users"):
        reset_company_user_password(therapist[0].id)
    with pytest.raises(NotFound):
        reset_company_user_password("missing")


def test_update_company_user(company_user, other_company):
    out = update_company_user(company_user.id, " Carol Moved ", other_company["id"], phone=" 555 ")
    assert out["full_name"] == "Carol Moved"
    assert out["company_name"] == "Globex"
    assert out["phone"] == "555"

    with pytest.raises(NotFound):
        update_company_user(company_user.id, "Carol", "missing")
    with pytest.raises(ValidationFailed):
        update_company_user(company_user.id, " ", other_company["id"])


def test_deactivate_company_user(company, company_user, admin):
    deactivate_company_user(company_user.id)
    assert authenticate(company_user.email, PASSWORD) is None
    assert list_company_users(company["id"])[0]["is_active"] is False

    with pytest.raises(ValidationFailed):
        deactivate_company_user(admin.id)
