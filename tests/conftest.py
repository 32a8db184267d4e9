from __future__ import annotations

import os

# Settings must be in place before leadoff is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["CRON_SECRET"] = "test-cron-secret"
os.environ["RESEND_API_KEY"] = ""

from datetime import datetime, timedelta

import pytest

from leadoff import email_service
from leadoff.auth_service import create_user
from leadoff.db import Base, db_session, engine, init_db
from leadoff.master_service import create_company, create_service_menu, create_symptom
from leadoff.models import Therapist, UserRole
from leadoff.slot_service import create_slot

PASSWORD = "Secret-pass1"

# Monday morning; slots used by the tests start the following Saturday
NOW = datetime(2026, 3, 2, 9, 0)
SLOT_START = datetime(2026, 3, 7, 10, 0)


@pytest.fixture(autouse=True)
def fresh_db():
    Base.metadata.drop_all(bind=engine)
    init_db()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def sent_emails(monkeypatch):
    """Records (to, subject) instead of calling the provider."""
    sent: list[tuple[str, str]] = []

    def fake_send(to, subject, html_body):
        sent.append((to, subject))
        return True

    monkeypatch.setattr(email_service, "send_email", fake_send)
    return sent


def make_user(email, role, company_id=None, full_name=None, must_change_password=False):
    with db_session() as s:
        return create_user(
            s,
            email=email,
            password=PASSWORD,
            full_name=full_name or email.split("@")[0].title(),
            role=role,
            company_id=company_id,
            must_change_password=must_change_password,
        )


def make_therapist(email, full_name="Tara Therapist"):
    """Returns (user, therapist_id)."""
    with db_session() as s:
        u = create_user(s, email=email, password=PASSWORD, full_name=full_name, role=UserRole.THERAPIST)
        t = Therapist(user_id=u.id, is_available=True)
        s.add(t)
        s.flush()
        return u, t.id


@pytest.fixture
def admin():
    return make_user("admin@test.local", UserRole.ADMIN, full_name="Ada Admin")


@pytest.fixture
def company():
    return create_company("Acme Corp", "hr@acme.test")


@pytest.fixture
def other_company():
    return create_company("Globex", "hr@globex.test")


@pytest.fixture
def company_user(company):
    return make_user("carol@acme.test", UserRole.COMPANY_USER, company_id=company["id"], full_name="Carol Client")


@pytest.fixture
def other_company_user(other_company):
    return make_user("oscar@globex.test", UserRole.COMPANY_USER, company_id=other_company["id"])


@pytest.fixture
def therapist():
    return make_therapist("tara@test.local")


@pytest.fixture
def other_therapist():
    return make_therapist("theo@test.local", full_name="Theo Other")


@pytest.fixture
def menu():
    return create_service_menu("Body care 60", 60, 6000)


@pytest.fixture
def symptoms():
    return [create_symptom(name) for name in ("Stiff shoulders", "Lower back pain", "Headache")]


@pytest.fixture
def slot(admin, therapist, menu):
    _, therapist_id = therapist
    return create_slot(
        admin,
        therapist_id=therapist_id,
        service_menu_id=menu["id"],
        start_time=SLOT_START,
        end_time=SLOT_START + timedelta(minutes=60),
        now=NOW,
    )
