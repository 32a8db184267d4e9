from __future__ import annotations

from datetime import datetime

import pytest

from leadoff import email_service
from leadoff.booking_service import approve_appointment, request_appointment
from leadoff.errors import NotFound
from leadoff.models import NotificationType
from leadoff.notification_service import (
    create_notification,
    mark_all_read,
    mark_read,
    recent_notifications,
    send_reminders,
    unread_count,
)

from .conftest import NOW


def test_notification_inbox(company_user, other_company_user):
    for i in range(12):
        create_notification(company_user.id, NotificationType.REMINDER, f"t{i}", "m")

    recent = recent_notifications(company_user.id)
    assert len(recent) == 10
    assert recent[0]["title"] == "t11"
    assert unread_count(company_user.id) == 12

    mark_read(company_user.id, recent[0]["id"])
    assert unread_count(company_user.id) == 11

    # someone else's notification looks missing
    with pytest.raises(NotFound):
        mark_read(other_company_user.id, recent[1]["id"])

    assert mark_all_read(company_user.id) == 11
    assert unread_count(company_user.id) == 0


def test_create_notification_failure_is_swallowed(company_user, monkeypatch):
    def boom():
        raise RuntimeError("db down")

    monkeypatch.setattr("leadoff.notification_service.db_session", boom)
    assert create_notification(company_user.id, NotificationType.REMINDER, "t", "m") is False


def test_send_email_without_key_only_logs(caplog):
    caplog.set_level("INFO")
    assert email_service.send_email("someone@test.local", "Hello", "<p>x</p>") is False
    assert "EMAIL MOCK" in caplog.text


def _approved_appointment(admin, company_user, slot):
    appt = request_appointment(company_user, slot["id"], "Eve Employee", "E-001", now=NOW)
    approve_appointment(admin, appt["id"])
    return appt


def test_send_reminders_for_tomorrow(admin, company_user, therapist, slot, sent_emails):
    _approved_appointment(admin, company_user, slot)
    sent_emails.clear()

    # slot is on 2026-03-07
    result = send_reminders(now=datetime(2026, 3, 6, 9, 0))

    assert result == {"reminders_sent": 1, "total_appointments": 1}
    recipients = sorted(to for to, _ in sent_emails)
    assert recipients == sorted([therapist[0].email, company_user.email])
    assert recent_notifications(therapist[0].id)[0]["type"] == "reminder"
    assert recent_notifications(company_user.id)[0]["type"] == "reminder"


def test_no_reminders_on_other_days(admin, company_user, slot, sent_emails):
    _approved_appointment(admin, company_user, slot)
    assert send_reminders(now=datetime(2026, 3, 5, 9, 0)) == {"reminders_sent": 0, "total_appointments": 0}


def test_pending_appointments_get_no_reminder(company_user, slot):
    request_appointment(company_user, slot["id"], "Eve", "E-1", now=NOW)
    assert send_reminders(now=datetime(2026, 3, 6, 9, 0))["total_appointments"] == 0


def test_reminder_failure_does_not_stop_the_run(admin, company_user, slot, monkeypatch):
    _approved_appointment(admin, company_user, slot)

    def broken(*args, **kwargs):
        raise RuntimeError("provider down")

    monkeypatch.setattr(email_service, "send_reminder_email", broken)
    assert send_reminders(now=datetime(2026, 3, 6, 9, 0)) == {"reminders_sent": 0, "total_appointments": 1}
