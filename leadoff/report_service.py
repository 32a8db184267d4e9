"""
Company treatment report and role dashboards.

Aggregates the completed treatment records of one company over a period into
the figures the admin report shows: totals, averages, distributions, monthly
trend and the per-employee history. Rendering is left to the client.
Dashboards count the appointments each role sees on its landing page.
"""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from datetime import date, datetime, time, timedelta

from sqlalchemy import func, select
from sqlalchemy.orm import selectinload

from .appointment_views import appointment_flat, appointment_query
from .auth_service import therapist_id_for
from .db import db_session
from .errors import NotFound, ValidationFailed
from .models import (
    Appointment,
    AppointmentStatus,
    AvailableSlot,
    Company,
    Therapist,
    TreatmentRecord,
    TreatmentSymptom,
    User,
    UserRole,
)

logger = logging.getLogger(__name__)

LEVELS = (1, 2, 3, 4, 5)


def _avg(total: float, count: int) -> float:
    return round(total / count, 2) if count else 0.0


def _level_distribution(values: list[int]) -> list[dict]:
    counts = Counter(values)
    return [{"label": f"Level {lvl}", "level": lvl, "value": counts.get(lvl, 0)} for lvl in LEVELS]


def company_treatment_report(company_id: str, start_date: date, end_date: date) -> dict:
    if end_date < start_date:
        raise ValidationFailed("End date must not be before start date.")

    period_start = datetime.combine(start_date, time.min)
    period_end = datetime.combine(end_date, time(23, 59, 59))

    with db_session() as s:
        company = s.get(Company, company_id)
        if not company:
            raise NotFound("Company not found.")

        q = (
            select(TreatmentRecord)
            .join(Appointment, Appointment.id == TreatmentRecord.appointment_id)
            .join(AvailableSlot, AvailableSlot.id == Appointment.slot_id)
            .options(
                selectinload(TreatmentRecord.symptom_links).selectinload(TreatmentSymptom.symptom),
                selectinload(TreatmentRecord.appointment)
                .selectinload(Appointment.slot)
                .selectinload(AvailableSlot.therapist)
                .selectinload(Therapist.user),
            )
            .where(
                Appointment.company_id == company_id,
                Appointment.status == AppointmentStatus.COMPLETED,
                AvailableSlot.start_time >= period_start,
                AvailableSlot.start_time <= period_end,
            )
            .order_by(AvailableSlot.start_time.asc())
        )
        records = list(s.scalars(q))

        if not records:
            raise ValidationFailed("No treatment records in the selected period.")

        details = []
        for r in records:
            appt = r.appointment
            slot = appt.slot
            therapist_user = slot.therapist.user if slot.therapist else None
            details.append({
                "id": r.id,
                "date": slot.start_time,
                "therapist_name": therapist_user.full_name if therapist_user else "Unknown",
                "symptoms": [link.symptom.name for link in r.symptom_links if link.symptom],
                "improvement_level": r.improvement_level,
                "satisfaction_level": r.satisfaction_level,
                "treatment_content": r.treatment_content,
                "patient_condition": r.patient_condition,
                "actual_duration_minutes": r.actual_duration_minutes,
                "next_recommendation": r.next_recommendation,
                "employee_name": appt.employee_name,
                "employee_id": appt.employee_id,
            })
        company_name = company.name

    symptom_counts = Counter(name for d in details for name in d["symptoms"])
    symptom_distribution = [
        {"name": name, "count": count}
        for name, count in sorted(symptom_counts.items(), key=lambda kv: (-kv[1], kv[0]))
    ]

    monthly: dict[str, list[dict]] = defaultdict(list)
    by_employee: dict[str, list[dict]] = defaultdict(list)
    for d in details:
        monthly[d["date"].strftime("%Y-%m")].append(d)
        by_employee[d["employee_id"]].append(d)

    monthly_trends = [
        {
            "month": month,
            "appointments": len(items),
            "avg_improvement": _avg(sum(i["improvement_level"] for i in items), len(items)),
            "avg_satisfaction": _avg(sum(i["satisfaction_level"] for i in items), len(items)),
        }
        for month, items in sorted(monthly.items())
    ]

    treatments_by_employee = [
        {
            "employee_id": emp_id,
            "employee_name": items[0]["employee_name"],
            "treatments": sorted(items, key=lambda i: i["date"]),
        }
        for emp_id, items in by_employee.items()
    ]

    total = len(details)
    improvements = [d["improvement_level"] for d in details]
    satisfactions = [d["satisfaction_level"] for d in details]

    logger.info("Treatment report for %s: %d records %s..%s", company_name, total, start_date, end_date)

    return {
        "company_name": company_name,
        "start_date": start_date,
        "end_date": end_date,
        "total_appointments": total,
        "unique_employees": len(by_employee),
        "total_duration_minutes": sum(d["actual_duration_minutes"] or 0 for d in details),
        "average_improvement": _avg(sum(improvements), total),
        "average_satisfaction": _avg(sum(satisfactions), total),
        "symptom_distribution": symptom_distribution,
        "improvement_distribution": _level_distribution(improvements),
        "satisfaction_distribution": _level_distribution(satisfactions),
        "monthly_trends": monthly_trends,
        "treatments_by_employee": treatments_by_employee,
    }


# =========================
# Dashboards
# =========================
def _count(s, *criteria) -> int:
    q = (
        select(func.count(Appointment.id))
        .join(AvailableSlot, AvailableSlot.id == Appointment.slot_id)
        .where(*criteria)
    )
    return s.scalar(q) or 0


def _appointments(s, *criteria, newest_first: bool = False, limit: int | None = None) -> list[dict]:
    order = AvailableSlot.start_time.desc() if newest_first else AvailableSlot.start_time.asc()
    q = (
        appointment_query()
        .join(AvailableSlot, AvailableSlot.id == Appointment.slot_id)
        .where(*criteria)
        .order_by(order)
    )
    if limit:
        q = q.limit(limit)
    return [appointment_flat(a) for a in s.scalars(q)]


def dashboard_summary(actor: User, now: datetime | None = None) -> dict:
    """
    Landing-page figures for the signed-in user.
    - admin: today's sessions, pending requests, this week, completed this month, active companies
    - therapist: the same for their own slots, plus approved sessions still waiting for a report
    - company user: next approved appointment and this month's usage of their company
    Weeks start on Sunday.
    """
    now = now or datetime.now()
    today = datetime.combine(now.date(), time.min)
    tomorrow = today + timedelta(days=1)
    week_start = today - timedelta(days=(today.weekday() + 1) % 7)
    week_end = week_start + timedelta(days=7)
    month_start = today.replace(day=1)
    month_end = (month_start + timedelta(days=32)).replace(day=1)

    booked = Appointment.status.in_((AppointmentStatus.APPROVED, AppointmentStatus.COMPLETED))
    completed = Appointment.status == AppointmentStatus.COMPLETED
    pending = Appointment.status == AppointmentStatus.PENDING
    today_range = (AvailableSlot.start_time >= today, AvailableSlot.start_time < tomorrow)
    week_range = (AvailableSlot.start_time >= week_start, AvailableSlot.start_time < week_end)
    month_range = (AvailableSlot.start_time >= month_start, AvailableSlot.start_time < month_end)

    with db_session() as s:
        if actor.role == UserRole.ADMIN:
            todays = _appointments(s, booked, *today_range)
            return {
                "role": actor.role.value,
                "today_count": len(todays),
                "today_appointments": todays,
                "pending_count": _count(s, pending),
                "week_count": _count(s, booked, *week_range),
                "month_completed_count": _count(s, completed, *month_range),
                "active_companies": s.scalar(
                    select(func.count(Company.id)).where(Company.is_active.is_(True))
                ) or 0,
            }

        if actor.role == UserRole.THERAPIST:
            therapist_id = therapist_id_for(s, actor.id)
            if not therapist_id:
                raise NotFound("Therapist profile not found.")
            own = AvailableSlot.therapist_id == therapist_id
            todays = _appointments(
                s, own, Appointment.status.in_((AppointmentStatus.PENDING, AppointmentStatus.APPROVED)), *today_range
            )
            return {
                "role": actor.role.value,
                "today_count": len(todays),
                "today_appointments": todays,
                "pending_count": _count(s, own, pending),
                "week_count": _count(s, own, booked, *week_range),
                "month_completed_count": _count(s, own, completed, *month_range),
                "awaiting_report": _appointments(
                    s, own, Appointment.status == AppointmentStatus.APPROVED, AvailableSlot.end_time < now,
                    newest_first=True, limit=10,
                ),
            }

        company = s.get(Company, actor.company_id) if actor.company_id else None
        if not company:
            raise NotFound("Company not found.")
        mine = Appointment.company_id == company.id
        upcoming = _appointments(
            s, mine, Appointment.status == AppointmentStatus.APPROVED, AvailableSlot.start_time >= today, limit=1
        )
        return {
            "role": actor.role.value,
            "company_name": company.name,
            "next_appointment": upcoming[0] if upcoming else None,
            "month_appointments": _count(s, mine, booked, *month_range),
            "month_completed_count": _count(s, mine, completed, *month_range),
        }
