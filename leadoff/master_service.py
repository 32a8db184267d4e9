from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import func, select

from .db import db_session
from .errors import NotFound, ValidationFailed
from .models import Company, ServiceMenu, Symptom

logger = logging.getLogger(__name__)


def _clean(value: str | None) -> str | None:
    return (value or "").strip() or None


# =========================
# Companies
# =========================
def company_flat(c: Company) -> dict:
    return {
        "id": c.id,
        "name": c.name,
        "address": c.address,
        "phone": c.phone,
        "email": c.email,
        "contract_start_date": c.contract_start_date,
        "contract_end_date": c.contract_end_date,
        "notes": c.notes,
        "is_active": c.is_active,
    }


def _check_contract(start: date | None, end: date | None) -> None:
    if start and end and end < start:
        raise ValidationFailed("Contract end date must not be before the start date.")


def create_company(
    name: str,
    email: str,
    address: str | None = None,
    phone: str | None = None,
    contract_start_date: date | None = None,
    contract_end_date: date | None = None,
    notes: str | None = None,
) -> dict:
    if not _clean(name) or not _clean(email):
        raise ValidationFailed("Company name and email are required.")
    _check_contract(contract_start_date, contract_end_date)

    with db_session() as s:
        c = Company(
            name=name.strip(),
            email=email.strip().lower(),
            address=_clean(address),
            phone=_clean(phone),
            contract_start_date=contract_start_date,
            contract_end_date=contract_end_date,
            notes=_clean(notes),
            is_active=True,
        )
        s.add(c)
        s.flush()
        logger.info("Company created: %s", c.name)
        return company_flat(c)


def update_company(
    company_id: str,
    name: str,
    email: str,
    address: str | None = None,
    phone: str | None = None,
    contract_start_date: date | None = None,
    contract_end_date: date | None = None,
    notes: str | None = None,
    is_active: bool | None = None,
) -> dict:
    if not _clean(name) or not _clean(email):
        raise ValidationFailed("Company name and email are required.")
    _check_contract(contract_start_date, contract_end_date)

    with db_session() as s:
        c = s.get(Company, company_id)
        if not c:
            raise NotFound("Company not found.")
        c.name = name.strip()
        c.email = email.strip().lower()
        c.address = _clean(address)
        c.phone = _clean(phone)
        c.contract_start_date = contract_start_date
        c.contract_end_date = contract_end_date
        c.notes = _clean(notes)
        if is_active is not None:
            c.is_active = is_active
        s.flush()
        return company_flat(c)


def deactivate_company(company_id: str) -> None:
    """Logical delete: bookings and users keep pointing at the row."""
    with db_session() as s:
        c = s.get(Company, company_id)
        if not c:
            raise NotFound("Company not found.")
        c.is_active = False
        logger.info("Company deactivated: %s", c.name)


def get_company(company_id: str) -> dict:
    with db_session() as s:
        c = s.get(Company, company_id)
        if not c:
            raise NotFound("Company not found.")
        return company_flat(c)


def list_companies(active_only: bool = False) -> list[dict]:
    with db_session() as s:
        q = select(Company).order_by(Company.name)
        if active_only:
            q = q.where(Company.is_active.is_(True))
        return [company_flat(c) for c in s.scalars(q)]


# =========================
# Service menus
# =========================
def menu_flat(m: ServiceMenu) -> dict:
    return {
        "id": m.id,
        "name": m.name,
        "duration_minutes": m.duration_minutes,
        "price": m.price,
        "description": m.description,
        "is_active": m.is_active,
    }


def _check_menu(name: str, duration_minutes: int, price: int) -> None:
    if not _clean(name):
        raise ValidationFailed("Service menu name is required.")
    if duration_minutes is None or duration_minutes <= 0:
        raise ValidationFailed("Duration must be greater than zero.")
    if price is None or price < 0:
        raise ValidationFailed("Price must not be negative.")


def create_service_menu(name: str, duration_minutes: int, price: int, description: str | None = None) -> dict:
    _check_menu(name, duration_minutes, price)
    with db_session() as s:
        m = ServiceMenu(
            name=name.strip(),
            duration_minutes=duration_minutes,
            price=price,
            description=_clean(description),
            is_active=True,
        )
        s.add(m)
        s.flush()
        return menu_flat(m)


def update_service_menu(
    menu_id: str,
    name: str,
    duration_minutes: int,
    price: int,
    description: str | None = None,
    is_active: bool | None = None,
) -> dict:
    _check_menu(name, duration_minutes, price)
    with db_session() as s:
        m = s.get(ServiceMenu, menu_id)
        if not m:
            raise NotFound("Service menu not found.")
        m.name = name.strip()
        m.duration_minutes = duration_minutes
        m.price = price
        m.description = _clean(description)
        if is_active is not None:
            m.is_active = is_active
        s.flush()
        return menu_flat(m)


def deactivate_service_menu(menu_id: str) -> None:
    with db_session() as s:
        m = s.get(ServiceMenu, menu_id)
        if not m:
            raise NotFound("Service menu not found.")
        m.is_active = False


def list_service_menus(active_only: bool = True) -> list[dict]:
    with db_session() as s:
        q = select(ServiceMenu).order_by(ServiceMenu.duration_minutes, ServiceMenu.name)
        if active_only:
            q = q.where(ServiceMenu.is_active.is_(True))
        return [menu_flat(m) for m in s.scalars(q)]


# =========================
# Symptoms
# =========================
def symptom_flat(x: Symptom) -> dict:
    return {"id": x.id, "name": x.name, "display_order": x.display_order, "is_active": x.is_active}


def _name_taken(s, name: str, exclude_id: str | None = None) -> bool:
    q = select(Symptom.id).where(Symptom.name == name)
    if exclude_id:
        q = q.where(Symptom.id != exclude_id)
    return s.execute(q).first() is not None


def create_symptom(name: str, display_order: int | None = None) -> dict:
    """display_order missing or 0: appended after the last symptom."""
    name = _clean(name)
    if not name:
        raise ValidationFailed("Symptom name is required.")
    if display_order is not None and display_order < 0:
        raise ValidationFailed("Display order must not be negative.")

    with db_session() as s:
        if _name_taken(s, name):
            raise ValidationFailed("A symptom with this name already exists.")
        if not display_order:
            current = s.execute(select(func.max(Symptom.display_order))).scalar()
            display_order = (current or 0) + 1

        x = Symptom(name=name, display_order=display_order, is_active=True)
        s.add(x)
        s.flush()
        return symptom_flat(x)


def update_symptom(symptom_id: str, name: str, display_order: int, is_active: bool | None = None) -> dict:
    name = _clean(name)
    if not name:
        raise ValidationFailed("Symptom name is required.")
    if display_order is None or display_order < 0:
        raise ValidationFailed("Display order must not be negative.")

    with db_session() as s:
        x = s.get(Symptom, symptom_id)
        if not x:
            raise NotFound("Symptom not found.")
        if _name_taken(s, name, exclude_id=symptom_id):
            raise ValidationFailed("A symptom with this name already exists.")
        x.name = name
        x.display_order = display_order
        if is_active is not None:
            x.is_active = is_active
        s.flush()
        return symptom_flat(x)


def deactivate_symptom(symptom_id: str) -> None:
    with db_session() as s:
        x = s.get(Symptom, symptom_id)
        if not x:
            raise NotFound("Symptom not found.")
        x.is_active = False


def list_symptoms(active_only: bool = True) -> list[dict]:
    with db_session() as s:
        q = select(Symptom).order_by(Symptom.display_order, Symptom.name)
        if active_only:
            q = q.where(Symptom.is_active.is_(True))
        return [symptom_flat(x) for x in s.scalars(q)]
