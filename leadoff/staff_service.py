from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from .auth_security import generate_initial_password, hash_password
from .auth_service import create_user, normalize_email, user_flat
from .config import DEMO_EMAIL_DOMAIN
from .db import db_session
from .errors import Conflict, NotFound, ValidationFailed
from .models import Company, Therapist, User, UserRole

logger = logging.getLogger(__name__)


def _needs_password_change(email: str) -> bool:
    # demo accounts keep their initial password
    return not email.endswith(DEMO_EMAIL_DOMAIN)


def parse_specialties(value: str | list[str] | None) -> list[str] | None:
    """'a, b,,c' or ['a', 'b'] -> ['a', 'b', 'c']; nothing left -> None."""
    if value is None:
        return None
    items = value.split(",") if isinstance(value, str) else value
    cleaned = [x.strip() for x in items if x and x.strip()]
    return cleaned or None


# =========================
# Therapists
# =========================
def therapist_flat(t: Therapist) -> dict:
    u = t.user
    return {
        "id": t.id,
        "user_id": t.user_id,
        "email": u.email if u else None,
        "full_name": u.full_name if u else None,
        "phone": u.phone if u else None,
        "is_active": u.is_active if u else False,
        "license_number": t.license_number,
        "specialties": list(t.specialties or []),
        "bio": t.bio,
        "is_available": t.is_available,
    }


def create_therapist(
    email: str,
    full_name: str,
    phone: str | None = None,
    license_number: str | None = None,
    specialties: str | list[str] | None = None,
    bio: str | None = None,
) -> dict:
    """
    Use case: register a therapist.
    - existing therapist or admin with that email: Conflict
    - existing company user: promoted to therapist (keeps their password)
    - otherwise a new account with a generated initial password
    Returns the therapist plus `initial_password` (None when promoted).
    """
    email = normalize_email(email)
    if not email or not (full_name or "").strip():
        raise ValidationFailed("Email and full name are required.")

    initial_password: str | None = None

    with db_session() as s:
        u = s.execute(select(User).where(User.email == email)).scalar_one_or_none()

        if u is not None:
            if u.role == UserRole.THERAPIST:
                raise Conflict("This email is already registered as a therapist.")
            if u.role == UserRole.ADMIN:
                raise Conflict("This email belongs to an administrator and cannot become a therapist.")

            u.role = UserRole.THERAPIST
            u.company_id = None
            u.full_name = full_name.strip()
            if phone:
                u.phone = phone.strip()
            logger.info("User %s promoted to therapist", email)
        else:
            initial_password = generate_initial_password()
            u = create_user(
                s,
                email=email,
                password=initial_password,
                full_name=full_name,
                role=UserRole.THERAPIST,
                phone=(phone or "").strip() or None,
                must_change_password=_needs_password_change(email),
            )
            logger.info("Therapist account created: %s", email)

        t = Therapist(
            user_id=u.id,
            license_number=(license_number or "").strip() or None,
            specialties=parse_specialties(specialties),
            bio=(bio or "").strip() or None,
            is_available=True,
        )
        s.add(t)
        s.flush()
        s.refresh(t)
        out = therapist_flat(t)

    out["initial_password"] = initial_password
    return out


def add_therapist_profile(
    user_id: str,
    license_number: str | None = None,
    specialties: str | list[str] | None = None,
    bio: str | None = None,
) -> dict:
    """Attach a therapist profile to an existing user."""
    with db_session() as s:
        u = s.get(User, user_id)
        if not u:
            raise NotFound("User not found.")
        if u.role == UserRole.ADMIN:
            raise Conflict("Administrators cannot become therapists.")
        exists = s.execute(select(Therapist.id).where(Therapist.user_id == user_id)).first()
        if exists:
            raise Conflict("This user is already registered as a therapist.")

        u.role = UserRole.THERAPIST
        u.company_id = None
        t = Therapist(
            user_id=user_id,
            license_number=(license_number or "").strip() or None,
            specialties=parse_specialties(specialties),
            bio=(bio or "").strip() or None,
            is_available=True,
        )
        s.add(t)
        s.flush()
        s.refresh(t)
        return therapist_flat(t)


def update_therapist(
    therapist_id: str,
    full_name: str,
    phone: str | None = None,
    license_number: str | None = None,
    specialties: str | list[str] | None = None,
    bio: str | None = None,
    is_available: bool | None = None,
) -> dict:
    if not (full_name or "").strip():
        raise ValidationFailed("Full name is required.")

    with db_session() as s:
        t = s.get(Therapist, therapist_id)
        if not t:
            raise NotFound("Therapist not found.")
        t.user.full_name = full_name.strip()
        t.user.phone = (phone or "").strip() or None
        t.license_number = (license_number or "").strip() or None
        t.specialties = parse_specialties(specialties)
        t.bio = (bio or "").strip() or None
        if is_available is not None:
            t.is_available = is_available
        s.flush()
        return therapist_flat(t)


def deactivate_therapist(therapist_id: str) -> None:
    """Logical delete: the account can no longer sign in and takes no new slots."""
    with db_session() as s:
        t = s.get(Therapist, therapist_id)
        if not t:
            raise NotFound("Therapist not found.")
        t.is_available = False
        t.user.is_active = False
        logger.info("Therapist %s deactivated", t.user.email)


def get_therapist(therapist_id: str) -> dict:
    with db_session() as s:
        t = s.get(Therapist, therapist_id)
        if not t:
            raise NotFound("Therapist not found.")
        return therapist_flat(t)


def list_therapists(available_only: bool = False) -> list[dict]:
    with db_session() as s:
        q = (
            select(Therapist)
            .join(User, User.id == Therapist.user_id)
            .options(selectinload(Therapist.user))
            .order_by(User.full_name)
        )
        if available_only:
            q = q.where(Therapist.is_available.is_(True), User.is_active.is_(True))
        return [therapist_flat(t) for t in s.scalars(q)]


# =========================
# Company users
# =========================
def company_user_flat(u: User) -> dict:
    out = user_flat(u)
    out["company_name"] = u.company.name if u.company else None
    return out


def create_company_user(email: str, full_name: str, company_id: str, phone: str | None = None) -> dict:
    """Returns the user plus the generated `initial_password`, shown once."""
    email = normalize_email(email)
    if not email or not (full_name or "").strip() or not company_id:
        raise ValidationFailed("Email, full name and company are required.")

    initial_password = generate_initial_password()

    with db_session() as s:
        if not s.get(Company, company_id):
            raise NotFound("Company not found.")
        if s.execute(select(User.id).where(User.email == email)).first():
            raise Conflict("This email address is already registered.")

        u = create_user(
            s,
            email=email,
            password=initial_password,
            full_name=full_name,
            role=UserRole.COMPANY_USER,
            phone=(phone or "").strip() or None,
            company_id=company_id,
            must_change_password=_needs_password_change(email),
        )
        s.refresh(u)
        out = company_user_flat(u)

    logger.info("Company user created: %s", email)
    out["initial_password"] = initial_password
    return out


def _get_company_user(s, user_id: str) -> User:
    u = s.get(User, user_id)
    if not u:
        raise NotFound("Company user not found.")
    if u.role != UserRole.COMPANY_USER:
        raise ValidationFailed("This operation is only available for company users.")
    return u


def update_company_user(
    user_id: str,
    full_name: str,
    company_id: str,
    phone: str | None = None,
    is_active: bool | None = None,
) -> dict:
    if not (full_name or "").strip() or not company_id:
        raise ValidationFailed("Full name and company are required.")

    with db_session() as s:
        u = _get_company_user(s, user_id)
        if not s.get(Company, company_id):
            raise NotFound("Company not found.")
        u.full_name = full_name.strip()
        u.phone = (phone or "").strip() or None
        u.company_id = company_id
        if is_active is not None:
            u.is_active = is_active
        s.flush()
        s.refresh(u)
        return company_user_flat(u)


def deactivate_company_user(user_id: str) -> None:
    with db_session() as s:
        u = _get_company_user(s, user_id)
        u.is_active = False


def list_company_users(company_id: str | None = None) -> list[dict]:
    with db_session() as s:
        q = (
            select(User)
            .options(selectinload(User.company))
            .where(User.role == UserRole.COMPANY_USER)
            .order_by(User.full_name)
        )
        if company_id:
            q = q.where(User.company_id == company_id)
        return [company_user_flat(u) for u in s.scalars(q)]


def reset_company_user_password(user_id: str) -> dict:
    """New initial password for a company user; they must change it at next sign-in."""
    new_password = generate_initial_password()
    with db_session() as s:
        u = _get_company_user(s, user_id)
        u.password_hash = hash_password(new_password)
        u.must_change_password = True
        email = u.email

    logger.info("Password reset for company user %s", email)
    return {"user_id": user_id, "email": email, "initial_password": new_password}
