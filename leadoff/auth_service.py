from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from .auth_security import hash_password, password_strength_error, verify_password
from .db import db_session
from .errors import NotFound, ValidationFailed
from .models import Therapist, User, UserRole


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def create_user(
    s: Session,
    email: str,
    password: str,
    full_name: str,
    role: UserRole,
    phone: str | None = None,
    company_id: str | None = None,
    must_change_password: bool = False,
) -> User:
    email = normalize_email(email)
    if not email or not password or not full_name.strip():
        raise ValidationFailed("Email, password and full name are required.")

    exists = s.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if exists:
        raise ValidationFailed("This email address is already registered.")

    u = User(
        email=email,
        password_hash=hash_password(password),
        full_name=full_name.strip(),
        phone=phone,
        role=role,
        company_id=company_id,
        is_active=True,
        must_change_password=must_change_password,
    )
    s.add(u)
    s.flush()
    return u


def authenticate(email: str, password: str) -> User | None:
    email = normalize_email(email)
    with db_session() as s:
        u = s.execute(select(User).where(User.email == email)).scalar_one_or_none()
        if not u or not u.is_active:
            return None
        if not verify_password(password, u.password_hash):
            return None
        return u


def get_user_by_id(user_id: str) -> User | None:
    with db_session() as s:
        return s.get(User, user_id)


def get_user_by_email(email: str) -> User | None:
    with db_session() as s:
        return s.execute(select(User).where(User.email == normalize_email(email))).scalar_one_or_none()


def therapist_id_for(s: Session, user_id: str) -> str | None:
    return s.execute(select(Therapist.id).where(Therapist.user_id == user_id)).scalar_one_or_none()


def change_password(user_id: str, current_password: str, new_password: str) -> None:
    """
    Use case: the user replaces their (initial) password.
    - current password must match
    - new password must pass the strength rule and differ from the current one
    - clears must_change_password
    """
    with db_session() as s:
        u = s.get(User, user_id)
        if not u:
            raise NotFound("User not found.")
        if not verify_password(current_password, u.password_hash):
            raise ValidationFailed("Current password is incorrect.")
        if current_password == new_password:
            raise ValidationFailed("New password must be different from the current password.")

        problem = password_strength_error(new_password)
        if problem:
            raise ValidationFailed(problem)

        u.password_hash = hash_password(new_password)
        u.must_change_password = False


def update_profile(user_id: str, full_name: str, phone: str | None) -> dict:
    if not full_name or not full_name.strip():
        raise ValidationFailed("Full name is required.")

    with db_session() as s:
        u = s.get(User, user_id)
        if not u:
            raise NotFound("User not found.")
        u.full_name = full_name.strip()
        u.phone = (phone or "").strip() or None
        s.flush()
        return user_flat(u)


def user_flat(u: User) -> dict:
    return {
        "id": u.id,
        "email": u.email,
        "full_name": u.full_name,
        "phone": u.phone,
        "role": u.role.value,
        "company_id": u.company_id,
        "is_active": u.is_active,
        "must_change_password": u.must_change_password,
    }
