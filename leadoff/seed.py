from __future__ import annotations

import logging

from sqlalchemy import select

from .auth_service import create_user, normalize_email
from .config import ADMIN_EMAIL, ADMIN_NAME, ADMIN_PASSWORD
from .db import db_session
from .models import ServiceMenu, Symptom, User, UserRole

logger = logging.getLogger(__name__)

SYMPTOMS = [
    "Stiff shoulders",
    "Lower back pain",
    "Neck pain",
    "Headache",
    "Eye strain",
    "Fatigue",
    "Poor sleep",
    "Leg swelling",
]

SERVICE_MENUS = [
    ("Body care 30", 30, 3000, "Short session focused on one area."),
    ("Body care 45", 45, 4500, None),
    ("Body care 60", 60, 6000, "Full-body session."),
]


def seed_base() -> None:
    """
    Populate the minimum master data (idempotent):
    - symptoms
    - service menus
    """
    with db_session() as s:
        for order, name in enumerate(SYMPTOMS, start=1):
            if s.execute(select(Symptom).where(Symptom.name == name)).scalar_one_or_none() is None:
                s.add(Symptom(name=name, display_order=order, is_active=True))

        for name, minutes, price, description in SERVICE_MENUS:
            if s.execute(select(ServiceMenu).where(ServiceMenu.name == name)).scalar_one_or_none() is None:
                s.add(ServiceMenu(name=name, duration_minutes=minutes, price=price, description=description))


def ensure_admin(email: str | None = None, password: str | None = None, full_name: str | None = None) -> bool:
    """Create the administrator account if missing. True when created."""
    email = normalize_email(email or ADMIN_EMAIL)
    password = password or ADMIN_PASSWORD
    if not password:
        logger.warning("ADMIN_PASSWORD not set: administrator %s not created", email)
        return False

    with db_session() as s:
        if s.execute(select(User).where(User.email == email)).scalar_one_or_none() is not None:
            return False
        create_user(s, email=email, password=password, full_name=full_name or ADMIN_NAME, role=UserRole.ADMIN)

    logger.info("Administrator %s created", email)
    return True
