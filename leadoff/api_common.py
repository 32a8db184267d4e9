from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status

from . import config
from .api_deps import get_current_user
from .master_service import list_service_menus, list_symptoms
from .models import User
from .notification_service import mark_all_read, mark_read, recent_notifications, send_reminders, unread_count
from .report_service import dashboard_summary
from .staff_service import list_therapists

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


# Notifications

@router.get("/notifications")
def api_notifications(limit: int = Query(10, ge=1, le=100), user: User = Depends(get_current_user)) -> dict[str, Any]:
    return {
        "notifications": recent_notifications(user.id, limit=limit),
        "unread_count": unread_count(user.id),
    }


@router.post("/notifications/{notification_id}/read")
def api_mark_read(notification_id: int, user: User = Depends(get_current_user)) -> dict[str, Any]:
    mark_read(user.id, notification_id)
    return {"ok": True}


@router.post("/notifications/read-all")
def api_mark_all_read(user: User = Depends(get_current_user)) -> dict[str, Any]:
    return {"ok": True, "updated": mark_all_read(user.id)}


# Dashboard

@router.get("/dashboard")
def api_dashboard(user: User = Depends(get_current_user)) -> dict[str, Any]:
    return dashboard_summary(user)


# Master lists for signed-in users

@router.get("/service-menus")
def api_service_menus(user: User = Depends(get_current_user)) -> list[dict]:
    return list_service_menus(active_only=True)


@router.get("/symptoms")
def api_symptoms(user: User = Depends(get_current_user)) -> list[dict]:
    return list_symptoms(active_only=True)


@router.get("/therapists")
def api_therapists(user: User = Depends(get_current_user)) -> list[dict]:
    return list_therapists(available_only=True)


# Scheduler

@router.get("/cron/send-reminders")
def api_cron_send_reminders(authorization: str | None = Header(None)) -> dict[str, Any]:
    if not config.CRON_SECRET or authorization != f"Bearer {config.CRON_SECRET}":
        logger.warning("Rejected cron call without a valid secret")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    result = send_reminders()
    return {"success": True, **result}
