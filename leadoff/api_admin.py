from __future__ import annotations

from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from .api_deps import require_admin
from .master_service import (
    create_company,
    create_service_menu,
    create_symptom,
    deactivate_company,
    deactivate_service_menu,
    deactivate_symptom,
    get_company,
    list_companies,
    list_service_menus,
    list_symptoms,
    update_company,
    update_service_menu,
    update_symptom,
)
from .report_service import company_treatment_report
from .staff_service import (
    add_therapist_profile,
    create_company_user,
    create_therapist,
    deactivate_company_user,
    deactivate_therapist,
    get_therapist,
    list_company_users,
    list_therapists,
    reset_company_user_password,
    update_company_user,
    update_therapist,
)

# every route here is admin-only
router = APIRouter(prefix="/api/admin", dependencies=[Depends(require_admin)])


# Schemas

class CompanyIn(BaseModel):
    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    address: str | None = None
    phone: str | None = None
    contract_start_date: date | None = None
    contract_end_date: date | None = None
    notes: str | None = None
    is_active: bool | None = None


class ServiceMenuIn(BaseModel):
    name: str = Field(..., min_length=1)
    duration_minutes: int = Field(..., gt=0)
    price: int = Field(..., ge=0)
    description: str | None = None
    is_active: bool | None = None


class SymptomIn(BaseModel):
    name: str = Field(..., min_length=1)
    display_order: int | None = Field(None, ge=0)
    is_active: bool | None = None


class TherapistIn(BaseModel):
    email: str = Field(..., min_length=3)
    full_name: str = Field(..., min_length=1)
    phone: str | None = None
    license_number: str | None = None
    specialties: list[str] | str | None = None
    bio: str | None = None


class TherapistProfileIn(BaseModel):
    user_id: str
    license_number: str | None = None
    specialties: list[str] | str | None = None
    bio: str | None = None


class TherapistUpdateIn(BaseModel):
    full_name: str = Field(..., min_length=1)
    phone: str | None = None
    license_number: str | None = None
    specialties: list[str] | str | None = None
    bio: str | None = None
    is_available: bool | None = None


class CompanyUserIn(BaseModel):
    email: str = Field(..., min_length=3)
    full_name: str = Field(..., min_length=1)
    company_id: str
    phone: str | None = None


class CompanyUserUpdateIn(BaseModel):
    full_name: str = Field(..., min_length=1)
    company_id: str
    phone: str | None = None
    is_active: bool | None = None


# Companies

@router.get("/companies")
def api_companies(active_only: bool = False) -> list[dict]:
    return list_companies(active_only=active_only)


@router.get("/companies/{company_id}")
def api_company(company_id: str) -> dict[str, Any]:
    return get_company(company_id)


@router.post("/companies", status_code=status.HTTP_201_CREATED)
def api_create_company(payload: CompanyIn) -> dict[str, Any]:
    return create_company(**payload.model_dump(exclude={"is_active"}))


@router.put("/companies/{company_id}")
def api_update_company(company_id: str, payload: CompanyIn) -> dict[str, Any]:
    return update_company(company_id, **payload.model_dump())


@router.delete("/companies/{company_id}")
def api_deactivate_company(company_id: str) -> dict[str, Any]:
    deactivate_company(company_id)
    return {"ok": True}


# Service menus

@router.get("/service-menus")
def api_admin_menus(active_only: bool = False) -> list[dict]:
    return list_service_menus(active_only=active_only)


@router.post("/service-menus", status_code=status.HTTP_201_CREATED)
def api_create_menu(payload: ServiceMenuIn) -> dict[str, Any]:
    return create_service_menu(**payload.model_dump(exclude={"is_active"}))


@router.put("/service-menus/{menu_id}")
def api_update_menu(menu_id: str, payload: ServiceMenuIn) -> dict[str, Any]:
    return update_service_menu(menu_id, **payload.model_dump())


@router.delete("/service-menus/{menu_id}")
def api_deactivate_menu(menu_id: str) -> dict[str, Any]:
    deactivate_service_menu(menu_id)
    return {"ok": True}


# Symptoms

@router.get("/symptoms")
def api_admin_symptoms(active_only: bool = False) -> list[dict]:
    return list_symptoms(active_only=active_only)


@router.post("/symptoms", status_code=status.HTTP_201_CREATED)
def api_create_symptom(payload: SymptomIn) -> dict[str, Any]:
    return create_symptom(payload.name, payload.display_order)


@router.put("/symptoms/{symptom_id}")
def api_update_symptom(symptom_id: str, payload: SymptomIn) -> dict[str, Any]:
    return update_symptom(symptom_id, payload.name, payload.display_order or 0, payload.is_active)


@router.delete("/symptoms/{symptom_id}")
def api_deactivate_symptom(symptom_id: str) -> dict[str, Any]:
    deactivate_symptom(symptom_id)
    return {"ok": True}


# Therapists

@router.get("/therapists")
def api_admin_therapists() -> list[dict]:
    return list_therapists()


@router.get("/therapists/{therapist_id}")
def api_admin_therapist(therapist_id: str) -> dict[str, Any]:
    return get_therapist(therapist_id)


@router.post("/therapists", status_code=status.HTTP_201_CREATED)
def api_create_therapist(payload: TherapistIn) -> dict[str, Any]:
    return create_therapist(**payload.model_dump())


@router.post("/therapists/profile", status_code=status.HTTP_201_CREATED)
def api_add_therapist_profile(payload: TherapistProfileIn) -> dict[str, Any]:
    return add_therapist_profile(**payload.model_dump())


@router.put("/therapists/{therapist_id}")
def api_update_therapist(therapist_id: str, payload: TherapistUpdateIn) -> dict[str, Any]:
    return update_therapist(therapist_id, **payload.model_dump())


@router.delete("/therapists/{therapist_id}")
def api_deactivate_therapist(therapist_id: str) -> dict[str, Any]:
    deactivate_therapist(therapist_id)
    return {"ok": True}


# Company users

@router.get("/company-users")
def api_company_users(company_id: str | None = None) -> list[dict]:
    return list_company_users(company_id=company_id)


@router.post("/company-users", status_code=status.HTTP_201_CREATED)
def api_create_company_user(payload: CompanyUserIn) -> dict[str, Any]:
    return create_company_user(**payload.model_dump())


@router.put("/company-users/{user_id}")
def api_update_company_user(user_id: str, payload: CompanyUserUpdateIn) -> dict[str, Any]:
    return update_company_user(user_id, **payload.model_dump())


@router.delete("/company-users/{user_id}")
def api_deactivate_company_user(user_id: str) -> dict[str, Any]:
    deactivate_company_user(user_id)
    return {"ok": True}


@router.post("/users/{user_id}/reset-password")
def api_reset_password(user_id: str) -> dict[str, Any]:
    return reset_company_user_password(user_id)


# Reports

@router.get("/reports/company-treatment")
def api_company_report(
    company_id: str = Query(...),
    start_date: date = Query(...),
    end_date: date = Query(...),
) -> dict[str, Any]:
    return company_treatment_report(company_id, start_date, end_date)
