from __future__ import annotations

import logging
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import BaseModel, Field

from . import api_admin, api_booking, api_common
from .api_deps import get_authenticated_user
from .auth_security import create_access_token
from .auth_service import authenticate, change_password, update_profile, user_flat
from .config import LOG_LEVEL
from .db import init_db
from .errors import ServiceError
from .models import User
from .seed import ensure_admin, seed_base

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="LeadOff Booking API", version="1.0.0")


# Startup

@app.on_event("startup")
def startup() -> None:
    # tables + master data + administrator (idempotent)
    init_db()
    seed_base()
    ensure_admin()


# Errors

@app.exception_handler(ServiceError)
def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s -> %d: %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# Auth schemas

class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"
    must_change_password: bool = False


class MeOut(BaseModel):
    id: str
    email: str
    full_name: str
    phone: str | None = None
    role: str
    company_id: str | None = None
    is_active: bool
    must_change_password: bool


class ProfileIn(BaseModel):
    full_name: str = Field(..., min_length=1)
    phone: str | None = None


class PasswordChangeIn(BaseModel):
    current_password: str
    new_password: str


# AUTH endpoints

@app.post("/api/auth/login", response_model=TokenOut)
def login(form: OAuth2PasswordRequestForm = Depends()) -> TokenOut:
    u = authenticate(form.username, form.password)
    if not u:
        logger.info("Failed sign-in for %s", form.username)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")

    token = create_access_token(subject=u.id, extra={"role": u.role.value})
    return TokenOut(access_token=token, must_change_password=u.must_change_password)


@app.get("/api/me", response_model=MeOut)
def me(user: User = Depends(get_authenticated_user)) -> MeOut:
    return MeOut(**user_flat(user))


@app.put("/api/me", response_model=MeOut)
def update_me(payload: ProfileIn, user: User = Depends(get_authenticated_user)) -> MeOut:
    return MeOut(**update_profile(user.id, payload.full_name, payload.phone))


@app.post("/api/me/password")
def change_my_password(payload: PasswordChangeIn, user: User = Depends(get_authenticated_user)) -> dict[str, Any]:
    change_password(user.id, payload.current_password, payload.new_password)
    return {"ok": True}


app.include_router(api_common.router)
app.include_router(api_booking.router)
app.include_router(api_admin.router)
