from __future__ import annotations

from typing import Callable

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from .auth_security import get_subject
from .auth_service import get_user_by_id
from .models import User, UserRole

# OAuth2 Bearer (Authorization: Bearer <token>)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


def get_authenticated_user(token: str = Depends(oauth2_scheme)) -> User:
    """Valid token and active account; no password-change gate."""
    # extra guard: stray spaces / quotes pasted with the token
    token = token.strip().strip('"').strip("'")

    user_id = get_subject(token)
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    u = get_user_by_id(user_id)
    if not u or not u.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid user")
    return u


def get_current_user(user: User = Depends(get_authenticated_user)) -> User:
    """Signed-in user who is done with the initial password."""
    if user.must_change_password:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Password change required before using the application.",
        )
    return user


def require_roles(*roles: UserRole) -> Callable[..., User]:
    """Dependency factory: `Depends(require_roles(UserRole.ADMIN))`."""
    allowed = frozenset(roles)

    def guard(user: User = Depends(get_current_user)) -> User:
        if user.role not in allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed for your role")
        return user

    return guard


require_admin = require_roles(UserRole.ADMIN)
