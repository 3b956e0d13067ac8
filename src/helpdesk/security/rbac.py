from __future__ import annotations

"""Role checks layered on top of the authenticated-principal dependency."""
from enum import Enum
from typing import Awaitable, Callable

from fastapi import Depends, HTTPException, status

from ..domain.errors import Forbidden
from .auth import Principal, get_current_principal


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"


def ensure_role(principal: Principal, required: Role) -> Principal:
    if principal.role == Role.ADMIN.value:
        return principal
    if principal.role != required.value:
        raise Forbidden(f"Forbidden - {required.value.capitalize()} access required")
    return principal


def can_access_user(principal: Principal, user_id: str) -> bool:
    return principal.role == Role.ADMIN.value or principal.user_id == user_id


def require_role(required: Role) -> Callable[..., Awaitable[Principal]]:
    """FastAPI dependency composing the base auth check with a role check."""

    async def dependency(principal: Principal = Depends(get_current_principal)) -> Principal:
        try:
            return ensure_role(principal, required)
        except Forbidden as exc:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))

    return dependency


require_admin = require_role(Role.ADMIN)
