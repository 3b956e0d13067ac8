from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from ...domain.errors import InvalidCredentials
from ...domain.models import LoginRequest, LoginResponse, PrincipalOut
from ...security.auth import (
    Principal,
    SessionManager,
    get_bearer_token,
    get_current_principal,
    get_session_manager,
)

router = APIRouter(tags=["auth"])


@router.post("/login", response_model=LoginResponse)
async def login(req: LoginRequest, manager: SessionManager = Depends(get_session_manager)) -> LoginResponse:
    try:
        principal = await manager.authenticate(req.username, req.password)
    except InvalidCredentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    issued = await manager.issue_session(principal.user_id, principal.role)
    return LoginResponse(token=issued.token, user=PrincipalOut(id=principal.user_id, role=principal.role))


@router.post("/logout")
async def logout(
    token: str = Depends(get_bearer_token),
    _principal: Principal = Depends(get_current_principal),
    manager: SessionManager = Depends(get_session_manager),
) -> dict:
    await manager.revoke(token)
    return {"message": "Logged out"}


@router.get("/auth/me", response_model=PrincipalOut)
def me(principal: Principal = Depends(get_current_principal)) -> PrincipalOut:
    return PrincipalOut(id=principal.user_id, role=principal.role)
