from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ...domain.models import UserData
from ...security.auth import Principal, get_current_principal
from ...security.rbac import can_access_user
from ...services.user_data import export_user_data

router = APIRouter(tags=["user-data"])


@router.get("/user-data", response_model=UserData)
async def user_data(
    user_id: str = Query(alias="userId", min_length=1),
    principal: Principal = Depends(get_current_principal),
) -> UserData:
    if not can_access_user(principal, user_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You do not have permission to access this data",
        )
    return await export_user_data(user_id)
