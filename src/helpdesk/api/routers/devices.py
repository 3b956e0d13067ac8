from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from ...domain.errors import HelpdeskError
from ...domain.models import Device, DeviceRegistration, DeviceUpdate
from ...services.device_context import DeviceDirectory, get_device_directory
from ..errors import to_http

router = APIRouter(prefix="/device", tags=["device"])

NO_DEVICE = "No device information found for this user"


@router.post("", response_model=Device)
async def register_device(
    req: DeviceRegistration,
    response: Response,
    devices: DeviceDirectory = Depends(get_device_directory),
) -> Device:
    try:
        device, created = await devices.register(req.user_id, req.brand, req.model)
    except HelpdeskError as exc:
        raise to_http(exc, "Failed to save device information")
    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    return device


@router.get("", response_model=Device)
async def get_device(
    user_id: str = Query(alias="userId", min_length=1),
    devices: DeviceDirectory = Depends(get_device_directory),
) -> Device:
    try:
        device = await devices.find(user_id)
    except HelpdeskError as exc:
        raise to_http(exc, "Failed to fetch device information")
    if device is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NO_DEVICE)
    return device


@router.put("", response_model=Device)
async def update_device(
    req: DeviceUpdate,
    devices: DeviceDirectory = Depends(get_device_directory),
) -> Device:
    try:
        device = await devices.update(req.user_id, brand=req.brand, model=req.model)
    except HelpdeskError as exc:
        raise to_http(exc, "Failed to update device information")
    if device is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NO_DEVICE)
    return device
