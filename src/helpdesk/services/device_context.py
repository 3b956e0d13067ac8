from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Tuple

from ..domain.errors import ValidationFailed
from ..domain.models import Device, from_record
from ..infrastructure.record_store import RecordStore, get_record_store


logger = logging.getLogger(__name__)

DEVICES = "devices"


@dataclass(frozen=True)
class DeviceInfo:
    brand: str
    model: str


# Device context is an optional enrichment; lookups degrade to this value.
UNKNOWN_DEVICE = DeviceInfo(brand="Unknown", model="Unknown")


class DeviceDirectory:
    """One device record per user, read to personalise generated answers."""

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    async def get(self, user_id: str) -> DeviceInfo:
        """Return the user's device or :data:`UNKNOWN_DEVICE`. Never raises."""

        if not user_id:
            return UNKNOWN_DEVICE
        try:
            doc = await self._store.find_one(DEVICES, {"user_id": user_id})
        except Exception:
            logger.exception("Error fetching device info for user %s", user_id)
            return UNKNOWN_DEVICE
        if not doc:
            return UNKNOWN_DEVICE
        return DeviceInfo(brand=str(doc.get("brand") or "Unknown"), model=str(doc.get("model") or "Unknown"))

    async def exists(self, user_id: str) -> bool:
        if not user_id:
            return False
        try:
            return await self._store.find_one(DEVICES, {"user_id": user_id}) is not None
        except Exception:
            logger.exception("Error checking device info for user %s", user_id)
            return False

    async def find(self, user_id: str) -> Optional[Device]:
        doc = await self._store.find_one(DEVICES, {"user_id": user_id})
        return from_record(Device, doc) if doc else None

    async def register(self, user_id: str, brand: str, model: str) -> Tuple[Device, bool]:
        """Create-or-update on the unique user key; returns (device, created)."""

        now = datetime.now(timezone.utc)
        doc, created = await self._store.upsert(
            DEVICES,
            {"user_id": user_id},
            {"brand": brand, "model": model, "updated_at": now},
            on_insert={"created_at": now},
        )
        logger.info("%s device for user %s", "Registered" if created else "Updated", user_id)
        return from_record(Device, doc), created

    async def update(self, user_id: str, brand: Optional[str] = None, model: Optional[str] = None) -> Optional[Device]:
        if not brand and not model:
            raise ValidationFailed("At least one field (brand or model) must be provided for update")
        values = {"updated_at": datetime.now(timezone.utc)}
        if brand:
            values["brand"] = brand
        if model:
            values["model"] = model
        doc = await self._store.update(DEVICES, {"user_id": user_id}, values)
        return from_record(Device, doc) if doc else None


def get_device_directory() -> DeviceDirectory:
    return DeviceDirectory(get_record_store())
