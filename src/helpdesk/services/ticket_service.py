from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..domain.errors import HelpdeskError
from ..domain.models import Ticket, TicketCreate, TicketUpdate, from_record
from ..infrastructure.record_store import RecordStore, get_record_store


logger = logging.getLogger(__name__)

TICKETS = "tickets"


class TicketNotFound(HelpdeskError):
    def __init__(self, ticket_id: str) -> None:
        super().__init__("Ticket not found")
        self.ticket_id = ticket_id


class TicketClosed(HelpdeskError):
    def __init__(self, ticket_id: str) -> None:
        super().__init__("Cannot update a closed ticket")
        self.ticket_id = ticket_id


class TicketService:
    def __init__(self, store: RecordStore) -> None:
        self._store = store

    async def create(self, payload: TicketCreate) -> Ticket:
        now = datetime.now(timezone.utc)
        doc = payload.model_dump()
        doc.update(created_at=now, updated_at=now)
        saved = await self._store.insert(TICKETS, doc)
        logger.info("Created ticket %s for user %s", saved["id"], payload.user_id)
        return from_record(Ticket, saved)

    async def list_for_user(self, user_id: str) -> List[Ticket]:
        rows = await self._store.find(TICKETS, {"user_id": user_id}, sort=[("created_at", -1)])
        return [from_record(Ticket, row) for row in rows]

    async def get(self, ticket_id: str) -> Ticket:
        doc = await self._store.find_one(TICKETS, {"id": ticket_id})
        if not doc:
            raise TicketNotFound(ticket_id)
        return from_record(Ticket, doc)

    async def update(self, ticket_id: str, payload: TicketUpdate) -> Ticket:
        current = await self.get(ticket_id)
        if current.status == "closed":
            raise TicketClosed(ticket_id)
        values: Dict[str, Any] = payload.model_dump(exclude_none=True)
        values["updated_at"] = datetime.now(timezone.utc)
        # Conditional on the status just read so a concurrent close wins.
        doc = await self._store.update(TICKETS, {"id": ticket_id, "status": current.status}, values)
        if not doc:
            raise TicketClosed(ticket_id)
        return from_record(Ticket, doc)


def get_ticket_service() -> TicketService:
    return TicketService(get_record_store())
