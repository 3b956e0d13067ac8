from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ...domain.errors import HelpdeskError
from ...domain.models import Ticket, TicketCreate, TicketUpdate
from ...services.ticket_service import TicketClosed, TicketNotFound, TicketService, get_ticket_service
from ..errors import to_http

router = APIRouter(prefix="/tickets", tags=["tickets"])


@router.post("", response_model=Ticket, status_code=status.HTTP_201_CREATED)
async def create_ticket(req: TicketCreate, tickets: TicketService = Depends(get_ticket_service)) -> Ticket:
    try:
        return await tickets.create(req)
    except HelpdeskError as exc:
        raise to_http(exc, "Failed to create ticket")


@router.get("", response_model=List[Ticket])
async def list_tickets(
    user_id: str = Query(alias="userId", min_length=1),
    tickets: TicketService = Depends(get_ticket_service),
) -> List[Ticket]:
    try:
        return await tickets.list_for_user(user_id)
    except HelpdeskError as exc:
        raise to_http(exc, "Failed to fetch tickets")


@router.get("/{ticket_id}", response_model=Ticket)
async def get_ticket(ticket_id: str, tickets: TicketService = Depends(get_ticket_service)) -> Ticket:
    try:
        return await tickets.get(ticket_id)
    except TicketNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except HelpdeskError as exc:
        raise to_http(exc, "Failed to fetch ticket")


@router.patch("/{ticket_id}", response_model=Ticket)
async def update_ticket(
    ticket_id: str,
    req: TicketUpdate,
    tickets: TicketService = Depends(get_ticket_service),
) -> Ticket:
    try:
        return await tickets.update(ticket_id, req)
    except TicketNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except TicketClosed as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    except HelpdeskError as exc:
        raise to_http(exc, "Failed to update ticket")
