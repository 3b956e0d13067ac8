from __future__ import annotations

"""Per-user export of every record the helpdesk holds about someone."""

import asyncio
import logging
from typing import Any, Dict, List

from ..domain.models import Article, Conversation, Device, Message, Ticket, UserData, from_record
from ..infrastructure.record_store import RecordStore, get_record_store


logger = logging.getLogger(__name__)

_SECTIONS = (
    ("tickets", "tickets", Ticket),
    ("conversations", "conversations", Conversation),
    ("messages", "messages", Message),
    ("devices", "devices", Device),
    ("articles", "articles", Article),
)


async def export_user_data(user_id: str, store: RecordStore | None = None) -> UserData:
    store = store or get_record_store()
    results = await asyncio.gather(
        *(store.find(collection, {"user_id": user_id}) for _, collection, _ in _SECTIONS),
        return_exceptions=True,
    )
    out: Dict[str, List[Any]] = {}
    for (key, collection, model), rows in zip(_SECTIONS, results):
        if isinstance(rows, BaseException):
            # One unreadable collection should not hide the rest of the export.
            logger.error("Error fetching %s for user %s: %s", collection, user_id, rows)
            out[key] = []
            continue
        out[key] = [from_record(model, row) for row in rows]
    return UserData(**out)
