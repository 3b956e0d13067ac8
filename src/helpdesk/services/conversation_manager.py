from __future__ import annotations

"""Conversation lifecycle: active -> closed, bounded by a message cap.

The manager is the only writer of conversation and message records.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from ..config import get_settings
from ..domain.errors import ConversationClosed, ConversationNotFound, MessageLimitExceeded
from ..domain.models import Conversation, Message, from_record
from ..infrastructure.record_store import RecordStore, get_record_store


logger = logging.getLogger(__name__)

CONVERSATIONS = "conversations"
MESSAGES = "messages"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def default_title(now: Optional[datetime] = None) -> str:
    now = now or _now()
    return f"IT Support Chat {now.strftime('%Y-%m-%d %H:%M:%S')}"


class ConversationManager:
    def __init__(self, store: RecordStore, message_cap: Optional[int] = None) -> None:
        self._store = store
        self._cap = message_cap if message_cap is not None else get_settings().message_cap

    @property
    def message_cap(self) -> int:
        return self._cap

    async def create(self, user_id: str, title: Optional[str] = None) -> Conversation:
        now = _now()
        doc = await self._store.insert(
            CONVERSATIONS,
            {
                "user_id": user_id,
                "title": title or default_title(now),
                "status": "active",
                "message_count": 0,
                "created_at": now,
                "updated_at": now,
            },
        )
        logger.info("Created conversation %s for user %s", doc["id"], user_id)
        return from_record(Conversation, doc)

    async def get_or_create_active(self, user_id: str) -> Conversation:
        rows = await self._store.find(
            CONVERSATIONS,
            {"user_id": user_id, "status": "active"},
            sort=[("created_at", -1)],
            limit=1,
        )
        if rows:
            return from_record(Conversation, rows[0])
        return await self.create(user_id)

    async def get(self, conversation_id: str, user_id: Optional[str] = None) -> Conversation:
        filters = {"id": conversation_id}
        if user_id is not None:
            filters["user_id"] = user_id
        doc = await self._store.find_one(CONVERSATIONS, filters)
        if not doc:
            raise ConversationNotFound(conversation_id)
        return from_record(Conversation, doc)

    async def append_message(
        self,
        conversation_id: str,
        user_id: str,
        content: str,
        is_user: bool,
        image: Optional[str] = None,
    ) -> Tuple[Message, Conversation]:
        """Insert one message, reserving a slot under the cap first.

        The closed-state and cap checks are a single conditional increment in
        the store, so concurrent appends can never push the count past the cap.
        Returns the stored message and the conversation as of the reservation.
        """

        now = _now()
        reserved = await self._store.increment(
            CONVERSATIONS,
            {"id": conversation_id, "user_id": user_id, "status": "active"},
            "message_count",
            amount=1,
            ceiling=self._cap,
            values={"updated_at": now},
        )
        if reserved is None:
            raise await self._rejection(conversation_id, user_id)

        try:
            doc = await self._store.insert(
                MESSAGES,
                {
                    "conversation_id": conversation_id,
                    "user_id": user_id,
                    "content": content,
                    "image": image,
                    "is_user": is_user,
                    "created_at": now,
                },
            )
        except Exception:
            logger.exception("Message insert failed for conversation %s; releasing slot", conversation_id)
            await self._release_slot(conversation_id)
            raise
        return from_record(Message, doc), from_record(Conversation, reserved)

    async def _release_slot(self, conversation_id: str) -> None:
        try:
            await self._store.increment(CONVERSATIONS, {"id": conversation_id}, "message_count", amount=-1)
        except Exception:
            # The caller re-raises the insert failure; the count stays one high.
            logger.exception("Could not release message slot for conversation %s", conversation_id)

    async def _rejection(self, conversation_id: str, user_id: str) -> Exception:
        current = await self._store.find_one(CONVERSATIONS, {"id": conversation_id})
        if not current or current.get("user_id") != user_id:
            return ConversationNotFound(conversation_id)
        if current.get("status") == "closed":
            return ConversationClosed(conversation_id)
        return MessageLimitExceeded(conversation_id, self._cap)

    async def close(self, conversation_id: str, user_id: str) -> Conversation:
        doc = await self._store.update(
            CONVERSATIONS,
            {"id": conversation_id, "user_id": user_id},
            {"status": "closed", "updated_at": _now()},
        )
        if not doc:
            raise ConversationNotFound(conversation_id)
        logger.info("Closed conversation %s", conversation_id)
        return from_record(Conversation, doc)

    async def history(self, user_id: str, limit: int = 10) -> List[Conversation]:
        if limit <= 0:
            return []
        rows = await self._store.find(
            CONVERSATIONS,
            {"user_id": user_id},
            sort=[("updated_at", -1)],
            limit=limit,
        )
        return [from_record(Conversation, row) for row in rows]

    async def messages(self, conversation_id: str) -> List[Message]:
        rows = await self._store.find(MESSAGES, {"conversation_id": conversation_id}, sort=[("created_at", 1)])
        return [from_record(Message, row) for row in rows]


def get_conversation_manager() -> ConversationManager:
    return ConversationManager(get_record_store())
