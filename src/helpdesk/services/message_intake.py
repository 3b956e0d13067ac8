from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from ..domain.errors import ConversationStateConflict, GenerationError, HelpdeskError, MessageLimitExceeded
from ..domain.models import Conversation, Message
from ..observability.metrics import CHAT_MESSAGES
from .conversation_manager import ConversationManager, get_conversation_manager
from .device_context import DeviceDirectory, DeviceInfo, get_device_directory
from .text_generator import IT_SUPPORT, Label, TextGenerator, get_text_generator


logger = logging.getLogger(__name__)
LOG = logging.getLogger("helpdesk.intake")

REFUSAL_MESSAGE = "This system is only for IT Support-related inquiries."
# Classifier outages must not block legitimate support requests.
CLASSIFICATION_FALLBACK: Label = IT_SUPPORT

PERSONA = "You are an IT Support assistant. Provide helpful, accurate, and concise responses to the following query: "


def build_reply_prompt(content: str, device: DeviceInfo, conversation_id: Optional[str]) -> str:
    device_context = f"The user is using a {device.brand} {device.model}. "
    conversation_context = ""
    if conversation_id:
        conversation_context = f"This is part of an ongoing IT support conversation (ID: {conversation_id}). "
    return f"{device_context}{conversation_context}{PERSONA}{content}"


@dataclass
class IntakeResult:
    filtered: bool
    refusal: Optional[str] = None
    conversation: Optional[Conversation] = None
    user_message: Optional[Message] = None
    ai_message: Optional[Message] = None

    @staticmethod
    def rejected() -> "IntakeResult":
        return IntakeResult(filtered=True, refusal=REFUSAL_MESSAGE)


class MessageIntake:
    """classify -> gate -> resolve -> persist inbound -> enrich -> generate -> persist outbound."""

    def __init__(
        self,
        conversations: ConversationManager,
        generator: TextGenerator,
        devices: DeviceDirectory,
    ) -> None:
        self._conversations = conversations
        self._generator = generator
        self._devices = devices

    async def classify(self, content: str) -> Label:
        try:
            return await self._generator.classify(content)
        except Exception as exc:
            LOG.warning("classification_failed_open", extra={"err": str(exc)})
            return CLASSIFICATION_FALLBACK

    async def process(
        self,
        user_id: str,
        content: str,
        conversation_id: Optional[str] = None,
        image: Optional[str] = None,
    ) -> IntakeResult:
        label = await self.classify(content)
        if label != IT_SUPPORT:
            CHAT_MESSAGES.labels(outcome="filtered").inc()
            LOG.info("message_filtered", extra={"user_id": user_id})
            return IntakeResult.rejected()

        try:
            result = await self._run(user_id, content, conversation_id, image)
        except ConversationStateConflict:
            CHAT_MESSAGES.labels(outcome="conflict").inc()
            raise
        except HelpdeskError:
            CHAT_MESSAGES.labels(outcome="failed").inc()
            raise
        CHAT_MESSAGES.labels(outcome="accepted").inc()
        return result

    async def _run(
        self,
        user_id: str,
        content: str,
        conversation_id: Optional[str],
        image: Optional[str],
    ) -> IntakeResult:
        if conversation_id is None:
            conversation = await self._conversations.get_or_create_active(user_id)
            conversation_id = conversation.id

        user_message, conversation = await self._conversations.append_message(
            conversation_id, user_id, content, True, image=image
        )
        if conversation.message_count >= self._conversations.message_cap:
            # The user's turn took the last slot; a reply could not be stored.
            LOG.info("reply_slot_unavailable", extra={"user_id": user_id, "conversation_id": conversation_id})
            raise MessageLimitExceeded(conversation_id, self._conversations.message_cap)

        device = await self._devices.get(user_id)
        prompt = build_reply_prompt(content, device, conversation_id)
        try:
            reply = await self._generator.generate(prompt, image=image)
        except GenerationError:
            # The user's turn stays persisted without a reply.
            logger.exception("Error generating response for conversation %s", conversation_id)
            raise

        ai_message, conversation = await self._conversations.append_message(conversation_id, user_id, reply, False)
        LOG.info(
            "message_answered",
            extra={"user_id": user_id, "conversation_id": conversation_id, "message_count": conversation.message_count},
        )
        return IntakeResult(
            filtered=False,
            conversation=conversation,
            user_message=user_message,
            ai_message=ai_message,
        )


def get_message_intake() -> MessageIntake:
    return MessageIntake(get_conversation_manager(), get_text_generator(), get_device_directory())
