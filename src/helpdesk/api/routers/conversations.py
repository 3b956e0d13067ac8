from __future__ import annotations

from typing import Union

from fastapi import APIRouter, Depends, Query, status

from ...domain.errors import HelpdeskError
from ...domain.models import (
    Conversation,
    ConversationClose,
    ConversationCreate,
    ConversationList,
    FilteredChatResponse,
    MessageCreate,
    MessageExchange,
    MessageList,
)
from ...services.conversation_manager import ConversationManager, get_conversation_manager
from ...services.message_intake import MessageIntake, get_message_intake
from ..errors import to_http

router = APIRouter(prefix="/conversations", tags=["conversations"])


@router.get("", response_model=ConversationList)
async def list_conversations(
    user_id: str = Query(alias="userId", min_length=1),
    limit: int = Query(default=10, ge=0),
    manager: ConversationManager = Depends(get_conversation_manager),
) -> ConversationList:
    try:
        conversations = await manager.history(user_id, limit)
    except HelpdeskError as exc:
        raise to_http(exc, "Failed to fetch conversation history")
    return ConversationList(conversations=conversations)


@router.post("", response_model=Conversation, status_code=status.HTTP_201_CREATED)
async def create_conversation(
    req: ConversationCreate,
    manager: ConversationManager = Depends(get_conversation_manager),
) -> Conversation:
    try:
        return await manager.create(req.user_id, req.title)
    except HelpdeskError as exc:
        raise to_http(exc, "Failed to create conversation")


@router.post("/{conversation_id}/close", response_model=Conversation)
async def close_conversation(
    conversation_id: str,
    req: ConversationClose,
    manager: ConversationManager = Depends(get_conversation_manager),
) -> Conversation:
    try:
        return await manager.close(conversation_id, req.user_id)
    except HelpdeskError as exc:
        raise to_http(exc, "Failed to close conversation")


@router.get("/{conversation_id}/messages", response_model=MessageList)
async def list_messages(
    conversation_id: str,
    manager: ConversationManager = Depends(get_conversation_manager),
) -> MessageList:
    try:
        messages = await manager.messages(conversation_id)
    except HelpdeskError as exc:
        raise to_http(exc, "Failed to fetch messages")
    return MessageList(messages=messages)


@router.post("/{conversation_id}/messages", response_model=Union[MessageExchange, FilteredChatResponse])
async def add_message(
    conversation_id: str,
    req: MessageCreate,
    intake: MessageIntake = Depends(get_message_intake),
) -> Union[MessageExchange, FilteredChatResponse]:
    try:
        result = await intake.process(req.user_id, req.message, conversation_id=conversation_id, image=req.image)
    except HelpdeskError as exc:
        raise to_http(exc, "Failed to add message")
    if result.filtered:
        return FilteredChatResponse(response=result.refusal or "")
    return MessageExchange(userMessage=result.user_message, aiMessage=result.ai_message)
