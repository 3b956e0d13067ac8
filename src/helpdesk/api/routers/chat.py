from __future__ import annotations

from typing import Union

from fastapi import APIRouter, Depends, Response

from ...domain.errors import HelpdeskError
from ...domain.models import ChatRequest, ChatResponse, FilteredChatResponse
from ...services.device_context import DeviceDirectory, get_device_directory
from ...services.message_intake import MessageIntake, get_message_intake
from ..errors import to_http

router = APIRouter(tags=["chat"])

DEVICE_INFO_MISSING_HEADER = "X-Device-Info-Missing"


@router.post("/chat", response_model=Union[ChatResponse, FilteredChatResponse])
async def send_message(
    req: ChatRequest,
    response: Response,
    intake: MessageIntake = Depends(get_message_intake),
    devices: DeviceDirectory = Depends(get_device_directory),
) -> Union[ChatResponse, FilteredChatResponse]:
    # Clients use this to prompt for device details; it never blocks the chat.
    if not await devices.exists(req.user_id):
        response.headers[DEVICE_INFO_MISSING_HEADER] = "true"

    try:
        result = await intake.process(req.user_id, req.message, image=req.image)
    except HelpdeskError as exc:
        raise to_http(exc, "Failed to process message")

    if result.filtered:
        return FilteredChatResponse(response=result.refusal or "")
    return ChatResponse(
        conversation=result.conversation,
        conversationId=result.conversation.id,
        message=req.message,
        response=result.ai_message.content,
        userMessage=result.user_message,
        aiResponse=result.ai_message,
    )
