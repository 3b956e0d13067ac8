from __future__ import annotations

"""Translate domain errors into HTTP responses at the router boundary."""

import logging

from fastapi import HTTPException, status

from ..domain.errors import (
    ConversationClosed,
    ConversationNotFound,
    ConversationStateConflict,
    Forbidden,
    HelpdeskError,
    MessageLimitExceeded,
    ValidationFailed,
)


logger = logging.getLogger(__name__)


def conflict_detail(exc: ConversationStateConflict) -> str:
    if isinstance(exc, ConversationClosed):
        return "This conversation is closed. Please start a new conversation."
    if isinstance(exc, MessageLimitExceeded):
        return "This conversation has reached the maximum number of messages. Please start a new conversation."
    return str(exc)


def to_http(exc: HelpdeskError, failure_detail: str) -> HTTPException:
    """Map a domain error; anything unclassified becomes a generic 500."""

    if isinstance(exc, ConversationStateConflict):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=conflict_detail(exc))
    if isinstance(exc, ConversationNotFound):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found")
    if isinstance(exc, Forbidden):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    if isinstance(exc, ValidationFailed):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    logger.error("%s: %s", failure_detail, exc)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=failure_detail)
