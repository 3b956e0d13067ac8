from __future__ import annotations

"""Domain exceptions raised by the helpdesk services.

Routers map these onto HTTP status codes; services never raise HTTPException.
"""

from typing import Optional


class HelpdeskError(Exception):
    """Base class for all helpdesk domain errors."""


class ValidationFailed(HelpdeskError):
    pass


class ConversationNotFound(HelpdeskError):
    def __init__(self, conversation_id: str) -> None:
        super().__init__(f"Conversation {conversation_id} not found")
        self.conversation_id = conversation_id


class ConversationStateConflict(HelpdeskError):
    """The conversation cannot accept another message; start a new one."""

    def __init__(self, conversation_id: str, message: str) -> None:
        super().__init__(message)
        self.conversation_id = conversation_id


class ConversationClosed(ConversationStateConflict):
    def __init__(self, conversation_id: str) -> None:
        super().__init__(conversation_id, "Cannot add message to a closed conversation")


class MessageLimitExceeded(ConversationStateConflict):
    def __init__(self, conversation_id: str, cap: int) -> None:
        super().__init__(conversation_id, "Conversation has reached the maximum number of messages")
        self.cap = cap


class AuthenticationError(HelpdeskError):
    pass


class InvalidCredentials(AuthenticationError):
    def __init__(self) -> None:
        super().__init__("Invalid credentials")


class InvalidToken(AuthenticationError):
    def __init__(self, reason: str = "Invalid token") -> None:
        super().__init__(reason)


class SessionExpired(AuthenticationError):
    def __init__(self) -> None:
        super().__init__("Session expired")


class Forbidden(HelpdeskError):
    def __init__(self, reason: str = "Admin access required") -> None:
        super().__init__(reason)


class GenerationError(HelpdeskError):
    """The text generator failed, timed out, or produced nothing."""


class StoreError(HelpdeskError):
    def __init__(self, operation: str, collection: str, cause: Optional[BaseException] = None) -> None:
        detail = f": {cause}" if cause else ""
        super().__init__(f"Record store {operation} on {collection} failed{detail}")
        self.operation = operation
        self.collection = collection
