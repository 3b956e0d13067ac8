from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


ConversationStatus = Literal["active", "closed"]
TicketStatus = Literal["open", "in_progress", "closed"]
TicketPriority = Literal["low", "medium", "high"]


class Conversation(BaseModel):
    id: str
    user_id: str
    title: str
    status: ConversationStatus = "active"
    message_count: int = Field(default=0, ge=0)
    created_at: datetime
    updated_at: datetime


class Message(BaseModel):
    id: str
    conversation_id: str
    user_id: str
    content: str
    image: Optional[str] = None
    is_user: bool
    created_at: datetime


class SessionRecord(BaseModel):
    id: str
    user_id: str
    role: str
    token: str
    expires_at: datetime
    created_at: Optional[datetime] = None


class Device(BaseModel):
    id: str
    user_id: str
    brand: str
    model: str
    created_at: datetime
    updated_at: datetime


class Article(BaseModel):
    id: str
    title: str
    content: str
    category: str
    user_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class Ticket(BaseModel):
    id: str
    user_id: str
    title: str
    description: str = ""
    status: TicketStatus = "open"
    priority: TicketPriority = "medium"
    created_at: datetime
    updated_at: datetime


def from_record(model: type[BaseModel], record: Dict[str, Any]) -> Any:
    """Build a domain model from a store record, ignoring unknown fields."""

    fields = model.model_fields.keys()
    return model(**{k: v for k, v in record.items() if k in fields})


# --- request / response payloads ---
# Clients send camelCase identifiers (userId); both spellings are accepted.


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ChatRequest(_Payload):
    user_id: str = Field(alias="userId", min_length=1)
    message: str = Field(min_length=1)
    image: Optional[str] = None


class ChatResponse(BaseModel):
    conversation: Conversation
    conversationId: str
    message: str
    response: str
    userMessage: Message
    aiResponse: Message


class FilteredChatResponse(BaseModel):
    response: str
    filtered: bool = True


class ConversationCreate(_Payload):
    user_id: str = Field(alias="userId", min_length=1)
    title: str = Field(min_length=1)


class ConversationClose(_Payload):
    user_id: str = Field(alias="userId", min_length=1)


class ConversationList(BaseModel):
    conversations: List[Conversation]


class MessageList(BaseModel):
    messages: List[Message]


class MessageCreate(_Payload):
    user_id: str = Field(alias="userId", min_length=1)
    message: str = Field(min_length=1)
    image: Optional[str] = None


class MessageExchange(BaseModel):
    userMessage: Message
    aiMessage: Message


class DeviceRegistration(_Payload):
    user_id: str = Field(alias="userId", min_length=1)
    brand: str = Field(min_length=1)
    model: str = Field(min_length=1)


class DeviceUpdate(_Payload):
    user_id: str = Field(alias="userId", min_length=1)
    brand: Optional[str] = None
    model: Optional[str] = None


class LoginRequest(BaseModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class PrincipalOut(BaseModel):
    id: str
    role: str


class LoginResponse(BaseModel):
    token: str
    user: PrincipalOut


class ArticleRequest(_Payload):
    user_id: str = Field(alias="userId", min_length=1)
    category: Optional[str] = None


class Pagination(BaseModel):
    total: int
    page: int
    limit: int
    pages: int


class ArticlePage(BaseModel):
    data: List[Article]
    pagination: Pagination


class TicketCreate(_Payload):
    user_id: str = Field(alias="userId", min_length=1)
    title: str = Field(min_length=1)
    description: str = ""
    status: TicketStatus = "open"
    priority: TicketPriority = "medium"


class TicketUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[TicketStatus] = None
    priority: Optional[TicketPriority] = None


class UserData(BaseModel):
    tickets: List[Ticket]
    conversations: List[Conversation]
    messages: List[Message]
    devices: List[Device]
    articles: List[Article]
