from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class MessageCreate(BaseModel):
    receiver_id: str
    content: str | None = None
    image_url: str | None = None


class MessageResponse(BaseModel):
    message_id: str
    sender_id: str
    receiver_id: str
    content: str
    image_url: str | None = None
    read: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ConversationPartner(BaseModel):
    user_id: str
    name: str | None = None
    role: str
    request_ids: list[str] = Field(default_factory=list)
    last_message: MessageResponse | None = None
    unread_count: int = 0


class ConversationResponse(BaseModel):
    partner_id: str
    items: list[MessageResponse]


class MarkReadResponse(BaseModel):
    partner_id: str
    marked_read: int
