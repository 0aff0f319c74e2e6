import uuid
from datetime import datetime
from typing import Any
from pydantic import BaseModel, EmailStr, Field


class NotificationRead(BaseModel):
    model_config = {"from_attributes": True}
    id: uuid.UUID
    user_id: uuid.UUID
    document_id: uuid.UUID | None
    type: str
    title: str
    message: str
    link: str | None
    read_at: datetime | None
    created_at: datetime


class NotificationPage(BaseModel):
    items: list[NotificationRead]
    total: int
    page: int
    page_size: int


class UnreadCount(BaseModel):
    count: int


class EmailSendRequest(BaseModel):
    to: EmailStr | list[EmailStr]
    subject: str = Field(..., min_length=1)
    template: str = Field(..., min_length=1)
    data: dict[str, Any]
