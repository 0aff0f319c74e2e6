import uuid
from datetime import datetime
from pydantic import BaseModel, Field


class DocumentTypeCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    code: str = Field(..., min_length=1, max_length=20)
    description: str | None = None
    prefix: str | None = None
    template_url: str | None = None
    sort_order: int = 0


class DocumentTypeUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    code: str | None = Field(None, min_length=1, max_length=20)
    description: str | None = None
    prefix: str | None = None
    template_url: str | None = None
    sort_order: int | None = None
    is_active: bool | None = None


class DocumentTypeRead(BaseModel):
    model_config = {"from_attributes": True}
    id: uuid.UUID
    name: str
    code: str
    description: str | None
    prefix: str | None
    template_url: str | None
    is_active: bool
    sort_order: int
    created_at: datetime
