import uuid
from datetime import datetime
from pydantic import BaseModel, Field


class TimelineEntryRead(BaseModel):
    model_config = {"from_attributes": True}
    id: uuid.UUID
    document_id: uuid.UUID
    event_type: str
    event_title: str
    event_description: str | None
    old_status: str | None
    new_status: str | None
    performed_by: uuid.UUID | None
    metadata: dict | None = Field(None, validation_alias="event_metadata")
    created_at: datetime
