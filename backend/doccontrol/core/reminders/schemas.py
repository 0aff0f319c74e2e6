from pydantic import BaseModel, Field


class ReminderCounters(BaseModel):
    deadline_reminders: int = 0
    overdue_reminders: int = 0
    expiry_reminders: int = 0
    errors: list[str] = Field(default_factory=list)
