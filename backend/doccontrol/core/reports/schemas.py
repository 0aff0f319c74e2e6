import uuid
from datetime import date
from pydantic import BaseModel

from doccontrol.core.timeline.schemas import TimelineEntryRead


class StatusCount(BaseModel):
    status: str
    count: int


class DepartmentStats(BaseModel):
    department_id: uuid.UUID
    department_name: str
    department_code: str
    draft_count: int = 0
    published_count: int = 0
    valid_count: int = 0
    expired_count: int = 0
    total_count: int = 0


class DocumentTypeStats(BaseModel):
    document_type_id: uuid.UUID
    name: str
    code: str
    count: int


class ExpiringDocument(BaseModel):
    id: uuid.UUID
    document_number: str
    title: str
    department_name: str | None
    expiry_date: date
    days_until_expiry: int


class MonthlyTrend(BaseModel):
    month: str
    created: int
    approved: int


class Summary(BaseModel):
    total: int
    approved: int
    rejected: int
    in_progress: int
    approval_rate: float
    rejection_rate: float
    recent_activity: list[TimelineEntryRead]


class Dashboard(BaseModel):
    summary: Summary
    status_counts: list[StatusCount]
    departments: list[DepartmentStats]
    document_types: list[DocumentTypeStats]
    expiring: list[ExpiringDocument]
    monthly: list[MonthlyTrend]
