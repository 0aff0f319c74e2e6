import uuid
from datetime import date, datetime
from typing import Literal
from pydantic import BaseModel, Field

from doccontrol.core.timeline.schemas import TimelineEntryRead


# ── Requests ──────────────────────────────────────────────────────────────────

class DocumentCreate(BaseModel):
    title: str = Field(..., max_length=500)
    description: str | None = None
    department_id: uuid.UUID
    document_type_id: uuid.UUID
    draft_link: str | None = None
    target_approval_date: date | None = None
    version: str = "1.0"
    reviewer_ids: list[uuid.UUID] = Field(default_factory=list)
    approver_ids: list[uuid.UUID] = Field(default_factory=list)
    affected_department_ids: list[uuid.UUID] = Field(default_factory=list)


class DocumentUpdate(BaseModel):
    """Omitted fields are left unchanged. A list that is sent replaces the current set."""
    title: str | None = Field(None, max_length=500)
    description: str | None = None
    department_id: uuid.UUID | None = None
    document_type_id: uuid.UUID | None = None
    draft_link: str | None = None
    final_link: str | None = None
    target_approval_date: date | None = None
    version: str | None = None
    reviewer_ids: list[uuid.UUID] | None = None
    approver_ids: list[uuid.UUID] | None = None
    affected_department_ids: list[uuid.UUID] | None = None


class AssignNumberRequest(BaseModel):
    manual_number: str | None = None


class ReviewSubmit(BaseModel):
    assignment_id: uuid.UUID
    decision: Literal["submitted", "approved", "requested_changes"] = "submitted"
    comment: str | None = None


class ApproveRequest(BaseModel):
    assignment_id: uuid.UUID
    comment: str | None = None


class RejectRequest(BaseModel):
    assignment_id: uuid.UUID
    reason: str


class CloseRequest(BaseModel):
    comment: str | None = None


class CancelRequest(BaseModel):
    reason: str


class CommentCreate(BaseModel):
    content: str


# ── Responses ─────────────────────────────────────────────────────────────────

class DocumentRead(BaseModel):
    model_config = {"from_attributes": True}
    id: uuid.UUID
    document_number: str
    title: str
    description: str | None
    status: str
    version: str
    revision_number: int
    department_id: uuid.UUID
    document_type_id: uuid.UUID
    draft_link: str | None
    final_link: str | None
    target_approval_date: date | None
    approved_at: datetime | None
    published_at: datetime | None
    effective_date: date | None
    expiry_date: date | None
    rejected_at: datetime | None
    rejection_reason: str | None
    closed_at: datetime | None
    closing_comment: str | None
    cancelled_at: datetime | None
    cancellation_reason: str | None
    created_by: uuid.UUID
    created_at: datetime
    updated_at: datetime


class AssignmentRead(BaseModel):
    model_config = {"from_attributes": True}
    id: uuid.UUID
    document_id: uuid.UUID
    user_id: uuid.UUID
    role_type: str
    sequence_order: int
    assigned_by: uuid.UUID | None
    assigned_at: datetime
    is_completed: bool
    completed_at: datetime | None
    assignment_notes: str | None


class ReviewRead(BaseModel):
    model_config = {"from_attributes": True}
    id: uuid.UUID
    reviewer_id: uuid.UUID
    assignment_id: uuid.UUID | None
    status: str
    comments: str | None
    submitted_at: datetime


class ApprovalRead(BaseModel):
    model_config = {"from_attributes": True}
    id: uuid.UUID
    approver_id: uuid.UUID
    assignment_id: uuid.UUID | None
    decision: str
    comments: str | None
    decided_at: datetime


class CommentRead(BaseModel):
    model_config = {"from_attributes": True}
    id: uuid.UUID
    document_id: uuid.UUID
    user_id: uuid.UUID
    content: str
    created_at: datetime


class DocumentDetail(BaseModel):
    document: DocumentRead
    assignments: list[AssignmentRead]
    reviews: list[ReviewRead]
    approvals: list[ApprovalRead]
    comments: list[CommentRead]
    timeline: list[TimelineEntryRead]
    affected_department_ids: list[uuid.UUID]


class PendingAssignment(BaseModel):
    assignment: AssignmentRead
    document: DocumentRead
    can_act: bool


class NumberPreview(BaseModel):
    document_number: str
