import uuid
from datetime import datetime
from sqlalchemy import DateTime, ForeignKey, Index, JSON, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from doccontrol.db.base import Base, utcnow


# event_type tags
EVENT_CREATED = "created"
EVENT_EDITED = "edited"
EVENT_SUBMITTED = "submitted"
EVENT_REVIEW_COMPLETED = "review_completed"
EVENT_SUBMITTED_FOR_APPROVAL = "submitted_for_approval"
EVENT_APPROVED = "approved"
EVENT_REJECTED = "rejected"
EVENT_PUBLISHED = "published"
EVENT_CLOSED = "closed"
EVENT_CANCELLED = "cancelled"
EVENT_COMMENT_ADDED = "comment_added"


class TimelineEntry(Base):
    """Append-only. Rows are never updated or deleted by the application."""
    __tablename__ = "document_timeline"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    document_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False)
    event_type: Mapped[str] = mapped_column(String(50), nullable=False)
    event_title: Mapped[str] = mapped_column(String(255), nullable=False)
    event_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    old_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    new_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    performed_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    event_metadata: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (Index("ix_document_timeline_document_created", "document_id", "created_at"),)
