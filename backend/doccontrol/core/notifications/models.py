import uuid
from datetime import datetime
from sqlalchemy import DateTime, ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from doccontrol.db.base import Base, utcnow


NOTIFICATION_ASSIGNMENT = "assignment"
NOTIFICATION_REVIEW_REQUEST = "review_request"
NOTIFICATION_APPROVAL_REQUEST = "approval_request"
NOTIFICATION_STATUS_CHANGE = "status_change"
NOTIFICATION_COMMENT = "comment"
NOTIFICATION_REMINDER = "reminder"
NOTIFICATION_SYSTEM = "system"


class Notification(Base):
    """In-app bell notification. ``read_at`` is null until the recipient opens it."""
    __tablename__ = "notifications"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    document_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("documents.id", ondelete="CASCADE"), nullable=True)
    type: Mapped[str] = mapped_column(String(50), nullable=False, default=NOTIFICATION_SYSTEM)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    link: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (Index("ix_notifications_user_created", "user_id", "created_at"),)
