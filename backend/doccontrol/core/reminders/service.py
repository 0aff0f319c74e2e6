"""
Daily reminder sweep.

Read-only over documents: it looks at target approval dates and expiry dates
and queues reminder e-mails. Nothing about a document changes here.
"""
import logging
import uuid
from datetime import date, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from doccontrol.core.documents.models import Document, DocumentAssignment, ROLE_TYPE_APPROVER, ROLE_TYPE_REVIEWER
from doccontrol.core.documents.workflow import DocumentStatus
from doccontrol.core.notifications.email import Outbox
from doccontrol.core.rbac.models import User
from doccontrol.core.reminders.schemas import ReminderCounters
from doccontrol.settings import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

OWNER_ROLE_LABEL = "Document Owner"
_ROLE_LABELS = {ROLE_TYPE_REVIEWER: "Reviewer", ROLE_TYPE_APPROVER: "Approver"}


def days_between(start: date, end: date) -> int:
    return (end - start).days


def should_send_overdue_reminder(days_overdue: int, interval: int = 7) -> bool:
    """Day one, then every ``interval`` days."""
    if days_overdue <= 0:
        return False
    return days_overdue == 1 or days_overdue % interval == 0


def format_date(value: date) -> str:
    return f"{value:%B} {value.day}, {value.year}"


async def _pending_assignees(db: AsyncSession, document_id: uuid.UUID) -> list[tuple[str, str]]:
    """(email, role label) for every open reviewer or approver slot."""
    result = await db.execute(
        select(User.email, DocumentAssignment.role_type)
        .join(User, User.id == DocumentAssignment.user_id)
        .where(
            DocumentAssignment.document_id == document_id,
            DocumentAssignment.is_completed == False,
            DocumentAssignment.role_type.in_((ROLE_TYPE_REVIEWER, ROLE_TYPE_APPROVER)),
        )
        .order_by(DocumentAssignment.role_type, DocumentAssignment.sequence_order)
    )
    return [(email, _ROLE_LABELS[role_type]) for email, role_type in result.all()]


async def _creator_email(db: AsyncSession, user_id: uuid.UUID) -> str | None:
    result = await db.execute(select(User.email).where(User.id == user_id))
    return result.scalar_one_or_none()


def _queue_reminder(outbox: Outbox, document: Document, to: str, days_remaining: int, due: date, role: str) -> None:
    if days_remaining < 0:
        subject = f"Overdue: {document.title}"
    else:
        subject = f"Reminder: {document.title} - {days_remaining} days"
    outbox.add(
        to, subject, "reminder",
        document_id=str(document.id), document_title=document.title, document_number=document.document_number,
        days_remaining=days_remaining, target_date=format_date(due), recipient_role=role,
    )


async def scan_reminders(db: AsyncSession, today: date, outbox: Outbox) -> ReminderCounters:
    counters = ReminderCounters()
    horizon = today + timedelta(days=settings.REMINDER_DAYS_BEFORE)

    result = await db.execute(
        select(Document)
        .where(
            Document.status.not_in(DocumentStatus.TERMINAL),
            Document.target_approval_date.is_not(None),
            Document.target_approval_date <= horizon,
        )
        .order_by(Document.target_approval_date)
    )
    for document in result.scalars().all():
        try:
            days_remaining = days_between(today, document.target_approval_date)
            if days_remaining >= 0:
                for email, role in await _pending_assignees(db, document.id):
                    _queue_reminder(outbox, document, email, days_remaining, document.target_approval_date, role)
                    counters.deadline_reminders += 1
                continue

            if not should_send_overdue_reminder(-days_remaining, settings.OVERDUE_REMINDER_INTERVAL_DAYS):
                continue
            for email, role in await _pending_assignees(db, document.id):
                _queue_reminder(outbox, document, email, days_remaining, document.target_approval_date, role)
                counters.overdue_reminders += 1
            creator = await _creator_email(db, document.created_by)
            if creator:
                _queue_reminder(outbox, document, creator, days_remaining, document.target_approval_date, OWNER_ROLE_LABEL)
                counters.overdue_reminders += 1
        except Exception as e:
            logger.exception("Reminder failed. document_id=%s", document.id)
            counters.errors.append(f"{document.id}: {e}")

    for days in sorted(set(settings.EXPIRY_WARNING_DAYS), reverse=True):
        expiry = today + timedelta(days=days)
        expiring = await db.execute(
            select(Document).where(Document.status.in_(DocumentStatus.PUBLISHED), Document.expiry_date == expiry)
        )
        for document in expiring.scalars().all():
            creator = await _creator_email(db, document.created_by)
            if not creator:
                continue
            outbox.add(
                creator, f"Document Expiring: {document.title} - {days} days", "reminder",
                document_id=str(document.id), document_title=document.title,
                document_number=document.document_number, days_remaining=days,
                target_date=format_date(expiry), recipient_role=OWNER_ROLE_LABEL,
            )
            counters.expiry_reminders += 1

    logger.info(
        "Reminder sweep finished. deadline=%s overdue=%s expiry=%s errors=%s",
        counters.deadline_reminders, counters.overdue_reminders, counters.expiry_reminders, len(counters.errors),
    )
    return counters
