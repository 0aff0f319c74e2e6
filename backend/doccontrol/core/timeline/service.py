import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from doccontrol.core.timeline.models import TimelineEntry
from doccontrol.db.base import utcnow


async def record_event(
    db: AsyncSession,
    *,
    document_id: uuid.UUID,
    event_type: str,
    event_title: str,
    performed_by: uuid.UUID | None,
    event_description: str | None = None,
    old_status: str | None = None,
    new_status: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> TimelineEntry:
    entry = TimelineEntry(
        document_id=document_id,
        event_type=event_type,
        event_title=event_title,
        event_description=event_description,
        old_status=old_status,
        new_status=new_status,
        performed_by=performed_by,
        event_metadata=metadata,
        created_at=utcnow(),
    )
    db.add(entry)
    await db.flush()
    return entry


async def list_events(db: AsyncSession, document_id: uuid.UUID) -> list[TimelineEntry]:
    result = await db.execute(
        select(TimelineEntry)
        .where(TimelineEntry.document_id == document_id)
        .order_by(TimelineEntry.created_at, TimelineEntry.id)
    )
    return list(result.scalars().all())


async def list_recent(db: AsyncSession, limit: int = 10) -> list[TimelineEntry]:
    result = await db.execute(select(TimelineEntry).order_by(TimelineEntry.created_at.desc()).limit(limit))
    return list(result.scalars().all())
