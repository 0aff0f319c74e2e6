import uuid
from typing import Iterable

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from doccontrol.core.notifications.models import Notification
from doccontrol.db.base import utcnow
from doccontrol.errors import NotFound


async def notify(
    db: AsyncSession,
    user_ids: Iterable[uuid.UUID],
    *,
    type: str,
    title: str,
    message: str,
    document_id: uuid.UUID | None = None,
    link: str | None = None,
) -> list[Notification]:
    """One row per distinct recipient."""
    rows = [
        Notification(user_id=uid, document_id=document_id, type=type, title=title, message=message, link=link)
        for uid in dict.fromkeys(user_ids)
    ]
    if rows:
        db.add_all(rows)
        await db.flush()
    return rows


async def unread_count(db: AsyncSession, user_id: uuid.UUID) -> int:
    result = await db.execute(
        select(func.count(Notification.id)).where(Notification.user_id == user_id, Notification.read_at.is_(None))
    )
    return result.scalar_one()


async def list_recent(db: AsyncSession, user_id: uuid.UUID, limit: int = 10) -> list[Notification]:
    result = await db.execute(
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def list_page(db: AsyncSession, user_id: uuid.UUID, page: int = 1, page_size: int = 20) -> tuple[list[Notification], int]:
    total = (await db.execute(
        select(func.count(Notification.id)).where(Notification.user_id == user_id)
    )).scalar_one()
    result = await db.execute(
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return list(result.scalars().all()), total


async def mark_read(db: AsyncSession, user_id: uuid.UUID, notification_id: uuid.UUID) -> None:
    """Idempotent. Only the owner's unread row is touched."""
    exists = (await db.execute(
        select(Notification.id).where(Notification.id == notification_id, Notification.user_id == user_id)
    )).first()
    if not exists:
        raise NotFound("Notification not found")
    await db.execute(
        update(Notification)
        .where(Notification.id == notification_id, Notification.read_at.is_(None))
        .values(read_at=utcnow())
    )


async def mark_all_read(db: AsyncSession, user_id: uuid.UUID) -> int:
    result = await db.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.read_at.is_(None))
        .values(read_at=utcnow())
    )
    return result.rowcount


async def delete_notification(db: AsyncSession, user_id: uuid.UUID, notification_id: uuid.UUID) -> None:
    result = await db.execute(
        delete(Notification).where(Notification.id == notification_id, Notification.user_id == user_id)
    )
    if not result.rowcount:
        raise NotFound("Notification not found")


async def delete_read(db: AsyncSession, user_id: uuid.UUID) -> int:
    result = await db.execute(
        delete(Notification).where(Notification.user_id == user_id, Notification.read_at.is_not(None))
    )
    return result.rowcount
