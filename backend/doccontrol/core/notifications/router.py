import uuid
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from doccontrol.core.notifications import service
from doccontrol.core.notifications.email import render_email, send_email
from doccontrol.core.notifications.schemas import EmailSendRequest, NotificationPage, NotificationRead, UnreadCount
from doccontrol.dependencies import get_db, get_current_user, CurrentUser
from doccontrol.errors import ActionResult, ok

router = APIRouter(tags=["notifications"])


@router.get("/notifications/unread-count", response_model=UnreadCount)
async def unread_count(db: AsyncSession = Depends(get_db), current: CurrentUser = Depends(get_current_user)):
    return UnreadCount(count=await service.unread_count(db, current.user_id))


@router.get("/notifications/recent", response_model=list[NotificationRead])
async def list_recent(limit: int = Query(10, ge=1, le=100), db: AsyncSession = Depends(get_db), current: CurrentUser = Depends(get_current_user)):
    return await service.list_recent(db, current.user_id, limit=limit)


@router.get("/notifications", response_model=NotificationPage)
async def list_notifications(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    current: CurrentUser = Depends(get_current_user),
):
    items, total = await service.list_page(db, current.user_id, page=page, page_size=page_size)
    return NotificationPage(items=items, total=total, page=page, page_size=page_size)


@router.post("/notifications/{notification_id}/read", response_model=ActionResult)
async def mark_read(notification_id: uuid.UUID, db: AsyncSession = Depends(get_db), current: CurrentUser = Depends(get_current_user)):
    await service.mark_read(db, current.user_id, notification_id)
    return ok()


@router.post("/notifications/read-all", response_model=ActionResult)
async def mark_all_read(db: AsyncSession = Depends(get_db), current: CurrentUser = Depends(get_current_user)):
    count = await service.mark_all_read(db, current.user_id)
    return ok(data={"updated": count})


@router.delete("/notifications/read", response_model=ActionResult)
async def delete_read(db: AsyncSession = Depends(get_db), current: CurrentUser = Depends(get_current_user)):
    count = await service.delete_read(db, current.user_id)
    return ok(data={"deleted": count})


@router.delete("/notifications/{notification_id}", response_model=ActionResult)
async def delete_notification(notification_id: uuid.UUID, db: AsyncSession = Depends(get_db), current: CurrentUser = Depends(get_current_user)):
    await service.delete_notification(db, current.user_id, notification_id)
    return ok()


@router.post("/api/email/send", response_model=ActionResult)
async def send_one_email(body: EmailSendRequest, _: CurrentUser = Depends(get_current_user)):
    to = [body.to] if isinstance(body.to, str) else list(body.to)
    html = render_email(body.template, body.data)
    message_id = await send_email(to, body.subject, html)
    return ok("Email sent", data={"id": message_id})
