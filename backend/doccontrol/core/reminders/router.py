from datetime import date

from fastapi import APIRouter, Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from doccontrol.core.auth.security import bearer_matches
from doccontrol.core.notifications.email import Outbox
from doccontrol.core.reminders.service import scan_reminders
from doccontrol.db.base import utcnow
from doccontrol.dependencies import get_db, get_outbox
from doccontrol.errors import ActionResult, NotAuthenticated, ok
from doccontrol.settings import get_settings

router = APIRouter(tags=["cron"])


def verify_cron_secret(authorization: str | None = Header(default=None)) -> None:
    secret = get_settings().CRON_SECRET
    if secret and not bearer_matches(authorization, secret):
        raise NotAuthenticated("Unauthorized")


@router.get("/api/cron/reminders", response_model=ActionResult, dependencies=[Depends(verify_cron_secret)])
async def run_reminders(db: AsyncSession = Depends(get_db), outbox: Outbox = Depends(get_outbox)):
    counters = await scan_reminders(db, date.today(), outbox)
    return ok("Reminder job completed", data={**counters.model_dump(), "timestamp": utcnow().isoformat()})
