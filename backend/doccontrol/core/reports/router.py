from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from doccontrol.core.reports import service
from doccontrol.core.reports.schemas import Dashboard, ExpiringDocument
from doccontrol.dependencies import get_db, get_current_user, CurrentUser

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get("/dashboard", response_model=Dashboard)
async def dashboard(db: AsyncSession = Depends(get_db), _: CurrentUser = Depends(get_current_user)):
    today = date.today()
    return Dashboard(
        summary=await service.summary(db),
        status_counts=await service.status_counts(db),
        departments=await service.department_stats(db, today),
        document_types=await service.document_type_stats(db),
        expiring=await service.expiring_documents(db, today),
        monthly=await service.monthly_trend(db, today),
    )


@router.get("/expiring", response_model=list[ExpiringDocument])
async def expiring(
    within_days: int = Query(90, ge=1, le=3650),
    db: AsyncSession = Depends(get_db),
    _: CurrentUser = Depends(get_current_user),
):
    return await service.expiring_documents(db, date.today(), within_days)
