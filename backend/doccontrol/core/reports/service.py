from datetime import date, datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from doccontrol.core.departments.models import Department
from doccontrol.core.document_types.models import DocumentType
from doccontrol.core.documents.models import Document
from doccontrol.core.documents.workflow import DocumentStatus
from doccontrol.core.reports.schemas import (
    DepartmentStats, DocumentTypeStats, ExpiringDocument, MonthlyTrend, StatusCount, Summary,
)
from doccontrol.core.timeline.schemas import TimelineEntryRead
from doccontrol.core.timeline.service import list_recent


async def status_counts(db: AsyncSession) -> list[StatusCount]:
    result = await db.execute(select(Document.status, func.count(Document.id)).group_by(Document.status))
    counts = dict(result.all())
    return [StatusCount(status=s, count=counts[s]) for s in DocumentStatus.ALL if counts.get(s)]


async def department_stats(db: AsyncSession, today: date) -> list[DepartmentStats]:
    departments = (await db.execute(
        select(Department).where(Department.deleted_at.is_(None)).order_by(Department.name)
    )).scalars().all()
    stats = {
        d.id: DepartmentStats(department_id=d.id, department_name=d.name, department_code=d.code)
        for d in departments
    }
    rows = await db.execute(select(Document.department_id, Document.status, Document.expiry_date))
    for department_id, status, expiry in rows.all():
        entry = stats.get(department_id)
        if entry is None:
            continue
        entry.total_count += 1
        if status in DocumentStatus.PRE_APPROVAL:
            entry.draft_count += 1
        elif status in DocumentStatus.PUBLISHED:
            entry.published_count += 1
            if expiry and expiry < today:
                entry.expired_count += 1
            else:
                entry.valid_count += 1
    return [s for s in stats.values() if s.total_count > 0]


async def document_type_stats(db: AsyncSession) -> list[DocumentTypeStats]:
    result = await db.execute(
        select(DocumentType.id, DocumentType.name, DocumentType.code, func.count(Document.id))
        .join(Document, Document.document_type_id == DocumentType.id)
        .group_by(DocumentType.id, DocumentType.name, DocumentType.code)
        .order_by(func.count(Document.id).desc(), DocumentType.name)
    )
    return [DocumentTypeStats(document_type_id=i, name=n, code=c, count=k) for i, n, c, k in result.all()]


async def expiring_documents(db: AsyncSession, today: date, within_days: int = 90) -> list[ExpiringDocument]:
    result = await db.execute(
        select(Document, Department.name)
        .outerjoin(Department, Department.id == Document.department_id)
        .where(
            Document.status.in_(DocumentStatus.PUBLISHED),
            Document.expiry_date >= today,
            Document.expiry_date <= today + timedelta(days=within_days),
        )
        .order_by(Document.expiry_date)
    )
    return [
        ExpiringDocument(
            id=doc.id, document_number=doc.document_number, title=doc.title, department_name=dept_name,
            expiry_date=doc.expiry_date, days_until_expiry=(doc.expiry_date - today).days,
        )
        for doc, dept_name in result.all()
    ]


def _month_keys(today: date, months: int) -> list[tuple[int, int]]:
    keys = []
    year, month = today.year, today.month
    for _ in range(months):
        keys.append((year, month))
        year, month = (year - 1, 12) if month == 1 else (year, month - 1)
    return list(reversed(keys))


def _month_of(value: datetime | None) -> tuple[int, int] | None:
    return (value.year, value.month) if value else None


async def monthly_trend(db: AsyncSession, today: date, months: int = 6) -> list[MonthlyTrend]:
    """Documents created and approved per calendar month, oldest first, empty months included."""
    keys = _month_keys(today, months)
    start = datetime(keys[0][0], keys[0][1], 1)
    created = {k: 0 for k in keys}
    approved = {k: 0 for k in keys}
    result = await db.execute(
        select(Document.created_at, Document.approved_at).where(
            (Document.created_at >= start) | (Document.approved_at >= start)
        )
    )
    for created_at, approved_at in result.all():
        if _month_of(created_at) in created:
            created[_month_of(created_at)] += 1
        if _month_of(approved_at) in approved:
            approved[_month_of(approved_at)] += 1
    return [
        MonthlyTrend(month=f"{date(y, m, 1):%b %Y}", created=created[(y, m)], approved=approved[(y, m)])
        for y, m in keys
    ]


async def summary(db: AsyncSession, recent: int = 10) -> Summary:
    counts = {c.status: c.count for c in await status_counts(db)}
    total = sum(counts.values())
    approved = counts.get(DocumentStatus.APPROVED, 0)
    rejected = counts.get(DocumentStatus.REJECTED, 0)
    in_progress = sum(counts.get(s, 0) for s in DocumentStatus.PRE_APPROVAL)
    denominator = total or 1
    return Summary(
        total=total,
        approved=approved,
        rejected=rejected,
        in_progress=in_progress,
        approval_rate=round(approved / denominator * 100, 1),
        rejection_rate=round(rejected / denominator * 100, 1),
        recent_activity=[TimelineEntryRead.model_validate(e) for e in await list_recent(db, limit=recent)],
    )
