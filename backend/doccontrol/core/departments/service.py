import uuid
from datetime import datetime, timezone
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from doccontrol.core.departments.models import Department
from doccontrol.core.departments.schemas import DepartmentCreate, DepartmentUpdate
from doccontrol.errors import Conflict, NotFound


async def _assert_unique(db: AsyncSession, name: str | None, code: str | None, exclude_id: uuid.UUID | None = None) -> None:
    """Name and code are unique across every row, soft-deleted ones included."""
    checks = []
    if name is not None:
        checks.append(("name", name.strip(), func.lower(Department.name) == name.strip().lower()))
    if code is not None:
        checks.append(("code", code.strip().upper(), func.upper(Department.code) == code.strip().upper()))
    for label, value, condition in checks:
        query = select(Department.deleted_at).where(condition)
        if exclude_id:
            query = query.where(Department.id != exclude_id)
        row = (await db.execute(query)).first()
        if row is None:
            continue
        if row.deleted_at is not None:
            raise Conflict(f"Department {label} '{value}' belongs to a deleted department; restore it instead")
        raise Conflict(f"Department {label} '{value}' already exists")


async def create_department(db: AsyncSession, data: DepartmentCreate) -> Department:
    await _assert_unique(db, data.name, data.code)
    department = Department(name=data.name.strip(), code=data.code.strip().upper(), description=data.description)
    db.add(department)
    await db.flush()
    await db.refresh(department)
    return department


async def get_department(db: AsyncSession, department_id: uuid.UUID) -> Department | None:
    result = await db.execute(
        select(Department).where(Department.id == department_id, Department.deleted_at.is_(None))
    )
    return result.scalar_one_or_none()


async def list_departments(db: AsyncSession, active_only: bool = False) -> list[Department]:
    query = select(Department).where(Department.deleted_at.is_(None)).order_by(Department.name)
    if active_only:
        query = query.where(Department.is_active == True)
    result = await db.execute(query)
    return list(result.scalars().all())


async def update_department(db: AsyncSession, department: Department, data: DepartmentUpdate) -> Department:
    await _assert_unique(db, data.name, data.code, exclude_id=department.id)
    values = data.model_dump(exclude_none=True)
    if "code" in values:
        values["code"] = values["code"].strip().upper()
    for field, value in values.items():
        setattr(department, field, value)
    await db.flush()
    await db.refresh(department)
    return department


async def delete_department(db: AsyncSession, department: Department) -> None:
    """Soft delete. Refused while users or documents still point at the department."""
    from doccontrol.core.documents.models import Document
    from doccontrol.core.rbac.models import User

    users = (await db.execute(select(func.count(User.id)).where(User.department_id == department.id))).scalar_one()
    docs = (await db.execute(select(func.count(Document.id)).where(Document.department_id == department.id))).scalar_one()
    if users or docs:
        raise Conflict(f"Department is in use by {users} user(s) and {docs} document(s)")
    department.deleted_at = datetime.now(timezone.utc)
    department.is_active = False
    await db.flush()


async def restore_department(db: AsyncSession, department_id: uuid.UUID) -> Department:
    department = await db.get(Department, department_id)
    if not department:
        raise NotFound("Department not found")
    if department.deleted_at is None:
        raise Conflict("Department is not deleted")
    department.deleted_at = None
    department.is_active = True
    await db.flush()
    await db.refresh(department)
    return department


async def require_department(db: AsyncSession, department_id: uuid.UUID) -> Department:
    department = await get_department(db, department_id)
    if not department:
        raise NotFound("Department not found")
    return department
