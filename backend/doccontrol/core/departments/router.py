import uuid
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from doccontrol.core.departments import service
from doccontrol.core.departments.schemas import DepartmentCreate, DepartmentUpdate, DepartmentRead
from doccontrol.dependencies import get_db, get_current_user, require_document_controller, CurrentUser

router = APIRouter(tags=["departments"])


@router.post("/departments", response_model=DepartmentRead, status_code=201)
async def create_department(data: DepartmentCreate, db: AsyncSession = Depends(get_db), _: CurrentUser = Depends(require_document_controller)):
    return await service.create_department(db, data)


@router.get("/departments", response_model=list[DepartmentRead])
async def list_departments(active_only: bool = False, db: AsyncSession = Depends(get_db), _: CurrentUser = Depends(get_current_user)):
    return await service.list_departments(db, active_only=active_only)


@router.get("/departments/{department_id}", response_model=DepartmentRead)
async def get_department(department_id: uuid.UUID, db: AsyncSession = Depends(get_db), _: CurrentUser = Depends(get_current_user)):
    return await service.require_department(db, department_id)


@router.patch("/departments/{department_id}", response_model=DepartmentRead)
async def update_department(department_id: uuid.UUID, data: DepartmentUpdate, db: AsyncSession = Depends(get_db), _: CurrentUser = Depends(require_document_controller)):
    department = await service.require_department(db, department_id)
    return await service.update_department(db, department, data)


@router.delete("/departments/{department_id}", status_code=204)
async def delete_department(department_id: uuid.UUID, db: AsyncSession = Depends(get_db), _: CurrentUser = Depends(require_document_controller)):
    department = await service.require_department(db, department_id)
    await service.delete_department(db, department)


@router.post("/departments/{department_id}/restore", response_model=DepartmentRead)
async def restore_department(department_id: uuid.UUID, db: AsyncSession = Depends(get_db), _: CurrentUser = Depends(require_document_controller)):
    return await service.restore_department(db, department_id)
