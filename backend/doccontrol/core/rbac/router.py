import uuid
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from doccontrol.core.rbac import service
from doccontrol.core.rbac.schemas import RoleRead, UserCreate, UserUpdate, UserRead, UserWithRoles, RoleAssignRequest, UserRoleRead
from doccontrol.dependencies import get_db, get_current_user, require_admin, CurrentUser
from doccontrol.errors import NotFound

router = APIRouter(tags=["users & roles"])


@router.post("/users", response_model=UserRead, status_code=201)
async def create_user(data: UserCreate, db: AsyncSession = Depends(get_db), current: CurrentUser = Depends(require_admin)):
    return await service.create_user(db, data, assigned_by=current.user_id)


@router.get("/users", response_model=list[UserWithRoles])
async def list_users(active_only: bool = False, db: AsyncSession = Depends(get_db), _: CurrentUser = Depends(get_current_user)):
    users = await service.list_users(db, active_only=active_only)
    roles = await service.get_role_names_by_user(db, [u.id for u in users])
    return [UserWithRoles.model_validate(u).model_copy(update={"roles": roles[u.id]}) for u in users]


@router.get("/users/{user_id}", response_model=UserRead)
async def get_user(user_id: uuid.UUID, db: AsyncSession = Depends(get_db), _: CurrentUser = Depends(get_current_user)):
    user = await service.get_user(db, user_id)
    if not user:
        raise NotFound("User not found")
    return user


@router.patch("/users/{user_id}", response_model=UserRead)
async def update_user(user_id: uuid.UUID, data: UserUpdate, db: AsyncSession = Depends(get_db), _: CurrentUser = Depends(require_admin)):
    user = await service.get_user(db, user_id)
    if not user:
        raise NotFound("User not found")
    return await service.update_user(db, user, data)


@router.delete("/users/{user_id}", status_code=204)
async def deactivate_user(user_id: uuid.UUID, db: AsyncSession = Depends(get_db), _: CurrentUser = Depends(require_admin)):
    user = await service.get_user(db, user_id)
    if not user:
        raise NotFound("User not found")
    await service.deactivate_user(db, user)


@router.get("/roles", response_model=list[RoleRead])
async def list_roles(db: AsyncSession = Depends(get_db), _: CurrentUser = Depends(get_current_user)):
    return await service.list_roles(db)


@router.post("/users/{user_id}/roles", response_model=UserRoleRead, status_code=201)
async def assign_role(user_id: uuid.UUID, body: RoleAssignRequest, db: AsyncSession = Depends(get_db), current: CurrentUser = Depends(require_admin)):
    return await service.assign_role(db, user_id, body.role_id, assigned_by=current.user_id)


@router.delete("/users/{user_id}/roles/{role_id}", status_code=204)
async def revoke_role(user_id: uuid.UUID, role_id: uuid.UUID, db: AsyncSession = Depends(get_db), _: CurrentUser = Depends(require_admin)):
    if not await service.revoke_role(db, user_id, role_id):
        raise NotFound("Assignment not found")
