import uuid
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from doccontrol.core.rbac.models import User, Role, UserRole, SYSTEM_ROLES
from doccontrol.core.rbac.schemas import UserCreate, UserUpdate
from doccontrol.core.auth.security import hash_password
from doccontrol.errors import Conflict, NotFound


async def create_user(db: AsyncSession, data: UserCreate, assigned_by: uuid.UUID | None = None) -> User:
    if await get_user_by_email(db, data.email):
        raise Conflict("Email already registered")
    user = User(
        email=data.email.lower(),
        hashed_password=hash_password(data.password),
        full_name=data.full_name,
        employee_id=data.employee_id,
        job_title=data.job_title,
        department_id=data.department_id,
    )
    db.add(user)
    await db.flush()
    for name in data.role_names:
        role = await get_role_by_name(db, name)
        if not role:
            raise NotFound(f"Role '{name}' not found")
        db.add(UserRole(user_id=user.id, role_id=role.id, assigned_by=assigned_by))
    await db.flush()
    await db.refresh(user)
    return user


async def get_user(db: AsyncSession, user_id: uuid.UUID) -> User | None:
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == email.lower()))
    return result.scalar_one_or_none()


async def get_users(db: AsyncSession, user_ids: list[uuid.UUID]) -> list[User]:
    if not user_ids:
        return []
    result = await db.execute(select(User).where(User.id.in_(user_ids)))
    return list(result.scalars().all())


async def list_users(db: AsyncSession, active_only: bool = False) -> list[User]:
    query = select(User).order_by(User.full_name)
    if active_only:
        query = query.where(User.is_active == True)
    result = await db.execute(query)
    return list(result.scalars().all())


async def update_user(db: AsyncSession, user: User, data: UserUpdate) -> User:
    for field, value in data.model_dump(exclude_none=True).items():
        setattr(user, field, value)
    await db.flush()
    await db.refresh(user)
    return user


async def deactivate_user(db: AsyncSession, user: User) -> None:
    user.is_active = False
    await db.flush()


async def get_role_names(db: AsyncSession, user_id: uuid.UUID) -> frozenset[str]:
    """Role names for one user, resolved with a single join."""
    result = await db.execute(
        select(Role.name)
        .join(UserRole, UserRole.role_id == Role.id)
        .where(UserRole.user_id == user_id)
    )
    return frozenset(result.scalars().all())


async def get_role_names_by_user(db: AsyncSession, user_ids: list[uuid.UUID]) -> dict[uuid.UUID, list[str]]:
    roles: dict[uuid.UUID, list[str]] = {uid: [] for uid in user_ids}
    if not user_ids:
        return roles
    result = await db.execute(
        select(UserRole.user_id, Role.name)
        .join(Role, Role.id == UserRole.role_id)
        .where(UserRole.user_id.in_(user_ids))
        .order_by(Role.name)
    )
    for user_id, name in result.all():
        roles[user_id].append(name)
    return roles


async def get_role_by_name(db: AsyncSession, name: str) -> Role | None:
    result = await db.execute(select(Role).where(Role.name == name))
    return result.scalar_one_or_none()


async def list_roles(db: AsyncSession) -> list[Role]:
    result = await db.execute(select(Role).order_by(Role.name))
    return list(result.scalars().all())


async def ensure_system_roles(db: AsyncSession) -> list[Role]:
    roles = []
    for name in SYSTEM_ROLES:
        role = await get_role_by_name(db, name)
        if not role:
            role = Role(name=name, is_system_role=True)
            db.add(role)
            await db.flush()
        roles.append(role)
    return roles


async def assign_role(db: AsyncSession, user_id: uuid.UUID, role_id: uuid.UUID, assigned_by: uuid.UUID | None) -> UserRole:
    result = await db.execute(
        select(UserRole).where(UserRole.user_id == user_id, UserRole.role_id == role_id)
    )
    if result.scalar_one_or_none():
        raise Conflict("Role already assigned")
    assignment = UserRole(user_id=user_id, role_id=role_id, assigned_by=assigned_by)
    db.add(assignment)
    await db.flush()
    await db.refresh(assignment)
    return assignment


async def revoke_role(db: AsyncSession, user_id: uuid.UUID, role_id: uuid.UUID) -> bool:
    result = await db.execute(select(UserRole).where(UserRole.user_id == user_id, UserRole.role_id == role_id))
    assignment = result.scalar_one_or_none()
    if not assignment:
        return False
    await db.delete(assignment)
    await db.flush()
    return True
