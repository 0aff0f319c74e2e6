import uuid
from dataclasses import dataclass, field
from typing import Annotated, AsyncGenerator

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from doccontrol.core.auth.security import decode_access_token
from doccontrol.core.notifications.email import Outbox, schedule_dispatch
from doccontrol.core.rbac.models import User, ROLE_ADMIN, ROLE_BPM
from doccontrol.core.rbac.service import get_role_names, get_user
from doccontrol.db.session import AsyncSessionLocal
from doccontrol.errors import Forbidden, NotAuthenticated

bearer = HTTPBearer(auto_error=False)


@dataclass
class CurrentUser:
    """Caller context resolved once per request and passed into every workflow operation."""
    user: User
    user_id: uuid.UUID
    roles: frozenset[str] = field(default_factory=frozenset)

    def has_any_role(self, *names: str) -> bool:
        return any(name in self.roles for name in names)


async def get_outbox() -> AsyncGenerator[Outbox, None]:
    """E-mails queued during the request. Nothing is sent if the request fails."""
    outbox = Outbox()
    yield outbox
    schedule_dispatch(outbox)


async def get_db(outbox: Outbox = Depends(get_outbox)) -> AsyncGenerator[AsyncSession, None]:
    # depends on the outbox so the outbox is released only after this commit
    async with AsyncSessionLocal() as session:
        async with session.begin():
            yield session


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer)],
    db: AsyncSession = Depends(get_db),
) -> CurrentUser:
    if not credentials:
        raise NotAuthenticated()
    try:
        payload = decode_access_token(credentials.credentials)
        user_id = uuid.UUID(payload["sub"])
    except (JWTError, KeyError, ValueError):
        raise NotAuthenticated("Invalid token")

    user = await get_user(db, user_id)
    if not user or not user.is_active:
        raise NotAuthenticated("User not found or inactive")

    roles = await get_role_names(db, user_id)
    return CurrentUser(user=user, user_id=user_id, roles=roles)


async def require_admin(
    current: CurrentUser = Depends(get_current_user),
) -> CurrentUser:
    if not current.has_any_role(ROLE_ADMIN):
        raise Forbidden("Admin role required")
    return current


async def require_document_controller(
    current: CurrentUser = Depends(get_current_user),
) -> CurrentUser:
    if not current.has_any_role(ROLE_ADMIN, ROLE_BPM):
        raise Forbidden("Admin or BPM role required")
    return current
