import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from doccontrol.core.auth.models import RefreshToken
from doccontrol.core.auth.security import create_access_token, generate_refresh_token, hash_refresh_token, verify_password
from doccontrol.core.rbac.models import User
from doccontrol.errors import Forbidden, NotAuthenticated
from doccontrol.settings import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)


class AuthResult:
    def __init__(self, access_token: str, refresh_token: str):
        self.access_token = access_token
        self.refresh_token = refresh_token


class LocalAuthProvider:
    async def login(self, db: AsyncSession, email: str, password: str) -> AuthResult:
        result = await db.execute(select(User).where(User.email == email.lower()))
        user: User | None = result.scalar_one_or_none()

        if not user or not user.hashed_password or not verify_password(password, user.hashed_password):
            logger.info("Login rejected. email=%s", email.lower())
            raise NotAuthenticated("Invalid credentials")
        if not user.is_active:
            raise Forbidden("Account deactivated")

        now = datetime.now(timezone.utc)
        user.last_login_at = now
        access_token = create_access_token(user.id)
        raw_refresh, refresh_hash = generate_refresh_token()

        db.add(RefreshToken(
            user_id=user.id,
            token_hash=refresh_hash,
            expires_at=now + timedelta(days=settings.JWT_REFRESH_TOKEN_EXPIRE_DAYS),
        ))
        await db.flush()
        return AuthResult(access_token=access_token, refresh_token=raw_refresh)


_provider = LocalAuthProvider()


def get_auth_provider() -> LocalAuthProvider:
    return _provider


async def refresh_tokens(db: AsyncSession, raw_token: str) -> AuthResult:
    token_hash = hash_refresh_token(raw_token)
    result = await db.execute(select(RefreshToken).where(RefreshToken.token_hash == token_hash))
    db_token: RefreshToken | None = result.scalar_one_or_none()

    now = datetime.now(timezone.utc)
    if not db_token or db_token.revoked_at is not None or db_token.expires_at.replace(tzinfo=timezone.utc) < now:
        raise NotAuthenticated("Invalid or expired refresh token")

    db_token.revoked_at = now
    access_token = create_access_token(db_token.user_id)
    raw_new, new_hash = generate_refresh_token()

    db.add(RefreshToken(
        user_id=db_token.user_id,
        token_hash=new_hash,
        expires_at=now + timedelta(days=settings.JWT_REFRESH_TOKEN_EXPIRE_DAYS),
    ))
    await db.flush()
    return AuthResult(access_token=access_token, refresh_token=raw_new)


async def logout(db: AsyncSession, raw_token: str) -> None:
    token_hash = hash_refresh_token(raw_token)
    result = await db.execute(select(RefreshToken).where(RefreshToken.token_hash == token_hash))
    db_token: RefreshToken | None = result.scalar_one_or_none()
    if db_token and db_token.revoked_at is None:
        db_token.revoked_at = datetime.now(timezone.utc)
        await db.flush()
