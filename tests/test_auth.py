import uuid

import pytest
from jose import JWTError, jwt
from sqlalchemy import select

from doccontrol.core.auth.security import (
    bearer_matches, create_access_token, decode_access_token, generate_refresh_token, hash_password,
    hash_refresh_token, verify_password,
)
from doccontrol.core.auth.service import LocalAuthProvider, refresh_tokens
from doccontrol.core.auth.models import RefreshToken
from doccontrol.core.rbac.models import User
from doccontrol.errors import Forbidden, NotAuthenticated


def test_password_hash_roundtrip():
    plain = "MyS3cure!Pass"
    hashed = hash_password(plain)
    assert verify_password(plain, hashed)
    assert not verify_password("wrong", hashed)


def test_access_token_roundtrip():
    user_id = uuid.uuid4()
    payload = decode_access_token(create_access_token(user_id))
    assert payload["sub"] == str(user_id)
    assert payload["type"] == "access"


def test_forged_access_token_rejected():
    forged = jwt.encode({"sub": str(uuid.uuid4()), "type": "access"}, "not-the-secret", algorithm="HS256")
    with pytest.raises(JWTError):
        decode_access_token(forged)


def test_refresh_token_hash():
    raw, hashed = generate_refresh_token()
    assert hashed == hash_refresh_token(raw)


def test_bearer_matches():
    assert bearer_matches("Bearer s3cret", "s3cret")
    assert not bearer_matches("Bearer other", "s3cret")
    assert not bearer_matches("s3cret", "s3cret")
    assert not bearer_matches(None, "s3cret")


async def _user(db, email: str, password: str, is_active: bool = True) -> User:
    user = User(email=email, hashed_password=hash_password(password), is_active=is_active)
    db.add(user)
    await db.flush()
    return user


def test_login_success_sets_last_login(run_db):
    async def scenario(db):
        user = await _user(db, "anna@example.com", "pw-123456")
        result = await LocalAuthProvider().login(db, "Anna@Example.com", "pw-123456")
        return user, result

    user, result = run_db(scenario)
    assert user.last_login_at is not None
    assert decode_access_token(result.access_token)["sub"] == str(user.id)


def test_login_wrong_password(run_db):
    async def scenario(db):
        await _user(db, "anna@example.com", "pw-123456")
        with pytest.raises(NotAuthenticated):
            await LocalAuthProvider().login(db, "anna@example.com", "nope")

    run_db(scenario)


def test_login_inactive_user(run_db):
    async def scenario(db):
        await _user(db, "gone@example.com", "pw-123456", is_active=False)
        with pytest.raises(Forbidden):
            await LocalAuthProvider().login(db, "gone@example.com", "pw-123456")

    run_db(scenario)


def test_refresh_rotates_token(run_db):
    async def scenario(db):
        await _user(db, "anna@example.com", "pw-123456")
        first = await LocalAuthProvider().login(db, "anna@example.com", "pw-123456")
        second = await refresh_tokens(db, first.refresh_token)
        assert second.refresh_token != first.refresh_token

        old = (await db.execute(
            select(RefreshToken).where(RefreshToken.token_hash == hash_refresh_token(first.refresh_token))
        )).scalar_one()
        assert old.revoked_at is not None
        with pytest.raises(NotAuthenticated):
            await refresh_tokens(db, first.refresh_token)

    run_db(scenario)
