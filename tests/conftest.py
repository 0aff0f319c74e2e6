import asyncio
import uuid
from datetime import date, timedelta

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from doccontrol.db.base import Base
from doccontrol.core.rbac.models import User, Role, UserRole, ROLE_ADMIN, ROLE_BPM, ROLE_MQS_REPS, ROLE_USER  # noqa
from doccontrol.core.auth.models import RefreshToken  # noqa
from doccontrol.core.departments.models import Department
from doccontrol.core.document_types.models import DocumentType
from doccontrol.core.documents.models import Document  # noqa
from doccontrol.core.timeline.models import TimelineEntry  # noqa
from doccontrol.core.notifications.models import Notification  # noqa
from doccontrol.dependencies import CurrentUser


@pytest.fixture
def run_db():
    """Run ``fn(session)`` inside one transaction on a fresh in-memory database."""
    def _run(fn):
        async def _main():
            engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            session_factory = async_sessionmaker(engine, expire_on_commit=False, autoflush=False)
            try:
                async with session_factory() as session:
                    async with session.begin():
                        return await fn(session)
            finally:
                await engine.dispose()
        return asyncio.run(_main())
    return _run


async def make_user(db, email: str, *roles: str, full_name: str | None = None) -> CurrentUser:
    user = User(id=uuid.uuid4(), email=email, full_name=full_name or email.split("@")[0].title())
    db.add(user)
    await db.flush()
    return CurrentUser(user=user, user_id=user.id, roles=frozenset(roles))


async def make_reference_data(db, dept_code: str = "IT", type_code: str = "PR") -> tuple[Department, DocumentType]:
    department = Department(id=uuid.uuid4(), name=f"Dept {dept_code}", code=dept_code)
    doc_type = DocumentType(id=uuid.uuid4(), name=f"Type {type_code}", code=type_code)
    db.add_all([department, doc_type])
    await db.flush()
    return department, doc_type


def future(days: int = 30) -> date:
    return date.today() + timedelta(days=days)
