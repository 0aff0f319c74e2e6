import asyncio
import logging
import os

from doccontrol.core.auth.security import hash_password
from doccontrol.core.rbac.models import ROLE_ADMIN, User, UserRole
from doccontrol.core.rbac.service import ensure_system_roles, get_user_by_email
from doccontrol.db.session import get_session
from doccontrol.logging import setup_app_logging

logger = logging.getLogger(__name__)


async def seed() -> None:
    admin_email = os.getenv("SEED_ADMIN_EMAIL", "admin@doccontrol.local")
    admin_password = os.getenv("SEED_ADMIN_PASSWORD", "changeme123!")

    async with get_session() as db:
        roles = {role.name: role for role in await ensure_system_roles(db)}
        logger.info("System roles ready. roles=%s", ",".join(sorted(roles)))

        user = await get_user_by_email(db, admin_email)
        if not user:
            user = User(
                email=admin_email.lower(),
                hashed_password=hash_password(admin_password),
                full_name="Administrator",
            )
            db.add(user)
            await db.flush()
            db.add(UserRole(user_id=user.id, role_id=roles[ROLE_ADMIN].id))
            await db.flush()
            logger.info("Admin user created. email=%s", user.email)
        else:
            logger.info("Admin user exists. email=%s", user.email)


if __name__ == "__main__":
    setup_app_logging()
    asyncio.run(seed())
