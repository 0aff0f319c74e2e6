from logging.config import fileConfig
from alembic import context
from sqlalchemy import engine_from_config, pool
from doccontrol.db.base import Base  # noqa
from doccontrol.core.rbac.models import User, Role, UserRole  # noqa
from doccontrol.core.auth.models import RefreshToken  # noqa
from doccontrol.core.departments.models import Department  # noqa
from doccontrol.core.document_types.models import DocumentType  # noqa
from doccontrol.core.documents.models import (  # noqa
    Document, DocumentAssignment, DocumentReview, DocumentApproval, DocumentComment, AffectedDepartment,
)
from doccontrol.core.timeline.models import TimelineEntry  # noqa
from doccontrol.core.notifications.models import Notification  # noqa
from doccontrol.settings import get_settings

config = context.config
if config.config_file_name:
    fileConfig(config.config_file_name)
target_metadata = Base.metadata

def get_url() -> str:
    return get_settings().DATABASE_SYNC_URL

def run_migrations_offline() -> None:
    context.configure(url=get_url(), target_metadata=target_metadata, literal_binds=True, dialect_opts={"paramstyle": "named"})
    with context.begin_transaction():
        context.run_migrations()

def run_migrations_online() -> None:
    cfg = config.get_section(config.config_ini_section, {})
    cfg["sqlalchemy.url"] = get_url()
    connectable = engine_from_config(cfg, prefix="sqlalchemy.", poolclass=pool.NullPool)
    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata)
        with context.begin_transaction():
            context.run_migrations()

if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
