"""
Alembic environment for the Custody Scheduler.

The database comes from Settings (DATABASE_URL). SQLite migrations run in
batch mode, PostgreSQL ones alter tables in place.
"""

import logging
from logging.config import fileConfig

from sqlalchemy import create_engine, pool

from alembic import context

from custody_scheduler.config import get_settings
from custody_scheduler.models import Base  # registers every table on Base.metadata

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

logger = logging.getLogger("alembic.env")
settings = get_settings()

MIGRATION_OPTIONS = dict(
    target_metadata=Base.metadata,
    render_as_batch=settings.uses_sqlite,
    compare_type=True,
    compare_server_default=True,
)


def migrate_offline() -> None:
    """Print the migration SQL (alembic upgrade --sql) for review."""
    context.configure(
        url=settings.database_url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **MIGRATION_OPTIONS,
    )
    with context.begin_transaction():
        context.run_migrations()


def migrate_online() -> None:
    """Apply migrations over one unpooled connection."""
    migration_engine = create_engine(settings.database_url, poolclass=pool.NullPool)
    try:
        with migration_engine.connect() as connection:
            context.configure(connection=connection, **MIGRATION_OPTIONS)
            with context.begin_transaction():
                context.run_migrations()
    finally:
        migration_engine.dispose()


if context.is_offline_mode():
    logger.info(f"Rendering {settings.database_backend} migration SQL")
    migrate_offline()
else:
    logger.info(f"Migrating {settings.database_backend} database")
    migrate_online()
