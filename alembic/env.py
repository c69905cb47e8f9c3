"""
Alembic migration environment.

Online migrations run over the application's asyncpg engine, so no sync
driver is needed. Offline mode only renders SQL and uses the sync URL for
its dialect.
"""

import asyncio
from logging.config import fileConfig

from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config
from alembic import context

from campwaitlist.core.config import get_settings
from campwaitlist.db.base import Base
from campwaitlist.models import User, Camper, Camp, Registration  # noqa: F401

WAITLIST_TABLES = {"users", "campers", "camps", "registrations"}

# Every table the migrations manage must have a mapped model
assert set(Base.metadata.tables) == WAITLIST_TABLES, (
    f"Mapped tables {set(Base.metadata.tables)} do not match {WAITLIST_TABLES}"
)

config = context.config
settings = get_settings()

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Render migrations as SQL without connecting."""
    context.configure(
        url=settings.DATABASE_URL_SYNC,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        compare_type=True,
    )
    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    config.set_main_option("sqlalchemy.url", settings.DATABASE_URL)
    connectable = async_engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)
    await connectable.dispose()


def run_migrations_online() -> None:
    asyncio.run(run_async_migrations())


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
