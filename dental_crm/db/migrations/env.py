"""
Alembic environment for the CRM schema.

Online runs use an asyncpg engine built from the database settings; offline
runs (``--sql``) render SQL for the plain postgresql URL. dental_crm.db.run_migrations
drives this file from code, so no alembic.ini is needed.
"""

from __future__ import annotations

import asyncio

from alembic import context
from sqlalchemy import pool
from sqlalchemy.ext.asyncio import create_async_engine

from dental_crm.db import models  # noqa: F401
from dental_crm.db.base import Base
from dental_crm.db.config import get_settings

config = context.config
settings = get_settings()
target_metadata = Base.metadata

COMPARE_OPTIONS = {"compare_type": True, "compare_server_default": True}


def _offline() -> None:
    url = config.get_main_option("sqlalchemy.url") or settings.sync_database_url
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **COMPARE_OPTIONS,
    )
    with context.begin_transaction():
        context.run_migrations()


def _migrate(connection) -> None:
    context.configure(connection=connection, target_metadata=target_metadata, **COMPARE_OPTIONS)
    with context.begin_transaction():
        context.run_migrations()


async def _online() -> None:
    engine = create_async_engine(settings.async_database_url, poolclass=pool.NullPool)
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_migrate)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    _offline()
else:
    asyncio.run(_online())
