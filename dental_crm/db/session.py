"""
Async engine and session factory for the CRM database.

Both are created on first use so importing the application (tests, the
migration runner) never opens a connection.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .config import get_settings

logger = logging.getLogger(__name__)

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def _factory() -> async_sessionmaker[AsyncSession]:
    global _engine, _session_factory
    if _session_factory is None:
        settings = get_settings()
        _engine = create_async_engine(
            settings.async_database_url,
            echo=settings.SQL_ECHO,
            pool_pre_ping=True,
            pool_size=settings.POOL_SIZE,
            max_overflow=settings.MAX_OVERFLOW,
        )
        # Objects stay readable after commit; services return them to the routes
        _session_factory = async_sessionmaker(bind=_engine, expire_on_commit=False, autoflush=False)
        logger.info("Database engine created (pool_size=%d)", settings.POOL_SIZE)
    return _session_factory


# PUBLIC_INTERFACE
def get_engine() -> AsyncEngine:
    """Return the process-wide AsyncEngine, creating it if needed."""
    _factory()
    assert _engine is not None
    return _engine


# PUBLIC_INTERFACE
async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Request-scoped session for FastAPI dependencies. Services commit
    explicitly; anything still pending when the request fails is rolled back.
    """
    async with _factory()() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


# PUBLIC_INTERFACE
@asynccontextmanager
async def session_scope(commit: bool = False) -> AsyncGenerator[AsyncSession, None]:
    """
    Session for work outside a request (seeding, scripts). With ``commit=True``
    the session is committed when the block exits cleanly.
    """
    async with _factory()() as session:
        try:
            yield session
            if commit:
                await session.commit()
        except Exception:
            await session.rollback()
            raise


# PUBLIC_INTERFACE
async def dispose_engine() -> None:
    """Close pooled connections; the next use creates a fresh engine."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        logger.info("Database engine disposed")
    _engine = None
    _session_factory = None
