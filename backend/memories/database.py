"""
Memories Backend: Database Session Management
==============================================

What:  Async SQLAlchemy engine, session factory, declarative Base and the
       FastAPI session dependency.
How:   One pooled async engine per process. Each request gets its own
       AsyncSession, committed when the handler returns normally and rolled
       back when it raises.
Who:   PageStore and LetterService receive sessions from get_db_session().

Pool sizing comes from settings (DB_POOL_SIZE, DB_MAX_OVERFLOW); connections
are pinged before use and recycled hourly.
"""

import logging
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from memories.config import settings

logger = logging.getLogger(__name__)


engine = create_async_engine(
    settings.database_url,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    pool_pre_ping=settings.db_pool_pre_ping,
    pool_recycle=3600,
    echo=settings.log_level == "DEBUG",
)

# expire_on_commit=False: rows stay readable after the commit in get_db_session
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Declarative base shared by all ORM models (and Alembic's metadata)."""


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency yielding one session per request.

    Commits after the handler returns; rolls back and re-raises on any
    exception so a failed page save never half-writes.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def check_database() -> bool:
    """Runs SELECT 1; used by the health endpoint."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.warning("Database health check failed: %s", e)
        return False


async def dispose_engine() -> None:
    """Closes every pooled connection; called on application shutdown."""
    await engine.dispose()
