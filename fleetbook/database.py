"""Async database engine, session factory and FastAPI dependency."""

from typing import AsyncIterator

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from fleetbook.config import settings
from fleetbook.models import Base

logger = structlog.get_logger()

engine = create_async_engine(
    settings.database_url,
    pool_pre_ping=True,
)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency yielding a session; rolled back if left uncommitted."""
    async with async_session_maker() as session:
        yield session


async def init_db() -> None:
    """Create the gist extension used by the availability exclusion constraint and all tables."""
    async with engine.begin() as conn:
        await conn.execute(text("CREATE EXTENSION IF NOT EXISTS btree_gist"))
        await conn.run_sync(Base.metadata.create_all)
    logger.info("database_initialized")
