"""Database engine and sessions.

The task store is owned by the task service. Search only reads it, so every
connection runs read-only transactions and sessions are never committed.
"""

from collections.abc import AsyncGenerator
from typing import Annotated

import structlog
from fastapi import Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from tasksearch.config import Settings, get_settings

logger = structlog.get_logger()


def build_engine(settings: Settings) -> AsyncEngine:
    return create_async_engine(
        str(settings.database_url),
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_timeout=settings.database_pool_timeout,
        pool_pre_ping=True,
        echo=settings.debug,
        execution_options={"postgresql_readonly": True},
    )


engine = build_engine(get_settings())

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def init_db() -> None:
    """Fail fast on startup if the task store is unreachable."""
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    logger.info("task_store_connected", pool_size=engine.pool.size())


async def close_db() -> None:
    await engine.dispose()


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield a read-only session for dependency injection."""
    async with async_session_factory() as session:
        yield session


# Type alias for dependency injection
DBSession = Annotated[AsyncSession, Depends(get_db_session)]
