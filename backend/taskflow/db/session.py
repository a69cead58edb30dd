"""Async engine and per-request sessions."""

from collections.abc import AsyncGenerator
from typing import Annotated

import structlog
from fastapi import Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from taskflow.config import get_settings

logger = structlog.get_logger()
settings = get_settings()


def _engine_options(url: str) -> dict:
    # SQLite (local dev, tests) has no connection pool to size
    if url.startswith("sqlite"):
        return {}
    return {
        "pool_size": settings.database_pool_size,
        "max_overflow": settings.database_max_overflow,
        "pool_timeout": settings.database_pool_timeout,
        "pool_pre_ping": True,
    }


def build_engine(url: str | None = None) -> AsyncEngine:
    url = url or settings.database_url
    return create_async_engine(url, echo=settings.debug, **_engine_options(url))


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Sessions keep loaded attributes after commit; services commit explicitly."""
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = build_engine()
async_session_factory = build_session_factory(engine)


async def init_db() -> None:
    """Fail fast at startup if the database is unreachable."""
    async with engine.begin() as conn:
        await conn.execute(text("SELECT 1"))
    logger.info("database_ready", dialect=engine.dialect.name)


async def close_db() -> None:
    await engine.dispose()
    logger.info("database_closed")


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session.

    Services commit at their own transaction boundaries (one per task
    transition); anything left uncommitted when the request ends is
    rolled back.
    """
    async with async_session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


# Type alias for dependency injection
DBSession = Annotated[AsyncSession, Depends(get_db_session)]
