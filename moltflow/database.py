"""Async Postgres engine and session lifecycle."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from moltflow.config import get_settings
from moltflow.logging_config import get_logger

logger = get_logger(__name__)

_engine: AsyncEngine | None = None
_sessions: async_sessionmaker[AsyncSession] | None = None


def asyncpg_url(url: str) -> str:
    """Point a plain ``postgres://`` or ``postgresql://`` URL at the asyncpg driver."""
    for scheme in ("postgres://", "postgresql://"):
        if url.startswith(scheme):
            return "postgresql+asyncpg://" + url[len(scheme):]
    return url


async def init_db() -> None:
    """Build the engine and session factory, then check that Postgres answers."""
    global _engine, _sessions
    settings = get_settings()
    _engine = create_async_engine(
        asyncpg_url(settings.database_url),
        echo=settings.database_echo,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_pre_ping=True,
    )
    _sessions = async_sessionmaker(_engine, expire_on_commit=False, autoflush=False)

    try:
        async with _engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("database_connection_failed", error=str(e))
        raise
    logger.info(
        "database_ready",
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )


async def close_db() -> None:
    global _engine, _sessions
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _sessions = None
        logger.info("database_closed")


@asynccontextmanager
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """A session that is rolled back if the block raises. Requires init_db()."""
    if _sessions is None:
        raise RuntimeError("Database is not initialized; call init_db() first")
    session = _sessions()
    try:
        yield session
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one session per request."""
    async with get_db_session() as session:
        yield session
