# stashbox/app/db/session.py
"""
Engine and AsyncSession factory for the services layer.

- asyncpg for PostgreSQL in production
- aiosqlite for SQLite in development and tests

Every atomic transition in the services layer (burning a secret, using a
drop token, flipping a public flag) is a single statement executed on an
AsyncSession from this factory, so no in-process locking is needed even
when requests are served by several worker processes.
"""
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool, AsyncAdaptedQueuePool

from stashbox.app.core.config import settings


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine for ``url``.

    SQLite gets NullPool (one connection per session, so concurrent
    sessions really are independent connections that SQLite serializes).
    PostgreSQL gets a pre-pinged, recycled connection pool.
    """
    if "sqlite" in url.lower():
        return create_async_engine(
            url,
            echo=echo,
            poolclass=NullPool,
            connect_args={"check_same_thread": False, "timeout": 30},
        )

    return create_async_engine(
        url,
        echo=echo,
        poolclass=AsyncAdaptedQueuePool,
        pool_size=5,
        max_overflow=10,
        # Hosted databases may terminate idle connections
        pool_pre_ping=True,
        pool_recycle=300,
    )


def build_sessionmaker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # expire_on_commit=False: rows stay readable after commit
    # autoflush=False: writes only happen where the services flush or commit
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine: AsyncEngine = build_engine(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)

AsyncSessionLocal: async_sessionmaker[AsyncSession] = build_sessionmaker(engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency: one AsyncSession per request.

    Does NOT auto-commit: the services commit explicitly once an
    operation's writes are complete.
    """
    async with AsyncSessionLocal() as session:
        yield session
