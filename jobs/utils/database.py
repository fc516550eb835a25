"""Database sessions for job actors."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.config.settings import settings


def create_task_engine():
    """Engine with NullPool, so no connection outlives the actor's event loop."""
    return create_async_engine(
        settings.async_database_url,
        echo=settings.database_echo,
        poolclass=NullPool,
    )


def create_task_session_maker(engine=None):
    """Session maker for job actors."""
    if engine is None:
        engine = create_task_engine()
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@asynccontextmanager
async def create_local_session() -> AsyncIterator[AsyncSession]:
    """
    Open a session on a fresh engine bound to the current event loop.

    Usage:
        async with create_local_session() as session:
            ...
    """
    engine = create_task_engine()
    session_maker = create_task_session_maker(engine)
    try:
        async with session_maker() as session:
            yield session
    finally:
        await engine.dispose()
