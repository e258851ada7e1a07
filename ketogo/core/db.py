"""Database module with async SQLAlchemy engine and session management."""

from functools import lru_cache
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from .settings import get_settings

# SQLAlchemy base for models
Base = declarative_base()


@lru_cache()
def get_engine(db_url: Optional[str] = None) -> AsyncEngine:
    """Async engine for ``db_url`` (defaults to settings), created on first use."""
    settings = get_settings()
    return create_async_engine(db_url or settings.db_url, echo=settings.debug)


def get_sessionmaker(engine: Optional[AsyncEngine] = None) -> async_sessionmaker:
    """Async session factory bound to ``engine``."""
    return async_sessionmaker(
        engine or get_engine(),
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def create_all(engine: Optional[AsyncEngine] = None) -> None:
    """Create all tables in the database."""
    from . import models  # noqa: F401  registers tables on Base.metadata

    async with (engine or get_engine()).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_all(engine: Optional[AsyncEngine] = None) -> None:
    """Drop all tables in the database."""
    from . import models  # noqa: F401

    async with (engine or get_engine()).begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def init_db(db_url: Optional[str] = None, drop: bool = False) -> None:
    """
    Create the collection tables for ``STORE_BACKEND=sql``.

    Args:
        db_url: Database URL, defaults to ``settings.db_url``
        drop: Drop existing tables first (discards every collection)
    """
    engine = create_async_engine(db_url or get_settings().db_url)
    try:
        if drop:
            await drop_all(engine)
        await create_all(engine)
    finally:
        await engine.dispose()
