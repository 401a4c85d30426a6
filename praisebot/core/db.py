"""Async engine, session factory and schema helpers."""

from typing import AsyncGenerator, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

from .settings import get_settings

settings = get_settings()

Base = declarative_base()


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """
    Create the async engine for a database URL.

    PostgreSQL (asyncpg) gets a sized connection pool. SQLite (aiosqlite)
    cannot take pool sizing; an in-memory SQLite database is pinned to one
    shared connection so every session sees the same schema.
    """
    if not url.startswith("sqlite"):
        return create_async_engine(url, echo=echo, pool_size=10, max_overflow=20)

    if ":memory:" in url:
        return create_async_engine(
            url,
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    return create_async_engine(url, echo=echo)


def build_sessionmaker(engine: AsyncEngine) -> async_sessionmaker:
    # Loaded attributes stay usable after commit; async sessions cannot lazy-load
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async_engine = build_engine(settings.db_url, echo=settings.database_echo)
AsyncSessionLocal = build_sessionmaker(async_engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding one session per request."""
    async with AsyncSessionLocal() as session:
        yield session


async def ping(session: AsyncSession) -> None:
    """Round-trip a trivial query; raises if the database is unreachable."""
    await session.execute(text("SELECT 1"))


async def create_all(engine: Optional[AsyncEngine] = None):
    """Create every table registered on Base."""
    from praisebot.core import models  # noqa: F401

    async with (engine or async_engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

