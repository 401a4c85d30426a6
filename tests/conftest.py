"""Shared fixtures: an in-memory SQLite database per test."""

import os

# Must be set before praisebot.core.settings is imported
os.environ.setdefault("DB_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")

from datetime import datetime, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from praisebot.core import models
from praisebot.core.db import build_engine, build_sessionmaker, create_all


@pytest_asyncio.fixture
async def session():
    """Fresh schema in an in-memory SQLite database."""
    engine = build_engine("sqlite+aiosqlite:///:memory:")
    await create_all(engine)

    async with build_sessionmaker(engine)() as db_session:
        yield db_session

    await engine.dispose()


@pytest.fixture
def utc():
    """Build an aware UTC datetime."""
    def _utc(*args) -> datetime:
        return datetime(*args, tzinfo=timezone.utc)
    return _utc


async def add_user(session: AsyncSession, name: str) -> models.User:
    user = models.User(name=name)
    session.add(user)
    await session.commit()
    return user


async def add_recognition(
    session: AsyncSession,
    from_user_id: str,
    to_user_id: str,
    created_at: datetime,
    message: str = "",
) -> models.Recognition:
    recognition = models.Recognition(
        from_user_id=from_user_id,
        to_user_id=to_user_id,
        message=message,
        created_at=created_at,
    )
    session.add(recognition)
    await session.commit()
    return recognition
