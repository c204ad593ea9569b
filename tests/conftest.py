"""
Shared fixtures: an in-memory SQLite database per test, two users and a
deterministic cipher.
"""

from __future__ import annotations

import uuid

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from connectors.encryption import SecretCipher
from database.models import User
from database.session import create_tables


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


async def _make_user(session_factory, email: str) -> str:
    user_id = uuid.uuid4()
    async with session_factory() as s:
        s.add(User(user_id=user_id, email=email))
        await s.commit()
    return str(user_id)


@pytest_asyncio.fixture
async def user_id(session_factory) -> str:
    return await _make_user(session_factory, "alice@example.com")


@pytest_asyncio.fixture
async def other_user_id(session_factory) -> str:
    return await _make_user(session_factory, "bob@example.com")


@pytest.fixture
def cipher() -> SecretCipher:
    return SecretCipher("test-encryption-key")
