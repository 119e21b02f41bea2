"""
Shared fixtures: an isolated in-memory SQLite database per test, plus a
file-backed one for tests that run sessions concurrently.
"""

from datetime import datetime

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool

import app.models  # noqa: F401  (register all tables)
from app.core.database import Base
from app.models.notification_channel import NotificationChannel
from app.models.rule import Rule
from app.models.rule_violation import Severity
from app.models.violation import ViolationCandidate, ViolationEvent


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def concurrent_session_factory(tmp_path):
    """
    SQLite file database with one connection per session.

    The in-memory database shares a single connection, so concurrent
    sessions would share a transaction. Here writers take SQLite's write
    lock in turn, as separate PostgreSQL connections would.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'concurrent.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def rule(session_factory):
    """A rule named for alerts, id 1."""
    async with session_factory() as session:
        rule = Rule(name="Impossible Travel", rule_type="impossible_travel", config={})
        session.add(rule)
        await session.commit()
    return rule


@pytest_asyncio.fixture
async def add_channel(session_factory):
    """Factory fixture that persists a notification channel."""

    async def _add(name, channel_type, config, enabled=True):
        async with session_factory() as session:
            channel = NotificationChannel(
                name=name, channel_type=channel_type, config=config, enabled=enabled
            )
            session.add(channel)
            await session.commit()
        return channel

    return _add


@pytest.fixture
def make_candidate():
    def _make(**overrides):
        values = {
            "rule_id": 1,
            "user_name": "alice",
            "severity": Severity.WARNING,
            "message": "3 concurrent streams (limit 2)",
            "confidence_score": 85.0,
            "session_key": "s1",
        }
        values.update(overrides)
        return ViolationCandidate(**values)

    return _make


@pytest.fixture
def violation_event():
    return ViolationEvent(
        id=42,
        rule_id=1,
        rule_name="Impossible Travel",
        user_name="alice",
        severity="critical",
        message="Streams from Paris and Tokyo 10 minutes apart",
        details={"distance_km": 9712},
        confidence_score=92.4,
        occurred_at=datetime(2025, 3, 14, 9, 26, 53),
    )
