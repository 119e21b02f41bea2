"""
Database connection and session management.

Uses SQLAlchemy with async support (asyncpg in production, aiosqlite locally).
"""

from sqlalchemy import JSON
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base

from app.core.config import settings

# Base class for all models
Base = declarative_base()

# JSON column: JSONB on PostgreSQL, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")


def _engine_options() -> dict:
    """Pool sizing only applies to server databases."""
    if settings.is_sqlite:
        return {}
    return {"pool_pre_ping": True, "pool_size": 10, "max_overflow": 20}


# Async engine for main app
async_engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG and not settings.is_sqlite,
    **_engine_options(),
)

# Async session factory
AsyncSessionLocal = async_sessionmaker(
    async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


def upsert_insert(session: AsyncSession, table):
    """
    Return a dialect-specific INSERT that supports ON CONFLICT clauses.

    PostgreSQL and SQLite share the on_conflict_do_update/do_nothing API,
    so callers can build one upsert statement for both.
    """
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(table)
    if dialect == "sqlite":
        return sqlite.insert(table)
    raise NotImplementedError(f"upsert not supported for dialect {dialect}")


def get_session_factory() -> async_sessionmaker:
    """FastAPI dependency returning the session factory used by services."""
    return AsyncSessionLocal


async def init_db():
    """
    Initialize database (create tables).

    Schema migrations are managed outside this service.
    This is useful for testing and local development.
    """
    import app.models  # noqa: F401  (register all tables on Base.metadata)

    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db():
    """Close database connections gracefully."""
    await async_engine.dispose()
