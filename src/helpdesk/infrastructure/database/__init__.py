"""
Database Infrastructure
=======================

Manages database connections, session lifecycle, and engine configuration.

Uses SQLAlchemy 2.0 with asyncpg for async PostgreSQL operations. SQLite
(aiosqlite) is accepted for local runs and tests.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator, Optional

from sqlalchemy import DateTime, Select, select
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool
from sqlalchemy.types import TypeDecorator

from helpdesk.config import settings


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware datetime column.

    Values are stored in UTC and always come back timezone-aware, also on
    backends (SQLite) that drop the offset.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    SQLAlchemy 2.0 style using DeclarativeBase.
    All models inherit from this class.
    """
    pass


# Global engine and session maker
_engine: AsyncEngine | None = None
_session_maker: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    """
    Get the database engine.

    Raises:
        RuntimeError: If engine has not been initialized
    """
    if _engine is None:
        raise RuntimeError("Database engine not initialized. Call init_database() first.")
    return _engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """Get the session factory."""
    if _session_maker is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")
    return _session_maker


def init_database(database_url: Optional[str] = None) -> AsyncEngine:
    """
    Initialize the database engine and session maker.

    Should be called during application startup.

    Args:
        database_url: Override for ``settings.database_url``

    Returns:
        AsyncEngine: The initialized engine
    """
    global _engine, _session_maker

    url = database_url or settings.database_url

    if url.startswith("sqlite"):
        _engine = create_async_engine(
            url,
            echo=settings.debug,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        # asyncpg expects ssl= instead of sslmode=
        _engine = create_async_engine(
            url.replace("sslmode=", "ssl="),
            echo=settings.debug,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=True,
        )

    _session_maker = async_sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False,  # Prevent lazy loading after commit
        autoflush=False,
    )

    return _engine


async def close_database() -> None:
    """
    Close the database engine and dispose of connections.

    Should be called during application shutdown.
    """
    global _engine, _session_maker

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_maker = None


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Async generator for database sessions.

    For use with FastAPI's Depends() - commits when the request handler
    returns, rolls back when it raises.

    Yields:
        AsyncSession: SQLAlchemy async session
    """
    async with get_session_maker()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def get_session_context() -> AsyncGenerator[AsyncSession, None]:
    """
    Async context manager for database sessions.

    For use in background tasks (the SLA sweep) and scripts.

    Usage:
        async with get_session_context() as session:
            result = await session.execute(select(TicketModel))

    Yields:
        AsyncSession: SQLAlchemy async session
    """
    async with get_session_maker()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def select_for_update(entity, *criteria) -> Select:
    """
    ``SELECT ... FOR UPDATE`` of ORM rows.

    The row lock is held until the session commits or rolls back, and rows
    already in the session are refreshed from the result. SQLite has no row
    locks and renders a plain SELECT.
    """
    return (
        select(entity)
        .where(*criteria)
        .with_for_update()
        .execution_options(populate_existing=True)
    )


async def create_tables() -> None:
    """
    Create all database tables.

    This should only be used for development/testing.
    Production should use migrations (Alembic).
    """
    # Import models so they register on Base.metadata
    import helpdesk.workflow.infrastructure.models  # noqa: F401
    import helpdesk.automation.infrastructure.models  # noqa: F401
    import helpdesk.sla.infrastructure.models  # noqa: F401

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_tables() -> None:
    """Drop all database tables (tests only)."""
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
