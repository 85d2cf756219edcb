"""Database configuration, async session management and bounded store calls."""

import asyncio
from collections.abc import AsyncGenerator, Awaitable
from datetime import datetime, timezone
from typing import TypeVar

from sqlalchemy import event
from sqlalchemy.exc import DisconnectionError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

from .config import settings
from .exceptions import TransientError

T = TypeVar("T")

_engine_kwargs: dict = {"echo": False, "pool_pre_ping": True}
if "sqlite" in settings.database_url:
    _engine_kwargs["poolclass"] = StaticPool
    _engine_kwargs["connect_args"] = {"check_same_thread": False}


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    """SQLite only enforces ON DELETE CASCADE with foreign keys switched on."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def configure_engine(async_engine: AsyncEngine) -> AsyncEngine:
    """Apply per-dialect connection setup to an async engine."""
    if async_engine.dialect.name == "sqlite":
        event.listen(async_engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    return async_engine


# Create async engine
engine = configure_engine(create_async_engine(settings.database_url, **_engine_kwargs))

# Create async session factory
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

# Create declarative base for models
Base = declarative_base()


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


async def bounded(awaitable: Awaitable[T], operation: str) -> T:
    """
    Await a store call with the configured timeout.

    Timeouts and driver-level connection failures become TransientError so
    callers can tell a retryable failure from a terminal one. Constraint
    violations (IntegrityError) are left to the caller.

    Args:
        awaitable: Session call to await (execute, commit, refresh, ...)
        operation: Short label used in the error and logs

    Returns:
        Whatever the awaitable returns
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=settings.store_timeout_seconds)
    except asyncio.TimeoutError as e:
        raise TransientError(
            operation=operation,
            detail=f"Store call '{operation}' timed out after {settings.store_timeout_seconds}s",
        ) from e
    except (OperationalError, InterfaceError, DisconnectionError) as e:
        raise TransientError(
            operation=operation,
            detail=f"Store call '{operation}' failed: {getattr(e, 'orig', e)}",
        ) from e


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency function that yields database sessions.

    Yields:
        AsyncSession: Database session
    """
    async with async_session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


# Alias for FastAPI dependency injection
get_db = get_async_session


async def init_db() -> None:
    """Initialize the database by creating all tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Close database connections."""
    await engine.dispose()
