# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Chat database connection management using SQLAlchemy async.

A single PostgreSQL database holds every school's rows; tenant isolation
is enforced by school_id filters in the domain services, not by separate
databases.

The API process shares one engine created at startup. Dramatiq worker
threads each run their own event loop, so they get a thread-local engine
through get_worker_session() instead.

Example:
    from src.infrastructure.database.connection import init_database, get_session

    await init_database(settings)

    async with get_session() as session:
        result = await session.execute(select(Group))
"""

import threading
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncIterator, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

if TYPE_CHECKING:
    from src.core.config.settings import Settings

_engine: Optional[AsyncEngine] = None
_sessionmaker: Optional[async_sessionmaker[AsyncSession]] = None

# Each Dramatiq worker thread owns an engine bound to its own event loop
_thread_local = threading.local()


class DatabaseError(Exception):
    """Base exception for database operations.

    Attributes:
        message: Human-readable error description.
        original_error: The underlying SQLAlchemy or driver error.
    """

    def __init__(self, message: str, original_error: Optional[Exception] = None) -> None:
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    def __str__(self) -> str:
        if self.original_error:
            return f"{self.message}: {self.original_error}"
        return self.message


def _create_engine(url: str, settings: "Settings") -> AsyncEngine:
    """Create an async engine, skipping pool options SQLite does not accept."""
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=False)
    return create_async_engine(
        url,
        pool_size=settings.database.pool_size,
        max_overflow=settings.database.max_overflow,
        pool_pre_ping=True,
        pool_recycle=1800,
        echo=False,
    )


def _make_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_database(settings: "Settings", url: str | None = None) -> None:
    """Initialize the database connection pool.

    Args:
        settings: Application settings containing database configuration.
        url: Optional URL overriding settings.database.url.

    Raises:
        DatabaseError: If connection pool creation fails.
    """
    global _engine, _sessionmaker

    try:
        _engine = _create_engine(url or settings.database.url, settings)
        _sessionmaker = _make_sessionmaker(_engine)
    except SQLAlchemyError as e:
        raise DatabaseError("Failed to initialize database connection", e) from e


async def close_database() -> None:
    """Dispose of the connection pool."""
    global _engine, _sessionmaker

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _sessionmaker = None


def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    """Get the shared sessionmaker.

    Raises:
        DatabaseError: If the database has not been initialized.
    """
    if _sessionmaker is None:
        raise DatabaseError("Database not initialized. Call init_database() first.")
    return _sessionmaker


@asynccontextmanager
async def _session_scope(
    sessionmaker: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    async with sessionmaker() as session:
        try:
            yield session
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            raise DatabaseError("Database operation failed", e) from e
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def get_session() -> AsyncIterator[AsyncSession]:
    """Get a session that commits on success and rolls back on error.

    Yields:
        AsyncSession for database operations.

    Raises:
        DatabaseError: If the database has not been initialized or a
            database operation fails.
    """
    async with _session_scope(get_sessionmaker()) as session:
        yield session


@asynccontextmanager
async def get_worker_session() -> AsyncIterator[AsyncSession]:
    """Get a session for the current Dramatiq worker thread.

    The engine is created lazily on first use in each thread and reused
    for the lifetime of that thread's event loop.

    Yields:
        AsyncSession bound to this thread's engine.
    """
    sessionmaker = getattr(_thread_local, "sessionmaker", None)
    if sessionmaker is None:
        from src.core.config import get_settings

        settings = get_settings()
        engine = _create_engine(settings.database.url, settings)
        _thread_local.engine = engine
        sessionmaker = _make_sessionmaker(engine)
        _thread_local.sessionmaker = sessionmaker

    async with _session_scope(sessionmaker) as session:
        yield session


def clear_thread_connections() -> None:
    """Forget the current thread's worker engine.

    Called by run_async() when a thread gets a fresh event loop, since an
    engine cannot be used from a loop other than the one it was created on.
    """
    _thread_local.engine = None
    _thread_local.sessionmaker = None


async def check_database_connection() -> bool:
    """Check if the database is reachable.

    Returns:
        True if a trivial query succeeds, False otherwise.
    """
    if _engine is None:
        return False

    try:
        async with _engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError:
        return False
