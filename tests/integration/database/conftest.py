# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pytest fixtures for database integration tests.

Provides an engine, a session and seeded schools/profiles. Tests run
against SQLite through aiosqlite unless TEST_DATABASE_URL points at a
PostgreSQL database.
"""

import os
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from src.infrastructure.database.models import Base, Profile, School, UserRole, new_id


@pytest.fixture
def db_url(tmp_path) -> str:
    """Get database URL for tests."""
    return os.environ.get("TEST_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path}/test.db")


@pytest_asyncio.fixture(scope="function")
async def db_engine(db_url: str):
    """Create async engine with a fresh schema."""
    engine = create_async_engine(db_url, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_sessionmaker(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(db_sessionmaker) -> AsyncGenerator[AsyncSession, None]:
    """Create async session for database tests."""
    async with db_sessionmaker() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def seed(db_session: AsyncSession) -> dict[str, str]:
    """Seed two schools with profiles.

    Returns ids keyed by name: school, other_school, admin, teacher,
    parent, outsider (a parent in other_school).
    """
    ids = {
        "school": new_id(),
        "other_school": new_id(),
        "admin": new_id(),
        "teacher": new_id(),
        "parent": new_id(),
        "outsider": new_id(),
    }
    db_session.add_all(
        [
            School(id=ids["school"], name="Riverside Primary"),
            School(id=ids["other_school"], name="Hilltop Academy"),
        ]
    )
    await db_session.flush()

    profiles = [
        ("admin", "school", "Head Office", "admin"),
        ("teacher", "school", "Ms. Rivera", "teacher"),
        ("parent", "school", "Sam Parent", "parent"),
        ("outsider", "other_school", "Other Parent", "parent"),
    ]
    for key, school_key, name, role in profiles:
        db_session.add(
            Profile(id=ids[key], school_id=ids[school_key], full_name=name, email=f"{key}@example.com")
        )
        db_session.add(UserRole(id=new_id(), user_id=ids[key], role=role))

    await db_session.commit()
    return ids
