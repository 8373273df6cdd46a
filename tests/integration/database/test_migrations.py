# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Integration tests for database migrations.

Tests migration execution against a real PostgreSQL database.
"""

import asyncio
import os
from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config
from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import create_async_engine

from src.infrastructure.database.models import Base

# Skip all tests if database is not available
pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(
        not os.environ.get("TEST_DATABASE_URL", "").startswith("postgresql"),
        reason="TEST_DATABASE_URL not set to a PostgreSQL database",
    ),
]

ROOT = Path(__file__).resolve().parents[3]


@pytest.fixture
def alembic_config(monkeypatch) -> Config:
    monkeypatch.setenv("DATABASE_URL", os.environ["TEST_DATABASE_URL"])
    config = Config(str(ROOT / "alembic.ini"))
    config.set_main_option(
        "script_location", str(ROOT / "src" / "infrastructure" / "database" / "migrations")
    )
    return config


def read_schema(url: str) -> dict[str, set[str]]:
    """Table name to column names, read from a live database."""

    async def _read() -> dict[str, set[str]]:
        engine = create_async_engine(url)
        try:
            async with engine.connect() as conn:
                return await conn.run_sync(
                    lambda sync_conn: {
                        table: {col["name"] for col in inspect(sync_conn).get_columns(table)}
                        for table in inspect(sync_conn).get_table_names()
                    }
                )
        finally:
            await engine.dispose()

    return asyncio.run(_read())


class TestChatMigrations:
    """Test the chat schema migration."""

    def test_upgrade_matches_models(self, alembic_config):
        command.downgrade(alembic_config, "base")
        command.upgrade(alembic_config, "head")

        schema = read_schema(os.environ["TEST_DATABASE_URL"])

        for name, table in Base.metadata.tables.items():
            assert name in schema, f"Table {name} not found"
            expected = {column.name for column in table.columns}
            assert expected == schema[name], f"Column mismatch in {name}"

    def test_downgrade_removes_tables(self, alembic_config):
        command.upgrade(alembic_config, "head")
        command.downgrade(alembic_config, "base")

        schema = read_schema(os.environ["TEST_DATABASE_URL"])

        assert not set(Base.metadata.tables) & set(schema)
