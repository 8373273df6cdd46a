# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Database infrastructure for the chat service.

Example:
    from src.infrastructure.database import get_session

    async with get_session() as session:
        result = await session.execute(select(Group))
"""

from src.infrastructure.database.connection import (
    DatabaseError,
    check_database_connection,
    clear_thread_connections,
    close_database,
    get_session,
    get_sessionmaker,
    get_worker_session,
    init_database,
)

__all__ = [
    "DatabaseError",
    "check_database_connection",
    "clear_thread_connections",
    "close_database",
    "get_session",
    "get_sessionmaker",
    "get_worker_session",
    "init_database",
]
