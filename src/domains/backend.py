# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Bounded backend calls.

Every database or Redis round-trip made by a domain service goes through
bounded(). A timeout and a driver failure look the same to the caller:
both become UnavailableError.
"""

import asyncio
from typing import Awaitable, TypeVar

from sqlalchemy.exc import SQLAlchemyError

from src.core.errors import UnavailableError
from src.infrastructure.cache.redis_client import RedisError
from src.infrastructure.database.connection import DatabaseError

T = TypeVar("T")

BACKEND_ERRORS = (SQLAlchemyError, DatabaseError, RedisError)


async def bounded(awaitable: Awaitable[T], timeout: float, operation: str) -> T:
    """Await a backend call with a deadline.

    Args:
        awaitable: The backend call.
        timeout: Deadline in seconds.
        operation: Short description used in the error message.

    Returns:
        Whatever the call returned.

    Raises:
        UnavailableError: If the call timed out or the backend failed.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout)
    except asyncio.TimeoutError as e:
        raise UnavailableError(f"{operation} timed out after {timeout}s") from e
    except BACKEND_ERRORS as e:
        raise UnavailableError(f"{operation} failed: {e}") from e
