# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Bridge between synchronous Dramatiq actors and async services.

Dramatiq runs actors on worker threads. SQLAlchemy async engines and
redis.asyncio pools are tied to the event loop that created them, so each
worker thread keeps one persistent loop and reuses it for every task it
runs. When a thread needs a fresh loop its cached engine is discarded.
"""

import asyncio
import logging
import threading
from typing import Any, Coroutine, TypeVar

from src.infrastructure.database.connection import clear_thread_connections

logger = logging.getLogger(__name__)

T = TypeVar("T")

_thread_local = threading.local()


def _get_thread_event_loop() -> asyncio.AbstractEventLoop:
    loop = getattr(_thread_local, "event_loop", None)

    if loop is None or loop.is_closed():
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        _thread_local.event_loop = loop
        clear_thread_connections()
        logger.debug("Created new event loop for thread %s", threading.current_thread().name)

    return loop


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine on the current worker thread's persistent loop.

    Args:
        coro: Coroutine to run.

    Returns:
        Result of the coroutine.
    """
    return _get_thread_event_loop().run_until_complete(coro)
