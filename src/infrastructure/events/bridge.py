# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Forward in-process events to Redis so other API processes see them.

Every event that carries a school_id is republished on the school's
"events" channel. Clients listening there treat each event as an
invalidation signal and refetch whatever list it names.

Architecture:
    Service -> EventBus -> EventToRedisBridge -> school:{id}:events
"""

import logging

from src.core.errors import UnavailableError
from src.domains.backend import bounded
from src.infrastructure.cache.redis_client import RedisClient
from src.infrastructure.events.bus import EventBus, EventData, get_event_bus
from src.infrastructure.events.types import EventPatterns

logger = logging.getLogger(__name__)

EVENTS_CHANNEL = "events"
DEFAULT_TIMEOUT_SECONDS = 5.0


class EventToRedisBridge:
    """Subscribes to every topic and republishes it on Redis.

    Attributes:
        _event_bus: EventBus the bridge listens on.
        _redis: Connected Redis client.
        _timeout: Deadline applied to each publish.
    """

    def __init__(
        self,
        redis: RedisClient,
        event_bus: EventBus | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._event_bus = event_bus or get_event_bus()
        self._redis = redis
        self._timeout = timeout
        self._running = False
        self._events_forwarded = 0
        self._errors = 0

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            logger.warning("Event bridge already running")
            return
        self._event_bus.subscribe(EventPatterns.ALL, self._forward)
        self._running = True
        logger.info("Event-to-Redis bridge started")

    async def stop(self) -> None:
        if not self._running:
            return
        self._event_bus.unsubscribe(EventPatterns.ALL, self._forward)
        self._running = False
        logger.info(
            "Event-to-Redis bridge stopped (forwarded=%d, errors=%d)",
            self._events_forwarded,
            self._errors,
        )

    async def _forward(self, event: EventData) -> None:
        if event.school_id is None:
            return
        try:
            await bounded(
                self._redis.publish_with_school(event.school_id, EVENTS_CHANNEL, event.to_dict()),
                self._timeout,
                "event forward",
            )
            self._events_forwarded += 1
        except UnavailableError as e:
            self._errors += 1
            logger.warning("Failed to forward event %s: %s", event.event_type, e)

    def get_stats(self) -> dict[str, int]:
        return {"forwarded": self._events_forwarded, "errors": self._errors}


_bridge: EventToRedisBridge | None = None


async def start_event_bridge(
    redis: RedisClient,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> EventToRedisBridge:
    """Create and start the process-wide bridge."""
    global _bridge
    if _bridge is None:
        _bridge = EventToRedisBridge(redis, timeout=timeout)
    await _bridge.start()
    return _bridge


async def stop_event_bridge() -> None:
    """Stop and drop the process-wide bridge."""
    global _bridge
    if _bridge is not None:
        await _bridge.stop()
        _bridge = None
