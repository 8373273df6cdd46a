# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""In-memory event bus for cross-component refresh signals.

Services publish a typed topic (see EventTypes) whenever something other
parts of the system display has changed: a group list, a membership
roster, a conversation's last message. Subscribers match topics exactly
or with fnmatch wildcards such as "group.*".

Example:
    from src.infrastructure.events import get_event_bus, EventTypes

    bus = get_event_bus()
    bus.subscribe(EventTypes.Group.MEMBERS_CHANGED, on_roster_changed)
    await bus.publish(
        EventTypes.Group.MEMBERS_CHANGED,
        {"group_id": group_id},
        school_id=school_id,
    )
"""

import asyncio
import fnmatch
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable
from uuid import uuid4

from src.utils.datetime import utc_now

logger = logging.getLogger(__name__)

EventHandler = Callable[["EventData"], Awaitable[None]]


@dataclass
class EventData:
    """Published event with metadata.

    Attributes:
        event_type: The topic string.
        payload: Event payload; ids only, never message bodies.
        school_id: School the event is scoped to.
        event_id: Unique event identifier.
        timestamp: When the event was published.
    """

    event_type: str
    payload: dict[str, Any]
    school_id: str | None = None
    event_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type,
            "payload": self.payload,
            "timestamp": self.timestamp.isoformat(),
            "school_id": self.school_id,
        }


def _is_pattern(event_type: str) -> bool:
    return "*" in event_type or "?" in event_type


class EventBus:
    """Async in-process publish/subscribe with wildcard topics.

    Handler failures are logged and isolated; one failing subscriber never
    prevents the others from running, and never reaches the publisher.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = {}
        self._pattern_handlers: dict[str, list[EventHandler]] = {}
        self._event_count = 0

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        """Subscribe a handler to a topic or wildcard pattern.

        Args:
            event_type: Topic string, or pattern containing * or ?.
            handler: Coroutine function receiving the EventData.
        """
        registry = self._pattern_handlers if _is_pattern(event_type) else self._handlers
        registry.setdefault(event_type, []).append(handler)
        logger.debug("Subscribed handler to: %s", event_type)

    def unsubscribe(self, event_type: str, handler: EventHandler) -> bool:
        """Remove a handler.

        Returns:
            True if the handler was registered and has been removed.
        """
        registry = self._pattern_handlers if _is_pattern(event_type) else self._handlers
        handlers = registry.get(event_type)
        if not handlers or handler not in handlers:
            return False
        handlers.remove(handler)
        if not handlers:
            del registry[event_type]
        return True

    async def publish(
        self,
        event_type: str,
        payload: dict[str, Any],
        school_id: str | None = None,
    ) -> EventData:
        """Publish an event to every matching subscriber.

        Handlers run concurrently; errors are logged per handler.

        Args:
            event_type: The topic string.
            payload: Event data dictionary.
            school_id: School the event belongs to.

        Returns:
            The published EventData.
        """
        event = EventData(event_type=event_type, payload=payload, school_id=school_id)
        self._event_count += 1

        handlers = list(self._handlers.get(event_type, []))
        for pattern, pattern_handlers in self._pattern_handlers.items():
            if fnmatch.fnmatch(event_type, pattern):
                handlers.extend(pattern_handlers)

        if not handlers:
            logger.debug("No handlers for event: %s (school: %s)", event_type, school_id)
            return event

        async def safe_call(handler: EventHandler) -> None:
            try:
                await handler(event)
            except Exception as e:
                logger.error(
                    "Handler error for event %s: %s", event_type, str(e), exc_info=True
                )

        await asyncio.gather(*[safe_call(handler) for handler in handlers])
        return event

    def clear(self) -> None:
        """Remove all subscriptions."""
        self._handlers.clear()
        self._pattern_handlers.clear()

    def get_stats(self) -> dict[str, Any]:
        """Subscription and publish counters, for the readiness endpoint."""
        return {
            "exact_subscriptions": len(self._handlers),
            "pattern_subscriptions": len(self._pattern_handlers),
            "events_published": self._event_count,
        }


_event_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    """Get the process-wide event bus."""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus


def reset_event_bus() -> None:
    """Drop the singleton; used by tests for a clean slate."""
    global _event_bus
    if _event_bus is not None:
        _event_bus.clear()
    _event_bus = None
