# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Event infrastructure: in-process bus plus a Redis forwarding bridge.

Architecture:
    Service -> EventBus.publish() -> EventToRedisBridge -> Redis pub/sub
"""

from src.infrastructure.events.bridge import (
    EVENTS_CHANNEL,
    EventToRedisBridge,
    start_event_bridge,
    stop_event_bridge,
)
from src.infrastructure.events.bus import (
    EventBus,
    EventData,
    EventHandler,
    get_event_bus,
    reset_event_bus,
)
from src.infrastructure.events.types import EventPatterns, EventTypes

__all__ = [
    "EventBus",
    "EventData",
    "EventHandler",
    "get_event_bus",
    "reset_event_bus",
    "EventTypes",
    "EventPatterns",
    "EVENTS_CHANNEL",
    "EventToRedisBridge",
    "start_event_bridge",
    "stop_event_bridge",
]
