# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Typing presence per (group, user).

State machine per (group, user):

    idle --set_typing(True)--> typing
    typing --set_typing(True)--> typing        (quiet window restarts)
    typing --set_typing(False)--> idle
    typing --no renewal for ttl seconds--> idle

The Redis record carries a TTL and is the authoritative state; a user
whose client disappears mid-keystroke drops out when the key expires.
Each write stores a fresh token. The process that made the write keeps a
local quiet timer per (group, user); when the window elapses it publishes
the "stopped" event only if the key is gone. A key carrying another token
means a different API process renewed it, and that process reports the
stop instead. Subscribers do not have to poll for expiry.

Events travel on the school-scoped channel typing:{group_id}.
"""

import asyncio
import logging
from typing import AsyncIterator
from uuid import uuid4

from src.core.errors import UnavailableError
from src.domains.backend import bounded
from src.infrastructure.cache.redis_client import RedisClient
from src.models.presence import TypingEvent

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 3.0
DEFAULT_TIMEOUT_SECONDS = 5.0

TimerKey = tuple[str, str, str]


def typing_key(group_id: str, user_id: str) -> str:
    return f"typing:{group_id}:{user_id}"


def typing_channel(group_id: str) -> str:
    return f"typing:{group_id}"


class TypingTracker:
    """Records and broadcasts who is typing in each group.

    One tracker is shared by the whole API process.

    Attributes:
        _redis: Connected Redis client.
        _ttl: Quiet window in seconds.
        _timeout: Deadline applied to each Redis call.
        _timers: Pending quiet timers keyed by (school, group, user).
    """

    def __init__(
        self,
        redis: RedisClient,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._redis = redis
        self._ttl = ttl_seconds
        self._timeout = timeout
        self._timers: dict[TimerKey, asyncio.Task[None]] = {}

    async def set_typing(
        self,
        school_id: str,
        group_id: str,
        user_id: str,
        is_typing: bool,
    ) -> None:
        """Start, renew or stop a user's typing indicator.

        Args:
            school_id: School of the group.
            group_id: Group the user is typing in.
            user_id: The typing user.
            is_typing: True to start or renew, False to stop.

        Raises:
            UnavailableError: If Redis fails or times out.
        """
        timer_key = (school_id, group_id, user_id)

        if not is_typing:
            self._cancel_timer(timer_key)
            await bounded(
                self._redis.delete_with_school(school_id, typing_key(group_id, user_id)),
                self._timeout,
                "typing clear",
            )
            await self._publish(school_id, group_id, user_id, False)
            return

        timer = self._timers.get(timer_key)
        was_typing = (timer is not None and not timer.done()) or await self.is_typing(
            school_id, group_id, user_id
        )
        token = uuid4().hex
        await bounded(
            self._redis.set_with_school(
                school_id, typing_key(group_id, user_id), token, expire_seconds=self._ttl
            ),
            self._timeout,
            "typing set",
        )

        self._cancel_timer(timer_key)
        self._timers[timer_key] = asyncio.create_task(self._quiet_timer(timer_key, token))
        if not was_typing:
            await self._publish(school_id, group_id, user_id, True)

    async def is_typing(self, school_id: str, group_id: str, user_id: str) -> bool:
        """Whether the Redis record for (group, user) is present."""
        value = await bounded(
            self._redis.get_with_school(school_id, typing_key(group_id, user_id)),
            self._timeout,
            "typing lookup",
        )
        return value is not None

    async def typing_users(self, school_id: str, group_id: str) -> list[str]:
        """Ids of every user currently typing in a group."""
        prefix = typing_key(group_id, "")
        keys = await bounded(
            self._redis.scan_with_school(school_id, prefix + "*"),
            self._timeout,
            "typing scan",
        )
        return sorted(key[len(prefix):] for key in keys)

    async def on_typing_change(
        self,
        school_id: str,
        group_id: str,
        exclude_user_id: str | None = None,
    ) -> AsyncIterator[TypingEvent]:
        """Stream typing events for a group until the consumer stops.

        The stream never ends on its own. Close the generator to release
        the underlying subscription; a closed stream cannot be resumed.

        Args:
            school_id: School of the group.
            group_id: Group to watch.
            exclude_user_id: Skip events caused by this user (the watcher).
        """
        channel = self._redis.school_key(school_id, typing_channel(group_id))
        subscription = self._redis.subscribe(channel)
        try:
            async for payload in subscription:
                event = TypingEvent.model_validate(payload)
                if event.user_id == exclude_user_id:
                    continue
                yield event
        finally:
            await subscription.aclose()

    async def close(self) -> None:
        """Cancel every pending quiet timer."""
        timers = list(self._timers.values())
        self._timers.clear()
        for task in timers:
            task.cancel()
        await asyncio.gather(*timers, return_exceptions=True)

    def _cancel_timer(self, timer_key: TimerKey) -> None:
        task = self._timers.pop(timer_key, None)
        if task is not None and not task.done():
            task.cancel()

    async def _quiet_timer(self, timer_key: TimerKey, token: str) -> None:
        school_id, group_id, user_id = timer_key
        delay = self._ttl
        try:
            while True:
                await asyncio.sleep(delay)
                value = await bounded(
                    self._redis.get_with_school(school_id, typing_key(group_id, user_id)),
                    self._timeout,
                    "typing lookup",
                )
                if value is None:
                    break
                if value != token:
                    # Renewed through another process, whose own timer reports the stop
                    return
                delay = self._ttl / 10
            await self._publish(school_id, group_id, user_id, False)
        except UnavailableError as e:
            logger.warning("Typing expiry check failed for %s in %s: %s", user_id, group_id, e)
        finally:
            if self._timers.get(timer_key) is asyncio.current_task():
                del self._timers[timer_key]

    async def _publish(self, school_id: str, group_id: str, user_id: str, is_typing: bool) -> None:
        event = TypingEvent(group_id=group_id, user_id=user_id, is_typing=is_typing)
        await bounded(
            self._redis.publish_with_school(
                school_id, typing_channel(group_id), event.model_dump(mode="json")
            ),
            self._timeout,
            "typing publish",
        )


_tracker: TypingTracker | None = None


def init_typing_tracker(
    redis: RedisClient,
    ttl_seconds: float = DEFAULT_TTL_SECONDS,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> TypingTracker:
    """Create the process-wide tracker."""
    global _tracker
    _tracker = TypingTracker(redis, ttl_seconds=ttl_seconds, timeout=timeout)
    return _tracker


def get_typing_tracker() -> TypingTracker:
    """Get the process-wide tracker.

    Raises:
        RuntimeError: If init_typing_tracker() has not been called.
    """
    if _tracker is None:
        raise RuntimeError("Typing tracker not initialized. Call init_typing_tracker() first.")
    return _tracker


async def close_typing_tracker() -> None:
    global _tracker
    if _tracker is not None:
        await _tracker.close()
        _tracker = None
