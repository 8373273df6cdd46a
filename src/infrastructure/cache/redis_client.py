# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Async Redis client for presence records and realtime pub/sub.

Keys and channels that belong to a school are prefixed with
school:{school_id}: so no school can observe another's presence traffic.

Example:
    from src.infrastructure.cache import init_redis, get_redis

    await init_redis(settings)

    redis = get_redis()
    await redis.set_with_school(school_id, "typing:g1:u1", "1", expire_seconds=3)
    async for payload in redis.subscribe(redis.school_key(school_id, "typing:g1")):
        ...
"""

import json
from typing import TYPE_CHECKING, Any, AsyncIterator, Optional

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError as BaseRedisError

if TYPE_CHECKING:
    from src.core.config.settings import Settings

_redis_client: Optional["RedisClient"] = None


class RedisError(Exception):
    """Exception raised for Redis operation failures.

    Attributes:
        message: Human-readable error description.
        original_error: The underlying Redis error.
    """

    def __init__(self, message: str, original_error: Optional[Exception] = None) -> None:
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    def __str__(self) -> str:
        if self.original_error:
            return f"{self.message}: {self.original_error}"
        return self.message


class RedisClient:
    """Async Redis wrapper with school-scoped keys and JSON values.

    Attributes:
        SCHOOL_KEY_PREFIX: Prefix applied to every school-scoped key.
    """

    SCHOOL_KEY_PREFIX = "school"

    def __init__(self, settings: "Settings") -> None:
        self._settings = settings
        self._pool: Optional[ConnectionPool] = None
        self._redis: Optional[Redis] = None

    async def connect(self) -> None:
        """Create the connection pool and verify it with a ping.

        Raises:
            RedisError: If connection fails.
        """
        try:
            self._pool = ConnectionPool.from_url(
                self._settings.redis.url,
                max_connections=self._settings.redis.max_connections,
                decode_responses=True,
            )
            self._redis = Redis(connection_pool=self._pool)
            await self._redis.ping()
        except BaseRedisError as e:
            raise RedisError("Failed to connect to Redis", e) from e

    async def close(self) -> None:
        """Close the Redis connection pool."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

        if self._pool is not None:
            await self._pool.disconnect()
            self._pool = None

    def _ensure_connected(self) -> Redis:
        if self._redis is None:
            raise RedisError("Redis client not connected. Call connect() first.")
        return self._redis

    def school_key(self, school_id: str, key: str) -> str:
        """Build a school-prefixed key or channel name.

        Args:
            school_id: The owning school.
            key: The unprefixed key.

        Returns:
            Key prefixed with school:{school_id}:
        """
        return f"{self.SCHOOL_KEY_PREFIX}:{school_id}:{key}"

    def _serialize(self, value: Any) -> str:
        if isinstance(value, str):
            return value
        return json.dumps(value, ensure_ascii=False, default=str)

    def _deserialize(self, value: Optional[str]) -> Any:
        if value is None:
            return None
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value

    # ========== Key operations ==========

    async def set_with_school(
        self,
        school_id: str,
        key: str,
        value: Any,
        expire_seconds: Optional[float] = None,
    ) -> None:
        """Set a school-scoped key, optionally with a sub-second expiry.

        Args:
            school_id: The owning school.
            key: The unprefixed key.
            value: The value (JSON serialized if not a string).
            expire_seconds: Optional expiry; converted to milliseconds.

        Raises:
            RedisError: If the operation fails.
        """
        redis = self._ensure_connected()
        full_key = self.school_key(school_id, key)
        px = int(expire_seconds * 1000) if expire_seconds else None
        try:
            await redis.set(full_key, self._serialize(value), px=px)
        except BaseRedisError as e:
            raise RedisError(f"Failed to set key: {full_key}", e) from e

    async def get_with_school(self, school_id: str, key: str) -> Any:
        """Get a school-scoped value, or None when absent or expired.

        Raises:
            RedisError: If the operation fails.
        """
        redis = self._ensure_connected()
        full_key = self.school_key(school_id, key)
        try:
            return self._deserialize(await redis.get(full_key))
        except BaseRedisError as e:
            raise RedisError(f"Failed to get key: {full_key}", e) from e

    async def delete_with_school(self, school_id: str, key: str) -> bool:
        """Delete a school-scoped key.

        Returns:
            True if the key was deleted, False if it didn't exist.

        Raises:
            RedisError: If the operation fails.
        """
        redis = self._ensure_connected()
        full_key = self.school_key(school_id, key)
        try:
            return await redis.delete(full_key) > 0
        except BaseRedisError as e:
            raise RedisError(f"Failed to delete key: {full_key}", e) from e

    async def scan_with_school(self, school_id: str, pattern: str) -> list[str]:
        """List school-scoped keys matching a glob pattern.

        Args:
            school_id: The owning school.
            pattern: Unprefixed glob pattern.

        Returns:
            Matching keys with the school prefix stripped.

        Raises:
            RedisError: If the operation fails.
        """
        redis = self._ensure_connected()
        prefix = self.school_key(school_id, "")
        try:
            return [
                key[len(prefix):]
                async for key in redis.scan_iter(match=prefix + pattern)
            ]
        except BaseRedisError as e:
            raise RedisError(f"Failed to scan keys: {prefix}{pattern}", e) from e

    # ========== Pub/Sub operations ==========

    async def publish_with_school(self, school_id: str, channel: str, message: Any) -> int:
        """Publish a message to a school-scoped channel.

        Returns:
            Number of subscribers that received the message.

        Raises:
            RedisError: If the operation fails.
        """
        redis = self._ensure_connected()
        full_channel = self.school_key(school_id, channel)
        try:
            return await redis.publish(full_channel, self._serialize(message))
        except BaseRedisError as e:
            raise RedisError(f"Failed to publish to channel: {full_channel}", e) from e

    async def subscribe(self, channel: str) -> AsyncIterator[Any]:
        """Yield deserialized messages published on a channel.

        The subscription is released when the consumer stops iterating or
        the generator is closed.

        Args:
            channel: Fully-qualified channel name (see school_key()).

        Raises:
            RedisError: If subscribing or reading fails.
        """
        redis = self._ensure_connected()
        pubsub = redis.pubsub()
        try:
            await pubsub.subscribe(channel)
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                yield self._deserialize(message.get("data"))
        except BaseRedisError as e:
            raise RedisError(f"Subscription failed on channel: {channel}", e) from e
        finally:
            await pubsub.unsubscribe(channel)
            await pubsub.aclose()

    # ========== Health check ==========

    async def ping(self) -> bool:
        """Check if Redis is reachable."""
        try:
            redis = self._ensure_connected()
            await redis.ping()
            return True
        except (RedisError, BaseRedisError):
            return False


async def init_redis(settings: "Settings") -> None:
    """Initialize the global Redis client.

    Raises:
        RedisError: If connection fails.
    """
    global _redis_client

    _redis_client = RedisClient(settings)
    await _redis_client.connect()


async def close_redis() -> None:
    """Close the global Redis client."""
    global _redis_client

    if _redis_client is not None:
        await _redis_client.close()
        _redis_client = None


def get_redis() -> RedisClient:
    """Get the global Redis client.

    Raises:
        RedisError: If Redis has not been initialized.
    """
    if _redis_client is None:
        raise RedisError("Redis not initialized. Call init_redis() first.")
    return _redis_client
