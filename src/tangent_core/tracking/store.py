"""Persisted "tracking permission has been requested" flag."""
import logging
from typing import Protocol

from redis.asyncio import Redis


logger = logging.getLogger(__name__)


DEFAULT_KEY = "tangent:tracking:permission_requested"


class PermissionStore(Protocol):
    async def has_requested(self) -> bool:
        ...

    async def mark_requested(self) -> None:
        ...


class MemoryPermissionStore:
    """Process-local store, for development and tests."""

    def __init__(self, requested: bool = False) -> None:
        self.requested = requested

    async def has_requested(self) -> bool:
        return self.requested

    async def mark_requested(self) -> None:
        self.requested = True


class RedisPermissionStore:
    """Redis-backed store shared across processes of one install."""

    def __init__(self, redis: Redis, key: str = DEFAULT_KEY) -> None:
        """Initialize store.

        Args:
            redis: Injected redis.asyncio.Redis client
            key: Redis key holding the flag
        """
        self.redis = redis
        self.key = key

    async def has_requested(self) -> bool:
        value = await self.redis.get(self.key)
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        return value == "1"

    async def mark_requested(self) -> None:
        await self.redis.set(self.key, "1")
        logger.debug("Persisted permission-requested flag at %s", self.key)
