"""
Storage Module - Black Box Interface

Purpose: Shared state for port reservations across API workers
Interface: connect(), disconnect()
Hidden: Redis specifics, connection pooling

Only used when PORT_RESERVATION_BACKEND=redis; the default backend keeps
reservations in process memory.
"""

from typing import Optional

import redis.asyncio as redis

from nodepilot.config import StorageConfig


class StorageModule:
    """Black box storage abstraction."""

    def __init__(self, config: Optional[StorageConfig] = None):
        """Initialize storage with connection URL."""
        self.config = config or StorageConfig()
        self.url = self.config.redis_url
        self._client: Optional[redis.Redis] = None

    @property
    def enabled(self) -> bool:
        return self.config.backend == "redis"

    async def connect(self) -> redis.Redis:
        """Get storage connection."""
        if not self._client:
            self._client = redis.from_url(self.url, decode_responses=True)
        return self._client

    async def disconnect(self):
        """Close storage connection."""
        if self._client:
            await self._client.close()
            self._client = None


__all__ = ["StorageModule"]
