"""Redis pub/sub transport for cross-process change notifications."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Optional

import redis.asyncio as redis
from pydantic import ValidationError

from ..contracts import ChangeEvent
from .base import BaseTransport

logger = logging.getLogger(__name__)


class RedisTransport(BaseTransport):
    """Redis-based transport publishing change events on per-actor channels."""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
    ) -> None:
        self.host = host
        self.port = port
        self.db = db
        self.password = password
        self._redis: Optional[Any] = None

    @staticmethod
    def channel_name(actor_id: str) -> str:
        return f"novaflow:changes:{actor_id}"

    async def connect(self) -> None:
        """Connect to Redis."""
        self._redis = redis.Redis(
            host=self.host,
            port=self.port,
            db=self.db,
            password=self.password,
            decode_responses=True,
        )
        # Test connection
        await self._redis.ping()

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def publish(self, actor_id: str, event: ChangeEvent) -> None:
        """Publish event on the actor's channel."""
        if not self._redis:
            await self.connect()

        await self._redis.publish(self.channel_name(actor_id), event.to_json())

    async def subscribe(
        self, actor_id: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[ChangeEvent]:
        """Subscribe to the actor's channel."""
        if not self._redis:
            await self.connect()

        channel = self.channel_name(actor_id)
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(channel)
        start_time = asyncio.get_running_loop().time() if lifespan else None

        try:
            while True:
                if lifespan and start_time is not None:
                    elapsed = asyncio.get_running_loop().time() - start_time
                    if elapsed >= lifespan:
                        break

                message = await pubsub.get_message(
                    ignore_subscribe_messages=True, timeout=1.0
                )
                if message is None:
                    continue
                try:
                    event = ChangeEvent.from_json(message["data"])
                except ValidationError as e:
                    logger.warning(f"Dropping malformed change event on {channel}: {e}")
                    continue
                yield event
        finally:
            await pubsub.unsubscribe(channel)
            await pubsub.aclose()
