"""In-memory transport for testing."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import AsyncIterator, Dict, List, Optional

from ..contracts import ChangeEvent
from .base import BaseTransport


class InMemoryTransport(BaseTransport):
    """In-process fan-out of change events to every live subscriber."""

    def __init__(self) -> None:
        self._subscribers: Dict[str, List[asyncio.Queue[ChangeEvent]]] = defaultdict(list)

    def subscriber_count(self, actor_id: str) -> int:
        return len(self._subscribers.get(actor_id, []))

    async def publish(self, actor_id: str, event: ChangeEvent) -> None:
        """Deliver ``event`` to the queues of current subscribers."""
        for queue in list(self._subscribers.get(actor_id, [])):
            queue.put_nowait(event)

    async def subscribe(
        self, actor_id: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[ChangeEvent]:
        """Subscribe to change events for ``actor_id``.

        Args:
            actor_id: The actor whose records are watched
            lifespan: Maximum time in seconds to keep the subscription open. If None, runs indefinitely.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + lifespan if lifespan else None
        queue: asyncio.Queue[ChangeEvent] = asyncio.Queue()
        self._subscribers[actor_id].append(queue)
        try:
            while True:
                timeout = None
                if deadline is not None:
                    timeout = deadline - loop.time()
                    if timeout <= 0:
                        break
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=timeout)
                except asyncio.TimeoutError:
                    break
                yield event
        finally:
            self._subscribers[actor_id].remove(queue)
            if not self._subscribers[actor_id]:
                del self._subscribers[actor_id]
