"""Base transport interface for status change notifications."""

from __future__ import annotations

import abc
from typing import AsyncIterator, Optional

from ..contracts import ChangeEvent


class BaseTransport(metaclass=abc.ABCMeta):
    """Abstract push channel delivering change events per actor.

    Delivery is at-least-once: subscribers may see the same event repeatedly.
    """

    async def connect(self) -> None:
        """Open connection to broker (no-op by default)."""
        pass

    async def disconnect(self) -> None:
        """Close connection to broker (no-op by default)."""
        pass

    @abc.abstractmethod
    async def publish(self, actor_id: str, event: ChangeEvent) -> None:
        """Send a change event to every subscriber of ``actor_id``."""
        raise NotImplementedError

    @abc.abstractmethod
    def subscribe(
        self, actor_id: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[ChangeEvent]:
        """Yield change events for records owned by ``actor_id``.

        Args:
            actor_id: The actor whose records are watched
            lifespan: Maximum time in seconds to keep the subscription open. If None, runs indefinitely.
        """
        raise NotImplementedError
