"""Pending review badge fed by push notifications from the analysis queue."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import OrderedDict
from contextlib import aclosing
from typing import Any, Awaitable, Callable, Optional, Union

from .backend import BackendRepository
from .constants import (
    DEFAULT_PENDING_DISPLAY_CAP,
    DEFAULT_PENDING_SCAN_LIMIT,
    DEFAULT_SEEN_EVENT_MEMORY,
)
from .contracts import Alert, ChangeEvent, PendingReviewCount
from .transports import BaseTransport

logger = logging.getLogger(__name__)

AlertHandler = Callable[[Alert], Union[Awaitable[Any], Any]]


class PendingCountAggregator:
    """Re-derive the number of review-pending items from the backend.

    The held value is only ever replaced by a successful fetch; events never
    increment or decrement it, so repeated refreshes cannot drift.
    """

    def __init__(
        self,
        backend: BackendRepository,
        scan_limit: int = DEFAULT_PENDING_SCAN_LIMIT,
        display_cap: int = DEFAULT_PENDING_DISPLAY_CAP,
    ) -> None:
        self._backend = backend
        self._scan_limit = scan_limit
        self._display_cap = display_cap
        self._pending = PendingReviewCount(
            count=0, limit=scan_limit, display_cap=display_cap
        )
        self._generation = 0

    @property
    def pending(self) -> PendingReviewCount:
        return self._pending

    @property
    def pending_count(self) -> int:
        return self._pending.count

    def reset(self) -> None:
        """Forget the current value and discard refreshes still in flight."""
        self._generation += 1
        self._pending = PendingReviewCount(
            count=0, limit=self._scan_limit, display_cap=self._display_cap
        )

    async def refresh(self, actor_id: str) -> PendingReviewCount:
        """Fetch the capped pending count; on failure keep the last value."""
        generation = self._generation
        try:
            count = await self._backend.count_pending_review_items(
                actor_id, self._scan_limit
            )
        except Exception as e:
            logger.warning(f"Pending review count failed for actor={actor_id}: {e}")
            return self._pending
        if generation != self._generation:
            return self._pending
        self._pending = PendingReviewCount(
            count=min(max(count, 0), self._scan_limit),
            limit=self._scan_limit,
            display_cap=self._display_cap,
        )
        return self._pending


class ChangeNotificationChannel:
    """One push subscription per view and actor.

    Only transitions to ``completed`` that carry a run id count as real
    completions. Each completion triggers one recount and one alert no matter
    how many times the transport delivers it.
    """

    def __init__(
        self,
        transport: BaseTransport,
        aggregator: PendingCountAggregator,
        on_alert: Optional[AlertHandler] = None,
        memory: int = DEFAULT_SEEN_EVENT_MEMORY,
    ) -> None:
        self._transport = transport
        self._aggregator = aggregator
        self._on_alert = on_alert
        self._memory = memory
        self._seen: OrderedDict[tuple[str, Optional[str]], None] = OrderedDict()
        self._actor_id: Optional[str] = None
        self._generation = 0
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def actor_id(self) -> Optional[str]:
        return self._actor_id

    @property
    def is_open(self) -> bool:
        return self._actor_id is not None

    def on_alert(self, handler: Optional[AlertHandler]) -> None:
        self._on_alert = handler

    def open(self, actor_id: str) -> None:
        """Subscribe to ``actor_id``; an existing subscription is closed first."""
        if (
            self._actor_id == actor_id
            and self._task is not None
            and not self._task.done()
        ):
            return
        self.close()
        self._actor_id = actor_id
        self._generation += 1
        self._task = asyncio.get_running_loop().create_task(
            self._run(actor_id, self._generation),
            name=f"change-channel:{actor_id}",
        )
        logger.info(f"Change channel opened for actor={actor_id}")

    def close(self) -> None:
        """Tear down the subscription; no handler runs after this returns."""
        if self._actor_id is None:
            return
        actor_id = self._actor_id
        self._generation += 1
        self._actor_id = None
        self._seen.clear()
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        logger.info(f"Change channel closed for actor={actor_id}")

    def _is_live(self, generation: int) -> bool:
        return self._actor_id is not None and generation == self._generation

    async def _run(self, actor_id: str, generation: int) -> None:
        try:
            async with aclosing(self._transport.subscribe(actor_id)) as events:
                async for event in events:
                    if not self._is_live(generation):
                        break
                    await self.handle_event(event, generation)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # realtime updates are lost until the view is mounted again
            logger.error(f"Change subscription failed for actor={actor_id}: {e}")

    async def handle_event(
        self, event: ChangeEvent, generation: Optional[int] = None
    ) -> bool:
        """Process one delivery; return ``True`` if it raised an alert."""
        generation = self._generation if generation is None else generation
        if not self._is_live(generation) or event.actor_id != self._actor_id:
            return False
        if not event.is_completion:
            logger.debug(
                f"Ignoring {event.new_status.value} update for subject={event.subject_id}"
            )
            return False

        key = event.dedupe_key
        if key in self._seen:
            logger.debug(f"Duplicate completion for subject={event.subject_id} ignored")
            return False
        self._seen[key] = None
        while len(self._seen) > self._memory:
            self._seen.popitem(last=False)

        await self._aggregator.refresh(event.actor_id)
        if not self._is_live(generation):
            return False

        alert = Alert(
            title="Nova detected new impacts",
            description="An automatic analysis just finished.",
            action_label="View",
            subject_id=event.subject_id,
            linked_run_id=event.linked_run_id,
        )
        logger.info(
            f"Impact analysis completed for subject={event.subject_id} "
            f"run={event.linked_run_id}; {self._aggregator.pending.display} pending"
        )
        if self._on_alert is not None:
            try:
                result = self._on_alert(alert)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    f"Alert handler failed for subject={event.subject_id}"
                )
        return True
