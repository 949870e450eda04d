"""Polling watcher that turns artifact creation into step completion signals."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Union

from .backend import BackendRepository
from .constants import DEFAULT_POLL_INTERVAL
from .contracts import ArtifactIncrease, ArtifactSnapshot

logger = logging.getLogger(__name__)

IncreaseHandler = Callable[[ArtifactIncrease], Union[Awaitable[Any], Any]]


class ArtifactCountWatcher:
    """Poll the actor's artifact count and report strict increases.

    Each instance owns its baseline. A baseline read happens once on
    ``start()`` before any comparison, so artifacts created before
    activation never count as progress. ``stop()`` is synchronous and no
    signal is delivered after it returns, even for a fetch already in flight.
    """

    def __init__(
        self,
        backend: BackendRepository,
        actor_id: str,
        on_increase: IncreaseHandler,
        interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        self._backend = backend
        self._actor_id = actor_id
        self._on_increase = on_increase
        self._interval = interval
        self._snapshot: Optional[ArtifactSnapshot] = None
        self._generation = 0
        self._running = False
        self._stopped = False
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def snapshot(self) -> Optional[ArtifactSnapshot]:
        """Last observed count, ``None`` until a read has succeeded."""
        return self._snapshot

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Seed the baseline and begin polling on the running event loop."""
        if self._running:
            return
        self._generation += 1
        self._stopped = False
        self._running = True
        self._task = asyncio.get_running_loop().create_task(
            self._run(self._generation),
            name=f"artifact-watcher:{self._actor_id}",
        )
        logger.info(f"Artifact watcher started for actor={self._actor_id}")

    def stop(self) -> None:
        """Stop polling; pending and in-flight ticks are discarded."""
        was_running = self._running
        self._generation += 1
        self._stopped = True
        self._running = False
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        if was_running:
            logger.info(f"Artifact watcher stopped for actor={self._actor_id}")

    def _is_live(self, generation: int) -> bool:
        return not self._stopped and generation == self._generation

    async def _run(self, generation: int) -> None:
        await self.seed(generation)
        while self._is_live(generation):
            await asyncio.sleep(self._interval)
            if not self._is_live(generation):
                break
            try:
                await self.poll_once(generation)
            except Exception:
                # the baseline already moved, so the artifact is not redelivered
                logger.exception(
                    f"Increase handler failed for actor={self._actor_id}"
                )

    async def seed(self, generation: Optional[int] = None) -> None:
        """Fetch the starting count without emitting anything."""
        generation = self._generation if generation is None else generation
        try:
            count = await self._backend.count_artifacts(self._actor_id)
        except Exception as e:
            logger.warning(
                f"Baseline artifact count failed for actor={self._actor_id}: {e}"
            )
            return
        if not self._is_live(generation):
            return
        self._snapshot = ArtifactSnapshot(count=count)
        logger.debug(f"Baseline artifact count for actor={self._actor_id} is {count}")

    async def poll_once(
        self, generation: Optional[int] = None
    ) -> Optional[ArtifactIncrease]:
        """Run one polling tick and deliver a signal on a strict increase."""
        generation = self._generation if generation is None else generation
        try:
            count = await self._backend.count_artifacts(self._actor_id)
        except Exception as e:
            logger.warning(f"Artifact count failed for actor={self._actor_id}: {e}")
            return None
        if not self._is_live(generation):
            return None

        previous = self._snapshot
        if previous is None:
            # no baseline yet, this read becomes it
            self._snapshot = ArtifactSnapshot(count=count)
            return None
        if count <= previous.count:
            if count < previous.count:
                self._snapshot = ArtifactSnapshot(count=count)
            return None

        try:
            recent = await self._backend.list_recent_artifacts(self._actor_id, 1)
        except Exception as e:
            logger.warning(f"Recent artifact fetch failed for actor={self._actor_id}: {e}")
            return None
        if not self._is_live(generation) or not recent:
            return None

        artifact = recent[0]
        self._snapshot = ArtifactSnapshot(count=count, most_recent_id=artifact.id)
        increase = ArtifactIncrease(
            previous_count=previous.count, current_count=count, artifact=artifact
        )
        logger.info(
            f"Artifact count for actor={self._actor_id} rose from {previous.count} to {count}"
        )
        result = self._on_increase(increase)
        if inspect.isawaitable(result):
            await result
        return increase
