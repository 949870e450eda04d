"""Per-view facade over the continuity components."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from .advancer import StepCompleteCallback, WorkflowProgressTracker
from .backend import BackendRepository, get_backend
from .config import NovaflowConfig, load_config
from .contracts import PendingReviewCount, ResumeTarget, SessionRecord, WorkflowState
from .notifications import AlertHandler, ChangeNotificationChannel, PendingCountAggregator
from .session import PartialSession, SessionContinuityStore, SessionMemory
from .transports import BaseTransport, get_transport

logger = logging.getLogger(__name__)


class ContinuityEngine:
    """Everything one mounted view needs for a single actor.

    ``mount()`` loads the session, computes the pending badge and opens the
    change channel. ``unmount()`` stops polling and the subscription before
    returning.
    """

    def __init__(
        self,
        actor_id: str,
        backend: BackendRepository | None = None,
        transport: BaseTransport | None = None,
        config: NovaflowConfig | None = None,
        on_alert: Optional[AlertHandler] = None,
    ) -> None:
        self._config = config or load_config()
        self._actor_id = actor_id
        self._backend = backend or get_backend(config=self._config)
        self._transport = transport or get_transport(config=self._config)
        self._tracker = WorkflowProgressTracker(
            self._backend,
            actor_id,
            interval=self._config.workflow.poll_interval,
        )
        self._aggregator = PendingCountAggregator(
            self._backend,
            scan_limit=self._config.notifications.scan_limit,
            display_cap=self._config.notifications.display_cap,
        )
        self._channel = ChangeNotificationChannel(
            self._transport, self._aggregator, on_alert=on_alert
        )
        self._memory = SessionMemory(SessionContinuityStore(self._backend), actor_id)
        self._mounted = False

    @property
    def actor_id(self) -> str:
        return self._actor_id

    @property
    def mounted(self) -> bool:
        return self._mounted

    @property
    def pending(self) -> PendingReviewCount:
        return self._aggregator.pending

    @property
    def pending_count(self) -> int:
        return self._aggregator.pending_count

    @property
    def session(self) -> Optional[SessionRecord]:
        return self._memory.session

    @property
    def workflow(self) -> Optional[WorkflowState]:
        return self._tracker.state

    @property
    def workflow_context(self) -> Dict[str, Any]:
        return self._tracker.workflow_context

    def on_step_complete(self, callback: Optional[StepCompleteCallback]) -> None:
        self._tracker.on_step_complete(callback)

    def on_alert(self, handler: Optional[AlertHandler]) -> None:
        self._channel.on_alert(handler)

    async def mount(self) -> None:
        if self._mounted:
            return
        self._mounted = True
        self._channel.open(self._actor_id)
        await self._memory.load()
        await self._aggregator.refresh(self._actor_id)
        logger.info(f"Continuity engine mounted for actor={self._actor_id}")

    def unmount(self) -> None:
        self._tracker.deactivate()
        self._channel.close()
        self._aggregator.reset()
        if self._mounted:
            logger.info(f"Continuity engine unmounted for actor={self._actor_id}")
        self._mounted = False

    async def refresh_pending(self) -> PendingReviewCount:
        return await self._aggregator.refresh(self._actor_id)

    async def start_workflow(self, state: WorkflowState) -> None:
        """Track ``state`` and remember it as the actor's last workflow."""
        self._tracker.activate(state)
        await self._memory.update_session({"last_workflow_type": state.type})

    def end_workflow(self) -> None:
        self._tracker.deactivate()

    async def update_session(self, partial: PartialSession) -> Optional[SessionRecord]:
        return await self._memory.update_session(partial)

    def resume_target(self) -> Optional[ResumeTarget]:
        return self._memory.resume_target()
