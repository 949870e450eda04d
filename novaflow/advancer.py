"""Workflow step advancement driven by artifact creation."""

from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from .backend import BackendRepository
from .constants import DEFAULT_POLL_INTERVAL, LAST_ARTIFACT_KEY
from .contracts import ArtifactIncrease, StepAdvance, WorkflowState, step_key
from .watcher import ArtifactCountWatcher

logger = logging.getLogger(__name__)

StepCompleteCallback = Callable[[int, Dict[str, Any]], Union[Awaitable[Any], Any]]


class WorkflowStepAdvancer:
    """Turn artifact increase signals into proposed step transitions.

    The advancer keeps its own view of the workflow and applies every
    proposal to it, so consecutive signals are computed against the step
    reached by the previous one.
    """

    def __init__(
        self,
        state: WorkflowState,
        on_step_complete: Optional[StepCompleteCallback] = None,
    ) -> None:
        self._state = state
        self._on_step_complete = on_step_complete

    @property
    def state(self) -> WorkflowState:
        return self._state

    @property
    def context(self) -> Dict[str, Any]:
        return self._state.context

    def register(self, callback: Optional[StepCompleteCallback]) -> None:
        """Register the callback receiving ``(next_step, context)``."""
        self._on_step_complete = callback

    def reset(self, state: WorkflowState) -> None:
        """Replace the tracked workflow, the only way the step may go back."""
        self._state = state

    async def handle(self, increase: ArtifactIncrease) -> Optional[StepAdvance]:
        """Advance one step for ``increase`` and notify the callback once."""
        if self._on_step_complete is None:
            logger.debug(
                f"Ignoring artifact {increase.artifact.id}: no step callback registered"
            )
            return None

        current = self._state
        artifact = increase.artifact.to_context()
        delta = {step_key(current.current_step): artifact, LAST_ARTIFACT_KEY: artifact}
        self._state = current.advanced(delta)
        advance = StepAdvance(
            workflow_type=current.type,
            next_step=self._state.current_step,
            context_delta=delta,
            context=dict(self._state.context),
        )
        logger.info(
            f"Workflow {current.type} advanced to step {advance.next_step} "
            f"after artifact {increase.artifact.id}"
        )

        result = self._on_step_complete(advance.next_step, advance.context)
        if inspect.isawaitable(result):
            await result
        return advance


class WorkflowProgressTracker:
    """Handle for the active workflow of one actor.

    Every activation gets a fresh watcher with its own baseline. Deactivating
    stops polling synchronously and clears the accumulated context.
    """

    def __init__(
        self,
        backend: BackendRepository,
        actor_id: str,
        on_step_complete: Optional[StepCompleteCallback] = None,
        interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        self._backend = backend
        self._actor_id = actor_id
        self._on_step_complete = on_step_complete
        self._interval = interval
        self._watcher: Optional[ArtifactCountWatcher] = None
        self._advancer: Optional[WorkflowStepAdvancer] = None

    @property
    def active(self) -> bool:
        return self._watcher is not None

    @property
    def watcher(self) -> Optional[ArtifactCountWatcher]:
        return self._watcher

    @property
    def state(self) -> Optional[WorkflowState]:
        return self._advancer.state if self._advancer else None

    @property
    def workflow_context(self) -> Dict[str, Any]:
        return dict(self._advancer.context) if self._advancer else {}

    def on_step_complete(self, callback: Optional[StepCompleteCallback]) -> None:
        self._on_step_complete = callback
        if self._advancer is not None:
            self._advancer.register(callback)

    def activate(self, state: WorkflowState) -> None:
        """Start tracking ``state``, replacing any workflow already active."""
        self.deactivate()
        self._advancer = WorkflowStepAdvancer(state, self._on_step_complete)
        self._watcher = ArtifactCountWatcher(
            self._backend,
            self._actor_id,
            self._advancer.handle,
            interval=self._interval,
        )
        self._watcher.start()
        logger.info(
            f"Tracking workflow {state.type} from step {state.current_step} "
            f"for actor={self._actor_id}"
        )

    def deactivate(self) -> None:
        """Stop tracking and drop the workflow context."""
        if self._watcher is not None:
            self._watcher.stop()
        self._watcher = None
        self._advancer = None
