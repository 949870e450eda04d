"""Persisted "where the user left off" state, one record per actor."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Union

from .backend import BackendRepository
from .constants import DEFAULT_RESUME_TAB, WORKFLOW_LABELS
from .contracts import ResumeTarget, SessionRecord, SessionUpdate, utcnow

logger = logging.getLogger(__name__)

PartialSession = Union[SessionUpdate, Dict[str, Any]]


def workflow_label(workflow_type: Optional[str]) -> str:
    """Human readable name of a workflow type."""
    if not workflow_type:
        return "your last workflow"
    return WORKFLOW_LABELS.get(workflow_type, workflow_type)


def _as_update(partial: PartialSession) -> SessionUpdate:
    if isinstance(partial, SessionUpdate):
        return partial
    return SessionUpdate.model_validate(partial)


class SessionContinuityStore:
    """Keyed last-write-wins store of session records."""

    def __init__(
        self,
        backend: BackendRepository,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._backend = backend
        self._clock = clock

    async def read(self, actor_id: str) -> SessionRecord | None:
        """Return the actor's record, ``None`` on a first visit."""
        return await self._backend.get_session_record(actor_id)

    async def write(self, actor_id: str, partial: PartialSession) -> SessionRecord:
        """Upsert the supplied fields and refresh ``last_active_at``."""
        update = _as_update(partial)
        return await self._backend.upsert_session_record(
            actor_id, update.fields(), self._clock()
        )


class SessionMemory:
    """Reactive session value for one actor.

    ``load()`` runs once at session start; ``update_session()`` writes through
    and adopts the record the backend kept. Failures are logged and leave the
    local value untouched.
    """

    def __init__(self, store: SessionContinuityStore, actor_id: Optional[str]) -> None:
        self._store = store
        self._actor_id = actor_id
        self._session: Optional[SessionRecord] = None
        self._loaded = False

    @property
    def session(self) -> Optional[SessionRecord]:
        return self._session

    @property
    def loaded(self) -> bool:
        return self._loaded

    async def load(self) -> Optional[SessionRecord]:
        if not self._actor_id:
            self._loaded = True
            return None
        try:
            self._session = await self._store.read(self._actor_id)
        except Exception as e:
            logger.error(f"Error loading session for actor={self._actor_id}: {e}")
        finally:
            self._loaded = True
        return self._session

    async def update_session(self, partial: PartialSession) -> Optional[SessionRecord]:
        if not self._actor_id:
            return None
        update = _as_update(partial)
        try:
            written = await self._store.write(self._actor_id, update)
        except Exception as e:
            logger.error(f"Error updating session for actor={self._actor_id}: {e}")
            return self._session
        self._session = written
        return self._session

    def resume_target(self) -> Optional[ResumeTarget]:
        """Where "continue where you left off" leads, ``None`` on a first visit."""
        if self._session is None:
            return None
        return ResumeTarget(
            tab=self._session.last_tab or DEFAULT_RESUME_TAB,
            squad_id=self._session.last_squad_id,
            workflow_type=self._session.last_workflow_type,
            label=workflow_label(self._session.last_workflow_type),
        )
