"""In-memory implementation of the backend repository."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, List

from pydantic import BaseModel

from ..contracts import Artifact, SessionRecord
from .repository import BackendRepository


class ReviewItem(BaseModel):
    """Item produced by an analysis run awaiting the actor's review."""

    id: str
    actor_id: str
    run_id: str
    item_name: str
    review_status: str = "pending"


class InMemoryBackendRepository(BackendRepository):
    """Store backend state in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts.
    """

    def __init__(self) -> None:
        self._artifacts: Dict[str, List[Artifact]] = {}
        self._review_items: Dict[str, ReviewItem] = {}
        self._sessions: Dict[str, SessionRecord] = {}

    # ------------------------------------------------------------------
    async def count_artifacts(self, actor_id: str) -> int:
        return len(self._artifacts.get(actor_id, []))

    async def list_recent_artifacts(self, actor_id: str, limit: int) -> list[Artifact]:
        artifacts = sorted(
            self._artifacts.get(actor_id, []),
            key=lambda a: a.created_at,
            reverse=True,
        )
        return artifacts[:limit]

    async def create_artifact(self, artifact: Artifact) -> Artifact:
        self._artifacts.setdefault(artifact.actor_id, []).append(artifact)
        return artifact

    async def count_pending_review_items(self, actor_id: str, limit: int) -> int:
        pending = sum(
            1
            for item in self._review_items.values()
            if item.actor_id == actor_id and item.review_status == "pending"
        )
        return min(pending, limit)

    async def create_review_item(
        self, actor_id: str, run_id: str, item_name: str, review_status: str = "pending"
    ) -> str:
        item_id = str(uuid.uuid4())
        self._review_items[item_id] = ReviewItem(
            id=item_id,
            actor_id=actor_id,
            run_id=run_id,
            item_name=item_name,
            review_status=review_status,
        )
        return item_id

    async def mark_reviewed(self, item_id: str) -> None:
        item = self._review_items.get(item_id)
        if item:
            item.review_status = "reviewed"

    async def get_session_record(self, actor_id: str) -> SessionRecord | None:
        record = self._sessions.get(actor_id)
        return record.model_copy(deep=True) if record else None

    async def upsert_session_record(
        self, actor_id: str, fields: dict[str, Any], last_active_at: datetime
    ) -> SessionRecord:
        existing = self._sessions.get(actor_id)
        if existing is None:
            existing = SessionRecord(actor_id=actor_id, last_active_at=last_active_at)
        elif existing.last_active_at > last_active_at:
            return existing.model_copy(deep=True)
        record = existing.merged(fields, last_active_at)
        self._sessions[actor_id] = record
        return record.model_copy(deep=True)
