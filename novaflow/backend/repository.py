"""Repository abstraction for the hosted backend the engine reads and writes."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol

from ..contracts import Artifact, SessionRecord


class BackendRepository(Protocol):
    """Protocol for backend persistence implementations."""

    async def count_artifacts(self, actor_id: str) -> int:
        """Return the number of artifacts owned by the actor."""

    async def list_recent_artifacts(self, actor_id: str, limit: int) -> list[Artifact]:
        """Return up to ``limit`` artifacts, newest first."""

    async def create_artifact(self, artifact: Artifact) -> Artifact:
        """Persist a new artifact."""

    async def count_pending_review_items(self, actor_id: str, limit: int) -> int:
        """Return the number of items awaiting review, capped at ``limit``."""

    async def create_review_item(
        self, actor_id: str, run_id: str, item_name: str, review_status: str = "pending"
    ) -> str:
        """Persist an item produced by an analysis run and return its id."""

    async def mark_reviewed(self, item_id: str) -> None:
        """Mark a review item as reviewed."""

    async def get_session_record(self, actor_id: str) -> SessionRecord | None:
        """Retrieve the actor's session record, if any."""

    async def upsert_session_record(
        self, actor_id: str, fields: dict[str, Any], last_active_at: datetime
    ) -> SessionRecord:
        """Create or update the actor's session record.

        Only ``fields`` are overwritten. A write whose ``last_active_at`` is
        older than the stored one is ignored and the stored record returned.
        """
