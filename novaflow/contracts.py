"""Core data contracts for the novaflow continuity engine."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .constants import (
    DEFAULT_PENDING_DISPLAY_CAP,
    DEFAULT_PENDING_SCAN_LIMIT,
    DEFAULT_RESUME_TAB,
    LAST_ARTIFACT_KEY,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def step_key(step: int) -> str:
    """Context key under which the artifact completing ``step`` is stored."""
    return f"step_{step}"


class WorkflowState(BaseModel):
    """Progress of the guided workflow currently shown to the actor."""

    type: str
    current_step: int = Field(default=0, ge=0)
    completed_steps: List[str] = Field(default_factory=list)
    context: Dict[str, Any] = Field(default_factory=dict)

    def advanced(self, context_delta: Dict[str, Any]) -> "WorkflowState":
        """Return a copy moved one step forward with ``context_delta`` merged."""
        return WorkflowState(
            type=self.type,
            current_step=self.current_step + 1,
            completed_steps=[*self.completed_steps, step_key(self.current_step)],
            context={**self.context, **context_delta},
        )


class Artifact(BaseModel):
    """Deliverable produced by workflow progress."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    actor_id: str
    artifact_type: str = "document"
    title: str = ""
    content: Any = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)

    def to_context(self) -> Dict[str, Any]:
        """JSON-safe representation stored in workflow context."""
        return self.model_dump(mode="json")


class ArtifactSnapshot(BaseModel):
    """Last artifact count observed by a watcher."""

    count: int = Field(ge=0)
    most_recent_id: Optional[str] = None


class ArtifactIncrease(BaseModel):
    """Signal emitted when the actor's artifact count strictly increases."""

    previous_count: int
    current_count: int
    artifact: Artifact

    @property
    def delta(self) -> int:
        return self.current_count - self.previous_count


class StepAdvance(BaseModel):
    """Proposed transition of a workflow to its next step."""

    workflow_type: str
    next_step: int
    context_delta: Dict[str, Any]
    context: Dict[str, Any]


class PendingReviewCount(BaseModel):
    """Number of review-pending items, bounded by the scan limit."""

    count: int = Field(default=0, ge=0)
    limit: int = DEFAULT_PENDING_SCAN_LIMIT
    display_cap: int = DEFAULT_PENDING_DISPLAY_CAP

    @property
    def visible(self) -> bool:
        return self.count > 0

    @property
    def display(self) -> str:
        if self.count > self.display_cap:
            return f"{self.display_cap}+"
        return str(self.count)


class QueueStatus(str, Enum):
    """Lifecycle of an entry in the backend analysis queue."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ChangeEvent(BaseModel):
    """Status transition pushed by the backend for one queue entry."""

    subject_id: str
    actor_id: str
    new_status: QueueStatus
    linked_run_id: Optional[str] = None

    @property
    def is_completion(self) -> bool:
        return self.new_status is QueueStatus.COMPLETED and bool(self.linked_run_id)

    @property
    def dedupe_key(self) -> tuple[str, str | None]:
        return (self.subject_id, self.linked_run_id)

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str | bytes) -> "ChangeEvent":
        return cls.model_validate_json(data)


class Alert(BaseModel):
    """User-visible notification raised by the change channel."""

    title: str
    description: str = ""
    action_label: Optional[str] = None
    subject_id: Optional[str] = None
    linked_run_id: Optional[str] = None


class SessionUpdate(BaseModel):
    """Partial update of a session record; only set fields are written."""

    model_config = ConfigDict(extra="forbid")

    last_workflow_type: Optional[str] = None
    last_squad_id: Optional[str] = None
    last_context_id: Optional[str] = None
    last_tab: Optional[str] = None
    freeform_payload: Optional[Dict[str, Any]] = None

    def fields(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)


SESSION_FIELDS = tuple(SessionUpdate.model_fields)


class SessionRecord(BaseModel):
    """Canonical "where the user left off" record, one per actor."""

    actor_id: str
    last_workflow_type: Optional[str] = None
    last_squad_id: Optional[str] = None
    last_context_id: Optional[str] = None
    last_tab: Optional[str] = None
    freeform_payload: Dict[str, Any] = Field(default_factory=dict)
    last_active_at: datetime = Field(default_factory=utcnow)

    def merged(self, fields: Dict[str, Any], last_active_at: datetime) -> "SessionRecord":
        """Return a copy with ``fields`` overwritten and the timestamp refreshed."""
        data = self.model_dump()
        data.update(fields)
        if data.get("freeform_payload") is None:
            data["freeform_payload"] = {}
        data["last_active_at"] = last_active_at
        return SessionRecord(**data)


class ResumeTarget(BaseModel):
    """Where the "continue where you left off" affordance leads."""

    tab: str = DEFAULT_RESUME_TAB
    squad_id: Optional[str] = None
    workflow_type: Optional[str] = None
    label: str


__all__ = [
    "LAST_ARTIFACT_KEY",
    "Alert",
    "Artifact",
    "ArtifactIncrease",
    "ArtifactSnapshot",
    "ChangeEvent",
    "PendingReviewCount",
    "QueueStatus",
    "ResumeTarget",
    "SESSION_FIELDS",
    "SessionRecord",
    "SessionUpdate",
    "StepAdvance",
    "WorkflowState",
    "step_key",
    "utcnow",
]
