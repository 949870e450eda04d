"""Novaflow: session and workflow continuity for guided product workflows."""

from .advancer import WorkflowProgressTracker, WorkflowStepAdvancer
from .backend import get_backend
from .contracts import (
    Alert,
    Artifact,
    ChangeEvent,
    PendingReviewCount,
    SessionRecord,
    SessionUpdate,
    WorkflowState,
)
from .engine import ContinuityEngine
from .notifications import ChangeNotificationChannel, PendingCountAggregator
from .session import SessionContinuityStore, SessionMemory
from .transports import get_transport
from .watcher import ArtifactCountWatcher

__version__ = "0.1.0"
__all__ = [
    "Alert",
    "Artifact",
    "ArtifactCountWatcher",
    "ChangeEvent",
    "ChangeNotificationChannel",
    "ContinuityEngine",
    "PendingCountAggregator",
    "PendingReviewCount",
    "SessionContinuityStore",
    "SessionMemory",
    "SessionRecord",
    "SessionUpdate",
    "WorkflowProgressTracker",
    "WorkflowState",
    "WorkflowStepAdvancer",
    "get_backend",
    "get_transport",
]
