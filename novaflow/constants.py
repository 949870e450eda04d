"""Shared defaults for novaflow."""

DEFAULT_POLL_INTERVAL = 2.0
DEFAULT_PENDING_SCAN_LIMIT = 100
DEFAULT_PENDING_DISPLAY_CAP = 99
DEFAULT_SEEN_EVENT_MEMORY = 256

LAST_ARTIFACT_KEY = "lastArtifact"
DEFAULT_RESUME_TAB = "dashboard"

WORKFLOW_LABELS = {
    "feature_discovery": "Feature Discovery",
    "roadmap": "Roadmap Planning",
    "sprint": "Sprint Planning",
    "tech_spec": "Technical Specification",
}
