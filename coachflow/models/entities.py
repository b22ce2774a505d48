"""Persisted records: Meeting (one per uploaded recording) and Action (one per planned action item)."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProcessingStatus(str, Enum):
    UPLOADED = "uploaded"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


# Allowed forward moves; completed and failed are terminal.
STATUS_TRANSITIONS = {
    ProcessingStatus.UPLOADED: {ProcessingStatus.PROCESSING},
    ProcessingStatus.PROCESSING: {ProcessingStatus.COMPLETED, ProcessingStatus.FAILED},
    ProcessingStatus.COMPLETED: set(),
    ProcessingStatus.FAILED: set(),
}

ACTION_TRANSITIONS = {
    "pending": {"in_progress", "completed"},
    "in_progress": {"completed"},
    "completed": set(),
}


@dataclass
class Meeting:
    """One recorded conversation and everything the pipeline derived from it.
    processing_status only moves forward (see STATUS_TRANSITIONS)."""

    id: str
    user_id: str
    title: str
    audio_ref: str
    meeting_type: str = "mentor_session"
    participants: List[str] = field(default_factory=lambda: ["Mentor", "Mentee"])
    duration: Optional[int] = None  # minutes
    transcript: Optional[str] = None
    speakers: List[Dict[str, Any]] = field(default_factory=list)
    insights: Optional[Dict[str, Any]] = None
    action_plan: Optional[Dict[str, Any]] = None
    confidence: Optional[float] = None
    processing_status: ProcessingStatus = ProcessingStatus.UPLOADED
    degraded_stages: List[str] = field(default_factory=list)
    failed_stage: Optional[str] = None
    error: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    processed_at: Optional[datetime] = None


@dataclass
class Action:
    """A persisted action item owned by a meeting and its user. status: pending | in_progress | completed."""

    id: str
    meeting_id: str
    user_id: str
    title: str
    description: str
    category: str
    priority: str
    complexity: str
    estimated_time: int
    due_date: datetime
    success_probability: float
    barriers: List[str] = field(default_factory=list)
    motivation_level: float = 0.7
    status: str = "pending"
    completed_at: Optional[datetime] = None
    implementation_notes: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
