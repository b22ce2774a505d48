from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

Probability = Annotated[float, Field(ge=0.0, le=1.0)]
Level = Literal["high", "medium", "low"]
AdviceCategory = Literal["career", "skills", "leadership", "personal", "networking"]
BarrierType = Literal["time", "resources", "skills", "motivation", "external"]
ActionStatus = Literal["pending", "in_progress", "completed"]


# -------------------------
# Transcription
# -------------------------

class SpeakerSegment(BaseModel):
    """One diarized utterance: speaker label, text, start/end in seconds, and recognition confidence."""

    speaker: str
    text: str
    start: float = Field(0, ge=0)
    end: float = Field(0, ge=0)
    confidence: Probability = 0.9


class TranscriptionResult(BaseModel):
    """Transcript plus speaker segments for one recording. mode says whether the real backend or the mock produced it."""

    transcript: str
    speakers: List[SpeakerSegment] = Field(default_factory=list)
    duration: int = Field(..., ge=0, description="Recording length in minutes")
    confidence: Probability
    language: str = "en"
    mode: Literal["real", "mock"] = "mock"


# -------------------------
# Insights
# -------------------------

class AdviceItem(BaseModel):
    id: str
    title: str = Field(..., min_length=1)
    description: str = ""
    category: AdviceCategory = "personal"
    impact: Level = "medium"
    complexity: Level = "medium"
    quote: str = ""
    speaker: str = ""
    timestamp: float = Field(0, ge=0, description="Seconds from the start of the recording")
    confidence: Probability = 0.7


class BehavioralPattern(BaseModel):
    pattern: str = Field(..., min_length=1)
    description: str = ""
    frequency: int = Field(0, ge=0)
    confidence: Probability = 0.7


class ImplementationBarrier(BaseModel):
    type: BarrierType = "external"
    description: str = Field(..., min_length=1)
    severity: Level = "medium"
    suggestions: List[str] = Field(default_factory=list)


class SuccessMetric(BaseModel):
    name: str = Field(..., min_length=1)
    description: str = ""
    measurement: str = ""
    timeline: str = ""


class EmotionalContext(BaseModel):
    motivation: Probability = 0.5
    confidence: Probability = 0.5
    concerns: List[str] = Field(default_factory=list)
    excitement: Probability = 0.5


class PriorityRank(BaseModel):
    action_id: str
    priority: int = Field(5, ge=1, le=10)
    reasoning: str = ""
    success_probability: Probability = 0.7


class MeetingInsights(BaseModel):
    """Structured coaching insights for one conversation. Every probability is validated into [0, 1]."""

    advice_given: List[AdviceItem] = Field(..., min_length=1)
    behavioral_patterns: List[BehavioralPattern] = Field(default_factory=list)
    implementation_barriers: List[ImplementationBarrier] = Field(default_factory=list)
    success_metrics: List[SuccessMetric] = Field(default_factory=list)
    emotional_context: EmotionalContext = Field(default_factory=EmotionalContext)
    priority_ranking: List[PriorityRank] = Field(default_factory=list)
    confidence: Probability


# -------------------------
# Action plan
# -------------------------

class ActionItem(BaseModel):
    id: str
    title: str = Field(..., min_length=1)
    description: str = ""
    category: str = "general"
    priority: Level = "medium"
    complexity: Level = "medium"
    estimated_time: int = Field(60, gt=0, description="Minutes")
    due_date: datetime
    success_probability: Probability = 0.8
    barriers: List[str] = Field(default_factory=list)
    motivation_level: Probability = 0.7


class HabitFormation(BaseModel):
    habit: str = Field(..., min_length=1)
    trigger: str = ""
    reward: str = ""
    frequency: str = ""
    start_date: datetime


class SchedulingEntry(BaseModel):
    action: str = Field(..., min_length=1)
    optimal_time: str = ""
    duration: int = Field(30, ge=0, description="Minutes")
    context: str = ""


class RiskMitigation(BaseModel):
    risk: str = Field(..., min_length=1)
    probability: Probability = 0.5
    impact: str = ""
    mitigation: str = ""


class ActionPlan(BaseModel):
    """Implementation plan derived from insights. immediate_actions is never empty."""

    immediate_actions: List[ActionItem] = Field(..., min_length=1)
    habit_formation: List[HabitFormation] = Field(default_factory=list)
    scheduling_strategy: List[SchedulingEntry] = Field(default_factory=list)
    risk_mitigation: List[RiskMitigation] = Field(default_factory=list)


# -------------------------
# API
# -------------------------

class ActionResponse(BaseModel):
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
    barriers: List[str] = Field(default_factory=list)
    motivation_level: float
    status: ActionStatus
    completed_at: Optional[datetime] = None
    implementation_notes: Optional[str] = None
    created_at: datetime


class MeetingResponse(BaseModel):
    id: str
    user_id: str
    title: str
    audio_ref: str
    meeting_type: str
    participants: List[str] = Field(default_factory=list)
    duration: Optional[int] = None
    transcript: Optional[str] = None
    insights: Optional[Dict[str, Any]] = None
    action_plan: Optional[Dict[str, Any]] = None
    confidence: Optional[float] = None
    processing_status: str
    degraded_stages: List[str] = Field(default_factory=list)
    failed_stage: Optional[str] = None
    error: Optional[str] = None
    created_at: datetime
    processed_at: Optional[datetime] = None


class MeetingStatusResponse(BaseModel):
    """Response for GET /meetings/{id}: current status plus the meeting and its actions, for clients polling after /process."""

    status: str
    meeting: MeetingResponse
    actions: List[ActionResponse] = Field(default_factory=list)


class ActionUpdateRequest(BaseModel):
    status: Optional[ActionStatus] = None
    implementation_notes: Optional[str] = None


class UpcomingAction(BaseModel):
    id: str
    title: str
    due_date: Optional[str] = None
    priority: str
    estimated_time: int


class RecentMeeting(BaseModel):
    id: str
    title: str
    date: str
    insights: int = Field(..., ge=0, description="Number of advice items extracted")
    actions: int = Field(..., ge=0)
    status: str


class UserStatsResponse(BaseModel):
    """Dashboard numbers for one user: how many actions get implemented and what is coming up next."""

    implementation_rate: int = Field(..., ge=0, le=100, description="Percent of actions completed")
    actions_completed: int = Field(..., ge=0)
    total_actions: int = Field(..., ge=0)
    total_meetings: int = Field(..., ge=0)
    average_success_probability: int = Field(..., ge=0, le=100, description="Percent")
    high_priority_pending: int = Field(..., ge=0)
    recent_meetings: List[RecentMeeting] = Field(default_factory=list)
    upcoming_actions: List[UpcomingAction] = Field(default_factory=list)


class LimitsResponse(BaseModel):
    max_upload_mb: int
    transcription_mode: Literal["real", "mock"]
    llm_mode: Literal["real", "mock"]
    transcription_poll_attempts: int
    transcription_poll_interval_seconds: float
    rate_limit_requests: int
    rate_limit_window_seconds: int
