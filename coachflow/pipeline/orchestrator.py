"""
Meeting state machine: uploaded -> processing -> completed | failed.

start_processing() claims the meeting with a compare-and-swap, then runs
transcription, insight extraction, action planning and action persistence in
order, saving each stage's output as soon as it exists. Stage components absorb
their own AI failures (degraded outcomes); anything that still escapes marks the
meeting failed and is re-raised as ProcessingError naming the stage.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from coachflow.core.config import Settings
from coachflow.core.errors import (
    InvalidActionTransitionError,
    MediaNotFoundError,
    MeetingNotFoundError,
    ProcessingConflictError,
    ProcessingError,
    RecordNotFoundError,
    TranscriptionError,
)
from coachflow.extract.insights import InsightExtractor
from coachflow.models.entities import ACTION_TRANSITIONS, Action, Meeting, ProcessingStatus, utcnow
from coachflow.models.outcome import Degraded, Real, StageOutcome
from coachflow.models.schemas import ActionPlan, MeetingInsights, TranscriptionResult, UserStatsResponse
from coachflow.pipeline.gateway import PersistenceGateway
from coachflow.pipeline.stats import compute_user_stats, sort_actions
from coachflow.planning.action_plan import ActionPlanGenerator
from coachflow.transcription.service import TranscriptionAdapter

logger = logging.getLogger(__name__)

STAGE_TRANSCRIPTION = "transcription"
STAGE_INSIGHTS = "insight-extraction"
STAGE_PLANNING = "action-planning"
STAGE_PERSISTENCE = "action-persistence"


@dataclass
class ProcessingResult:
    meeting: Meeting
    actions: List[Action]
    transcription: TranscriptionResult
    insights: MeetingInsights
    action_plan: ActionPlan
    degraded: Dict[str, str] = field(default_factory=dict)  # stage -> reason


class PipelineOrchestrator:
    def __init__(
        self,
        gateway: PersistenceGateway,
        transcriber: TranscriptionAdapter,
        extractor: InsightExtractor,
        planner: ActionPlanGenerator,
        settings: Settings,
    ):
        self.gateway = gateway
        self.transcriber = transcriber
        self.extractor = extractor
        self.planner = planner
        self.settings = settings

    @classmethod
    def from_settings(cls, settings: Settings, gateway: PersistenceGateway) -> "PipelineOrchestrator":
        """Wire the default components; each picks real or mock mode from settings."""
        return cls(
            gateway=gateway,
            transcriber=TranscriptionAdapter(settings),
            extractor=InsightExtractor(settings),
            planner=ActionPlanGenerator(settings),
            settings=settings,
        )

    # -------------------------
    # Entry points
    # -------------------------

    def claim(self, meeting_id: str) -> Meeting:
        """uploaded -> processing, atomically. Raises MeetingNotFoundError or ProcessingConflictError; neither changes state."""
        try:
            claimed = self.gateway.transition_status(meeting_id, ProcessingStatus.UPLOADED, ProcessingStatus.PROCESSING)
        except RecordNotFoundError:
            raise MeetingNotFoundError(meeting_id)
        if claimed is None:
            current = self.gateway.get_meeting(meeting_id)
            status = current.processing_status.value if current else "missing"
            logger.info("processing_rejected", extra={"meeting_id": meeting_id, "status": status})
            raise ProcessingConflictError(meeting_id, status)
        logger.info("processing_started", extra={"meeting_id": meeting_id})
        return claimed

    def start_processing(self, meeting_id: str) -> ProcessingResult:
        """Claim the meeting and run every stage. At most one run per meeting: a second call raises ProcessingConflictError."""
        meeting = self.claim(meeting_id)
        return self.run_claimed(meeting)

    def run_claimed(self, meeting: Meeting) -> ProcessingResult:
        """Run the stages for a meeting already moved to processing by claim()."""
        stage = STAGE_TRANSCRIPTION
        degraded: Dict[str, str] = {}
        try:
            transcription = self._record(degraded, stage, self._transcribe(meeting))
            self.gateway.update_meeting(
                meeting.id,
                transcript=transcription.transcript,
                speakers=[s.model_dump() for s in transcription.speakers],
                duration=transcription.duration,
            )

            stage = STAGE_INSIGHTS
            context = {
                "meeting_type": meeting.meeting_type,
                "participants": meeting.participants,
                "duration": transcription.duration,
            }
            insights = self._record(degraded, stage, self.extractor.extract(transcription.transcript, context))
            self.gateway.update_meeting(
                meeting.id,
                insights=insights.model_dump(mode="json"),
                confidence=insights.confidence,
            )

            stage = STAGE_PLANNING
            plan = self._record(degraded, stage, self.planner.plan(insights, {"user_id": meeting.user_id}))
            self.gateway.update_meeting(meeting.id, action_plan=plan.model_dump(mode="json"))

            stage = STAGE_PERSISTENCE
            actions = [
                self.gateway.create_action(
                    meeting_id=meeting.id,
                    user_id=meeting.user_id,
                    title=item.title,
                    description=item.description,
                    category=item.category,
                    priority=item.priority,
                    complexity=item.complexity,
                    estimated_time=item.estimated_time,
                    due_date=item.due_date,
                    success_probability=item.success_probability,
                    barriers=list(item.barriers),
                    motivation_level=item.motivation_level,
                )
                for item in plan.immediate_actions
            ]

            completed = self.gateway.update_meeting(
                meeting.id,
                processing_status=ProcessingStatus.COMPLETED,
                processed_at=utcnow(),
                confidence=insights.confidence,
                degraded_stages=sorted(degraded),
            )
        except Exception as e:
            self._fail(meeting.id, stage, e)
            raise ProcessingError(stage, meeting.id, e) from e

        logger.info(
            "processing_completed",
            extra={"meeting_id": meeting.id, "actions": len(actions), "degraded": degraded},
        )
        return ProcessingResult(
            meeting=completed,
            actions=actions,
            transcription=transcription,
            insights=insights,
            action_plan=plan,
            degraded=degraded,
        )

    def get_status(self, meeting_id: str) -> Dict[str, Any]:
        meeting = self.gateway.get_meeting(meeting_id)
        if meeting is None:
            raise MeetingNotFoundError(meeting_id)
        return {
            "status": meeting.processing_status.value,
            "meeting": meeting,
            "actions": self.gateway.list_actions(meeting_id),
        }

    # -------------------------
    # Action update surface
    # -------------------------

    def update_action(
        self, action_id: str, status: Optional[str] = None, implementation_notes: Optional[str] = None
    ) -> Action:
        """Apply a user-driven status change and/or notes. completed stamps completed_at; backwards moves are rejected.
        The status change is a compare-and-swap against the status that was read, so concurrent updates cannot both win."""
        action = self.gateway.get_action(action_id)
        if action is None:
            raise RecordNotFoundError(f"Action {action_id} not found")

        values: Dict[str, Any] = {}
        if implementation_notes:
            values["implementation_notes"] = implementation_notes
        if not status or status == action.status:
            return self.gateway.update_action(action_id, **values) if values else action

        if status not in ACTION_TRANSITIONS.get(action.status, set()):
            raise InvalidActionTransitionError(action_id, action.status, status)
        values["status"] = status
        if status == "completed":
            values["completed_at"] = utcnow()
        updated = self.gateway.transition_action(action_id, action.status, **values)
        if updated is None:
            current = self.gateway.get_action(action_id)
            raise InvalidActionTransitionError(action_id, current.status if current else "missing", status)
        return updated

    def list_user_actions(self, user_id: str, status: Optional[str] = None) -> List[Action]:
        """High priority first, then soonest due."""
        return sort_actions(self.gateway.list_user_actions(user_id, status))

    def user_stats(self, user_id: str) -> UserStatsResponse:
        return compute_user_stats(self.gateway, user_id)

    # -------------------------
    # Internals
    # -------------------------

    def _transcribe(self, meeting: Meeting) -> StageOutcome[TranscriptionResult]:
        try:
            result = self.transcriber.transcribe(meeting.audio_ref)
        except MediaNotFoundError:
            raise
        except TranscriptionError as e:
            if not self.settings.transcription_fallback_to_mock:
                raise
            logger.warning(
                "transcription_fell_back_to_mock",
                exc_info=True,
                extra={"meeting_id": meeting.id, "error": str(e)},
            )
            return Degraded(self.transcriber.transcribe_mock(meeting.audio_ref), f"backend_error: {type(e).__name__}")
        return Real(result) if result.mode == "real" else Degraded(result, "mock_mode")

    @staticmethod
    def _record(degraded: Dict[str, str], stage: str, outcome: StageOutcome):
        if isinstance(outcome, Degraded):
            degraded[stage] = outcome.reason
            logger.info("stage_degraded", extra={"stage": stage, "reason": outcome.reason})
        return outcome.value

    def _fail(self, meeting_id: str, stage: str, error: BaseException) -> None:
        logger.error("processing_failed", exc_info=error, extra={"meeting_id": meeting_id, "stage": stage})
        try:
            self.gateway.update_meeting(
                meeting_id,
                processing_status=ProcessingStatus.FAILED,
                failed_stage=stage,
                error=str(error),
                processed_at=utcnow(),
            )
        except Exception:
            logger.exception("failed_status_not_persisted", extra={"meeting_id": meeting_id})
        if stage != STAGE_PERSISTENCE:
            return
        # a failed meeting owns no actions
        try:
            removed = self.gateway.delete_actions(meeting_id)
        except Exception:
            logger.exception("partial_actions_not_removed", extra={"meeting_id": meeting_id})
        else:
            logger.info("partial_actions_removed", extra={"meeting_id": meeting_id, "removed": removed})
