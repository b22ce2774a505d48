import threading

import pytest

from conftest import PROBED_MINUTES, FakeBackend, FakeLLM, make_settings
from coachflow.core.errors import (
    GatewayError,
    InvalidActionTransitionError,
    MeetingNotFoundError,
    ProcessingConflictError,
    ProcessingError,
    RecordNotFoundError,
)
from coachflow.extract.mock_data import MOCK_INSIGHTS_CONFIDENCE
from coachflow.models.entities import ProcessingStatus
from coachflow.pipeline.gateway import InMemoryGateway
from coachflow.pipeline.orchestrator import (
    STAGE_INSIGHTS,
    STAGE_PERSISTENCE,
    STAGE_PLANNING,
    STAGE_TRANSCRIPTION,
)


class FailingActionGateway(InMemoryGateway):
    def __init__(self, fail_after: int):
        super().__init__()
        self.fail_after = fail_after
        self.created = 0

    def create_action(self, **values):
        if self.created >= self.fail_after:
            raise GatewayError("database unavailable")
        self.created += 1
        return super().create_action(**values)


class RacingReadGateway(InMemoryGateway):
    """Holds the first read of each racer until all of them have read, so they all see the same starting status."""

    def __init__(self, racers: int):
        super().__init__()
        self.racers = racers
        self.held = 0
        self.barrier = None
        self.counter_lock = threading.Lock()

    def get_action(self, action_id):
        action = super().get_action(action_id)
        with self.counter_lock:
            hold = self.barrier is not None and self.held < self.racers
            if hold:
                self.held += 1
        if hold:
            self.barrier.wait(timeout=5)
        return action


def _upload(gw, audio_ref, user_id="u1"):
    return gw.create_meeting(user_id=user_id, title="Mentoring session", audio_ref=audio_ref)


def test_no_credentials_runs_fully_on_mock_data(mock_settings, build_orchestrator, gateway, audio_file):
    orch = build_orchestrator(mock_settings)
    meeting = _upload(gateway, audio_file)

    result = orch.start_processing(meeting.id)

    assert result.meeting.processing_status == ProcessingStatus.COMPLETED
    assert result.insights.confidence == MOCK_INSIGHTS_CONFIDENCE
    assert len(result.insights.advice_given) == 3
    assert result.transcription.mode == "mock"
    assert result.degraded == {
        STAGE_TRANSCRIPTION: "mock_mode",
        STAGE_INSIGHTS: "no_credential",
        STAGE_PLANNING: "no_credential",
    }

    stored = gateway.get_meeting(meeting.id)
    assert stored.duration == PROBED_MINUTES
    assert stored.transcript == result.transcription.transcript
    assert stored.confidence == MOCK_INSIGHTS_CONFIDENCE
    assert stored.processed_at is not None
    assert stored.degraded_stages == sorted(result.degraded)
    assert len(stored.insights["advice_given"]) == 3
    assert stored.action_plan["immediate_actions"]

    actions = gateway.list_actions(meeting.id)
    assert len(actions) == len(result.action_plan.immediate_actions) == 3
    assert all(a.user_id == "u1" and a.status == "pending" for a in actions)


def test_unparsable_llm_reply_still_completes(llm_settings, build_orchestrator, gateway, audio_file):
    llm = FakeLLM("not json")
    orch = build_orchestrator(llm_settings, llm=llm)
    meeting = _upload(gateway, audio_file)

    result = orch.start_processing(meeting.id)

    assert len(llm.calls) == 2
    assert result.meeting.processing_status == ProcessingStatus.COMPLETED
    assert result.meeting.confidence == MOCK_INSIGHTS_CONFIDENCE
    assert result.degraded[STAGE_INSIGHTS] == "unparsable_json"
    assert result.degraded[STAGE_PLANNING] == "unparsable_json"
    assert result.actions


def test_real_replies_are_not_marked_degraded(llm_settings, build_orchestrator, gateway, audio_file):
    insights = {"adviceGiven": [{"id": "a1", "title": "Say no to low-value meetings", "category": "skills"}], "confidence": 0.77}
    plan = {"immediateActions": [{"title": "Decline two recurring meetings", "priority": "high", "estimatedTime": 15}]}
    orch = build_orchestrator(llm_settings, llm=FakeLLM(insights, plan))
    meeting = _upload(gateway, audio_file)

    result = orch.start_processing(meeting.id)

    assert set(result.degraded) == {STAGE_TRANSCRIPTION}
    assert result.meeting.confidence == 0.77
    assert [a.title for a in result.actions] == ["Decline two recurring meetings"]
    assert result.actions[0].estimated_time == 15


def test_second_call_is_rejected(mock_settings, build_orchestrator, gateway, audio_file):
    orch = build_orchestrator(mock_settings)
    meeting = _upload(gateway, audio_file)
    orch.start_processing(meeting.id)

    with pytest.raises(ProcessingConflictError) as exc:
        orch.start_processing(meeting.id)

    assert exc.value.status == "completed"
    assert len(gateway.list_actions(meeting.id)) == 3


def test_processing_meeting_cannot_be_started_again(mock_settings, build_orchestrator, gateway, audio_file):
    orch = build_orchestrator(mock_settings)
    meeting = _upload(gateway, audio_file)
    orch.claim(meeting.id)

    with pytest.raises(ProcessingConflictError):
        orch.start_processing(meeting.id)
    assert gateway.get_meeting(meeting.id).processing_status == ProcessingStatus.PROCESSING
    assert gateway.list_actions(meeting.id) == []


def test_concurrent_starts_run_once(mock_settings, build_orchestrator, gateway, audio_file):
    orch = build_orchestrator(mock_settings)
    meeting = _upload(gateway, audio_file)
    barrier = threading.Barrier(4)
    outcomes = []
    lock = threading.Lock()

    def worker():
        barrier.wait()
        try:
            orch.start_processing(meeting.id)
            result = "ran"
        except ProcessingConflictError:
            result = "rejected"
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)

    assert sorted(outcomes) == ["ran", "rejected", "rejected", "rejected"]
    assert len(gateway.list_actions(meeting.id)) == 3


def test_action_persistence_failure_marks_meeting_failed(mock_settings, build_orchestrator, audio_file):
    store = FailingActionGateway(fail_after=1)
    orch = build_orchestrator(mock_settings, store=store)
    meeting = _upload(store, audio_file)

    with pytest.raises(ProcessingError) as exc:
        orch.start_processing(meeting.id)

    assert exc.value.stage == STAGE_PERSISTENCE
    assert "action-persistence" in str(exc.value)
    assert isinstance(exc.value.cause, GatewayError)

    failed = store.get_meeting(meeting.id)
    assert failed.processing_status == ProcessingStatus.FAILED
    assert failed.failed_stage == STAGE_PERSISTENCE
    assert "database unavailable" in failed.error
    # earlier stage outputs were persisted before the failure
    assert failed.transcript and failed.insights and failed.action_plan
    assert store.list_actions(meeting.id) == []


def test_failed_meeting_is_terminal(mock_settings, build_orchestrator, audio_file):
    store = FailingActionGateway(fail_after=0)
    orch = build_orchestrator(mock_settings, store=store)
    meeting = _upload(store, audio_file)
    with pytest.raises(ProcessingError):
        orch.start_processing(meeting.id)

    with pytest.raises(ProcessingConflictError):
        orch.start_processing(meeting.id)
    with pytest.raises(GatewayError):
        store.update_meeting(meeting.id, processing_status=ProcessingStatus.PROCESSING)
    assert store.get_meeting(meeting.id).processing_status == ProcessingStatus.FAILED


def test_missing_audio_fails_at_transcription(mock_settings, build_orchestrator, gateway, tmp_path):
    orch = build_orchestrator(mock_settings)
    meeting = _upload(gateway, str(tmp_path / "gone.mp3"))

    with pytest.raises(ProcessingError) as exc:
        orch.start_processing(meeting.id)

    assert exc.value.stage == STAGE_TRANSCRIPTION
    stored = gateway.get_meeting(meeting.id)
    assert stored.processing_status == ProcessingStatus.FAILED
    assert stored.transcript is None


def test_backend_failure_falls_back_to_mock_transcript(mock_settings, build_orchestrator, gateway, audio_file):
    backend = FakeBackend([{"status": "error", "error": "bad audio"}])
    orch = build_orchestrator(mock_settings, backend=backend)
    meeting = _upload(gateway, audio_file)

    result = orch.start_processing(meeting.id)

    assert result.transcription.mode == "mock"
    assert result.degraded[STAGE_TRANSCRIPTION] == "backend_error: TranscriptionServiceError"
    assert result.meeting.processing_status == ProcessingStatus.COMPLETED


def test_malformed_backend_payload_falls_back_to_mock(mock_settings, build_orchestrator, gateway, audio_file):
    done = {"status": "completed", "text": "Mentor: hello", "audio_duration": 600, "utterances": ["garbled"]}
    orch = build_orchestrator(mock_settings, backend=FakeBackend([done]))
    meeting = _upload(gateway, audio_file)

    result = orch.start_processing(meeting.id)

    assert result.transcription.mode == "mock"
    assert result.degraded[STAGE_TRANSCRIPTION] == "backend_error: TranscriptionServiceError"
    assert result.meeting.processing_status == ProcessingStatus.COMPLETED


def test_backend_failure_without_fallback_fails(tmp_path, build_orchestrator, gateway, audio_file):
    settings = make_settings(tmp_path, transcription_fallback_to_mock=False)
    orch = build_orchestrator(settings, backend=FakeBackend([{"status": "processing"}]))
    meeting = _upload(gateway, audio_file)

    with pytest.raises(ProcessingError) as exc:
        orch.start_processing(meeting.id)

    assert exc.value.stage == STAGE_TRANSCRIPTION
    assert gateway.get_meeting(meeting.id).failed_stage == STAGE_TRANSCRIPTION


def test_real_transcription_is_not_degraded(mock_settings, build_orchestrator, gateway, audio_file):
    done = {"status": "completed", "text": "Mentor: hello", "audio_duration": 600, "utterances": []}
    orch = build_orchestrator(mock_settings, backend=FakeBackend([done]))
    meeting = _upload(gateway, audio_file)

    result = orch.start_processing(meeting.id)

    assert STAGE_TRANSCRIPTION not in result.degraded
    assert gateway.get_meeting(meeting.id).duration == 10


def test_unknown_meeting(mock_settings, build_orchestrator):
    orch = build_orchestrator(mock_settings)
    with pytest.raises(MeetingNotFoundError):
        orch.start_processing("missing")
    with pytest.raises(MeetingNotFoundError):
        orch.get_status("missing")


def test_get_status(mock_settings, build_orchestrator, gateway, audio_file):
    orch = build_orchestrator(mock_settings)
    meeting = _upload(gateway, audio_file)
    assert orch.get_status(meeting.id)["status"] == "uploaded"

    orch.start_processing(meeting.id)
    status = orch.get_status(meeting.id)
    assert status["status"] == "completed"
    assert len(status["actions"]) == 3


def test_update_action_transitions(mock_settings, build_orchestrator, gateway, audio_file):
    orch = build_orchestrator(mock_settings)
    meeting = _upload(gateway, audio_file)
    first, second = orch.start_processing(meeting.id).actions[:2]

    started = orch.update_action(first.id, status="in_progress", implementation_notes="Blocked Monday 9-11")
    assert started.status == "in_progress"
    assert started.implementation_notes == "Blocked Monday 9-11"
    assert started.completed_at is None

    done = orch.update_action(first.id, status="completed")
    assert done.completed_at is not None

    with pytest.raises(InvalidActionTransitionError):
        orch.update_action(first.id, status="pending")

    # pending can jump straight to completed
    assert orch.update_action(second.id, status="completed").status == "completed"

    with pytest.raises(RecordNotFoundError):
        orch.update_action("missing", status="completed")


def test_user_views(mock_settings, build_orchestrator, gateway, audio_file):
    orch = build_orchestrator(mock_settings)
    meeting = _upload(gateway, audio_file)
    orch.start_processing(meeting.id)

    actions = orch.list_user_actions("u1")
    assert [a.priority for a in actions] == ["high", "high", "medium"]
    assert orch.list_user_actions("u1", status="completed") == []

    stats = orch.user_stats("u1")
    assert stats.total_meetings == 1
    assert stats.total_actions == 3
    assert stats.implementation_rate == 0


@pytest.mark.parametrize("requested", [("completed", "completed"), ("completed", "in_progress")])
def test_concurrent_action_updates_apply_once(mock_settings, build_orchestrator, audio_file, requested):
    store = RacingReadGateway(racers=2)
    orch = build_orchestrator(mock_settings, store=store)
    meeting = _upload(store, audio_file)
    action = orch.start_processing(meeting.id).actions[0]
    store.barrier = threading.Barrier(store.racers)
    outcomes = []
    lock = threading.Lock()

    def worker(status):
        try:
            orch.update_action(action.id, status=status)
            result = status
        except InvalidActionTransitionError:
            result = "rejected"
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=worker, args=(status,)) for status in requested]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)
    store.barrier = None

    assert outcomes.count("rejected") == 1
    winner = next(o for o in outcomes if o != "rejected")
    assert store.get_action(action.id).status == winner
