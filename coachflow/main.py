import logging
import os
import uuid
from dataclasses import asdict
from typing import List, Optional

from fastapi import (
    BackgroundTasks,
    Depends,
    FastAPI,
    File,
    Form,
    HTTPException,
    Request,
    UploadFile,
)

from coachflow.core.config import settings
from coachflow.core.errors import ProcessingError
from coachflow.guardrails.errors import as_http_error
from coachflow.guardrails.rate_limit import SimpleRateLimiter
from coachflow.models.entities import Action, Meeting
from coachflow.models.schemas import (
    ActionResponse,
    ActionUpdateRequest,
    LimitsResponse,
    MeetingResponse,
    MeetingStatusResponse,
    UserStatsResponse,
)
from coachflow.observability.middleware import RequestTimingMiddleware, get_request_id
from coachflow.pipeline.gateway import InMemoryGateway
from coachflow.pipeline.orchestrator import PipelineOrchestrator

logger = logging.getLogger(__name__)


# -------------------------
# App setup
# -------------------------

app = FastAPI(title="Coachflow Meeting Pipeline")
app.add_middleware(RequestTimingMiddleware)

RATE_LIMIT_REQUESTS = 20
RATE_LIMIT_WINDOW_SECONDS = 60
rate_limiter = SimpleRateLimiter(max_requests=RATE_LIMIT_REQUESTS, window_seconds=RATE_LIMIT_WINDOW_SECONDS)

DEFAULT_USER_ID = "demo-user"
ALLOWED_EXTENSIONS = {".mp3", ".wav", ".m4a", ".mp4", ".webm", ".ogg", ".flac", ".mov"}

_gateway = InMemoryGateway(settings.data_root)
_orchestrator = PipelineOrchestrator.from_settings(settings, _gateway)


def get_orchestrator() -> PipelineOrchestrator:
    """Dependency: the process-wide orchestrator. Tests override it with one wired to fakes."""
    return _orchestrator


def rate_limited(request: Request) -> None:
    rate_limiter.check(request)


def meeting_response(meeting: Meeting) -> MeetingResponse:
    data = asdict(meeting)
    data["processing_status"] = meeting.processing_status.value
    return MeetingResponse(**data)


def action_response(action: Action) -> ActionResponse:
    return ActionResponse(**asdict(action))


# -------------------------
# Root
# -------------------------

@app.get("/")
def root():
    return {"app": "Coachflow Meeting Pipeline", "docs": "/docs"}


@app.get("/health")
def health():
    """Liveness probe for load balancers."""
    return {"status": "ok"}


@app.get("/limits", response_model=LimitsResponse, dependencies=[Depends(rate_limited)])
def limits(orch: PipelineOrchestrator = Depends(get_orchestrator)):
    """Upload limit, which backends are live vs mock, and the rate limit window."""
    cfg = orch.settings
    return LimitsResponse(
        max_upload_mb=cfg.max_upload_mb,
        transcription_mode=orch.transcriber.mode,
        llm_mode="real" if cfg.llm_enabled else "mock",
        transcription_poll_attempts=cfg.transcription_poll_attempts,
        transcription_poll_interval_seconds=cfg.transcription_poll_interval_seconds,
        rate_limit_requests=RATE_LIMIT_REQUESTS,
        rate_limit_window_seconds=RATE_LIMIT_WINDOW_SECONDS,
    )


# -------------------------
# Meetings
# -------------------------

@app.post("/meetings", response_model=MeetingResponse, status_code=201, dependencies=[Depends(rate_limited)])
async def upload_meeting(
    file: UploadFile = File(...),
    title: str = Form("Mentor Conversation"),
    user_id: str = Form(DEFAULT_USER_ID),
    meeting_type: str = Form("mentor_session"),
    participants: Optional[str] = Form(None, description="Comma-separated names"),
    orch: PipelineOrchestrator = Depends(get_orchestrator),
):
    """Store an uploaded recording and create its meeting in 'uploaded' state. Processing is a separate call."""
    filename = os.path.basename(file.filename or "recording")
    ext = os.path.splitext(filename)[1].lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise HTTPException(status_code=400, detail=f"Unsupported file type: {ext or 'none'}")

    content = await file.read()
    if not content:
        raise HTTPException(status_code=400, detail="Empty file")
    if len(content) > orch.settings.max_upload_mb * 1024 * 1024:
        raise HTTPException(status_code=400, detail=f"{filename} exceeds {orch.settings.max_upload_mb} MB limit")

    upload_dir = os.path.join(orch.settings.upload_dir, str(uuid.uuid4()))
    os.makedirs(upload_dir, exist_ok=True)
    path = os.path.join(upload_dir, filename)
    with open(path, "wb") as out:
        out.write(content)

    names = [p.strip() for p in (participants or "").split(",") if p.strip()]
    fields = {"user_id": user_id, "title": title, "audio_ref": path, "meeting_type": meeting_type}
    if names:
        fields["participants"] = names
    try:
        meeting = orch.gateway.create_meeting(**fields)
    except Exception as e:
        raise as_http_error(e)
    return meeting_response(meeting)


@app.post("/meetings/{meeting_id}/process", status_code=202, response_model=MeetingStatusResponse, dependencies=[Depends(rate_limited)])
def process_meeting(
    meeting_id: str,
    request: Request,
    background_tasks: BackgroundTasks,
    wait: bool = False,
    orch: PipelineOrchestrator = Depends(get_orchestrator),
):
    """Claim the meeting (409 if it is not 'uploaded') and run the pipeline. By default the run happens in the background and
    clients poll GET /meetings/{id}; wait=true runs it inline and returns the finished meeting."""
    try:
        meeting = orch.claim(meeting_id)
    except Exception as e:
        raise as_http_error(e)

    rid = get_request_id(request)

    def _runner():
        try:
            orch.run_claimed(meeting)
        except ProcessingError as e:
            # Already recorded on the meeting as failed.
            logger.warning("background_processing_failed", extra={"request_id": rid, "meeting_id": meeting_id, "stage": e.stage})

    if not wait:
        background_tasks.add_task(_runner)
        return MeetingStatusResponse(status=meeting.processing_status.value, meeting=meeting_response(meeting))

    try:
        result = orch.run_claimed(meeting)
    except Exception as e:
        raise as_http_error(e)
    return MeetingStatusResponse(
        status=result.meeting.processing_status.value,
        meeting=meeting_response(result.meeting),
        actions=[action_response(a) for a in result.actions],
    )


@app.get("/meetings/{meeting_id}", response_model=MeetingStatusResponse)
def meeting_status(meeting_id: str, orch: PipelineOrchestrator = Depends(get_orchestrator)):
    """Current status plus meeting and actions; poll this after POST /meetings/{id}/process."""
    try:
        status = orch.get_status(meeting_id)
    except Exception as e:
        raise as_http_error(e)
    return MeetingStatusResponse(
        status=status["status"],
        meeting=meeting_response(status["meeting"]),
        actions=[action_response(a) for a in status["actions"]],
    )


@app.get("/meetings", response_model=List[MeetingResponse])
def list_meetings(user_id: str = DEFAULT_USER_ID, orch: PipelineOrchestrator = Depends(get_orchestrator)):
    return [meeting_response(m) for m in orch.gateway.list_user_meetings(user_id)]


# -------------------------
# Actions
# -------------------------

@app.get("/actions", response_model=List[ActionResponse])
def list_actions(
    user_id: str = DEFAULT_USER_ID,
    status: Optional[str] = None,
    orch: PipelineOrchestrator = Depends(get_orchestrator),
):
    """A user's actions, high priority and soonest due first; optionally filtered by status."""
    return [action_response(a) for a in orch.list_user_actions(user_id, status)]


@app.patch("/actions/{action_id}", response_model=ActionResponse, dependencies=[Depends(rate_limited)])
def update_action(action_id: str, req: ActionUpdateRequest, orch: PipelineOrchestrator = Depends(get_orchestrator)):
    try:
        action = orch.update_action(action_id, status=req.status, implementation_notes=req.implementation_notes)
    except Exception as e:
        raise as_http_error(e)
    return action_response(action)


@app.get("/stats", response_model=UserStatsResponse)
def user_stats(user_id: str = DEFAULT_USER_ID, orch: PipelineOrchestrator = Depends(get_orchestrator)):
    return orch.user_stats(user_id)
