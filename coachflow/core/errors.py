"""Error taxonomy for the pipeline.

Transcription errors stay inside the transcription stage; the orchestrator
wraps anything that escapes a stage into ProcessingError after marking the
meeting failed. Falling back to mock data is not an error (see models.outcome).
"""
from typing import Optional


class TranscriptionError(Exception):
    """Base class for transcription adapter failures."""


class MediaNotFoundError(TranscriptionError):
    def __init__(self, path: str):
        super().__init__(f"Audio file not found: {path}")
        self.path = path


class TranscriptionTimeoutError(TranscriptionError):
    def __init__(self, job_id: str, attempts: int):
        super().__init__(f"Transcription {job_id} did not complete after {attempts} polls")
        self.job_id = job_id
        self.attempts = attempts


class TranscriptionServiceError(TranscriptionError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class GatewayError(Exception):
    """Persistence gateway could not complete a read or write."""


class RecordNotFoundError(GatewayError):
    pass


class MeetingNotFoundError(Exception):
    def __init__(self, meeting_id: str):
        super().__init__(f"Meeting not found: {meeting_id}")
        self.meeting_id = meeting_id


class ProcessingConflictError(Exception):
    """Raised when processing is requested for a meeting that is not in 'uploaded'."""

    def __init__(self, meeting_id: str, status: str):
        super().__init__(f"Meeting {meeting_id} is {status}; only uploaded meetings can be processed")
        self.meeting_id = meeting_id
        self.status = status


class InvalidActionTransitionError(Exception):
    def __init__(self, action_id: str, current: str, requested: str):
        super().__init__(f"Action {action_id} cannot move from {current} to {requested}")
        self.action_id = action_id
        self.current = current
        self.requested = requested


class ProcessingError(Exception):
    """The only error that leaves the orchestrator. Carries the failing stage name and wraps the root cause."""

    def __init__(self, stage: str, meeting_id: str, cause: BaseException):
        super().__init__(f"Processing failed at stage '{stage}' for meeting {meeting_id}: {cause}")
        self.stage = stage
        self.meeting_id = meeting_id
        self.cause = cause
