"""
Transcription adapter: audio file -> TranscriptionResult.

The backend is picked once from settings (real AssemblyAI when a key is set and
real transcription is enabled, otherwise the deterministic mock). Real-backend
failures are raised; whether to substitute the mock is the orchestrator's call.
"""
import logging
import os
import subprocess
import time
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError

from coachflow.core.config import Settings
from coachflow.core.errors import (
    MediaNotFoundError,
    TranscriptionServiceError,
    TranscriptionTimeoutError,
)
from coachflow.extract.coerce import as_float, as_text, clamp01
from coachflow.models.schemas import SpeakerSegment, TranscriptionResult
from coachflow.transcription.backend import AssemblyAIBackend
from coachflow.transcription.mock import generate_mock_transcription

logger = logging.getLogger(__name__)

DEFAULT_DURATION_MINUTES = 5


def probe_duration_minutes(path: str) -> int:
    """Return the recording length in whole minutes via ffprobe; DEFAULT_DURATION_MINUTES when ffprobe is missing or cannot read the file."""
    cmd = [
        "ffprobe", "-v", "error",
        "-show_entries", "format=duration",
        "-of", "default=noprint_wrappers=1:nokey=1",
        str(path),
    ]
    try:
        r = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True, timeout=30)
    except (OSError, subprocess.TimeoutExpired):
        logger.warning("ffprobe_unavailable", extra={"path": path})
        return DEFAULT_DURATION_MINUTES
    if r.returncode != 0:
        logger.warning("ffprobe_failed", extra={"path": path, "stderr": r.stderr[:200]})
        return DEFAULT_DURATION_MINUTES
    try:
        seconds = float(r.stdout.strip())
    except ValueError:
        return DEFAULT_DURATION_MINUTES
    return max(0, round(seconds / 60))


def parse_backend_result(data: Dict[str, Any]) -> TranscriptionResult:
    """Map a completed AssemblyAI transcript payload (utterance times in ms, audio_duration in seconds) onto TranscriptionResult.
    Raises TranscriptionServiceError when the payload cannot be mapped."""
    try:
        speakers = [
            SpeakerSegment(
                speaker=f"Speaker {u.get('speaker', '?')}",
                text=as_text(u.get("text")),
                start=max(0, round(as_float(u.get("start"), 0) / 1000)),
                end=max(0, round(as_float(u.get("end"), 0) / 1000)),
                confidence=clamp01(u.get("confidence"), 0.9),
            )
            for u in data.get("utterances") or []
        ]
        return TranscriptionResult(
            transcript=as_text(data.get("text")),
            speakers=speakers,
            duration=max(0, round(as_float(data.get("audio_duration"), 0) / 60)),
            confidence=clamp01(data.get("confidence"), 0.9),
            language=as_text(data.get("language_code"), "en"),
            mode="real",
        )
    except (AttributeError, TypeError, ValidationError) as e:
        raise TranscriptionServiceError(f"Unreadable transcript payload: {e}") from e


class TranscriptionAdapter:
    def __init__(
        self,
        settings: Settings,
        backend: Optional[AssemblyAIBackend] = None,
        probe: Callable[[str], int] = probe_duration_minutes,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings
        self.probe = probe
        self.sleep = sleep
        if backend is None and settings.real_transcription_enabled:
            backend = AssemblyAIBackend(settings.assemblyai_api_key, settings.assemblyai_base_url)
        self.backend = backend

    @property
    def mode(self) -> str:
        return "real" if self.backend is not None else "mock"

    def transcribe(self, audio_path: str) -> TranscriptionResult:
        """Transcribe audio_path with the configured backend. Raises MediaNotFoundError, TranscriptionTimeoutError or TranscriptionServiceError."""
        if not os.path.isfile(audio_path):
            raise MediaNotFoundError(audio_path)

        logger.info("transcription_started", extra={"path": audio_path, "mode": self.mode})
        if self.backend is None:
            return self.transcribe_mock(audio_path)
        return self._transcribe_real(audio_path)

    def transcribe_mock(self, audio_path: str) -> TranscriptionResult:
        """Mock path: probe the real duration, return the canned transcript. Never raises once the file exists."""
        if not os.path.isfile(audio_path):
            raise MediaNotFoundError(audio_path)
        duration = self.probe(audio_path)
        return generate_mock_transcription(duration)

    def _transcribe_real(self, audio_path: str) -> TranscriptionResult:
        with open(audio_path, "rb") as f:
            audio = f.read()

        upload_ref = self.backend.submit(audio)
        job_id = self.backend.start_job(upload_ref)
        logger.info("transcription_job_started", extra={"job_id": job_id})
        data = self._poll_until_done(job_id)
        return parse_backend_result(data)

    def _poll_until_done(self, job_id: str) -> Dict[str, Any]:
        attempts = self.settings.transcription_poll_attempts
        for attempt in range(1, attempts + 1):
            data = self.backend.poll(job_id)
            status = data.get("status")
            if status == "completed":
                logger.info("transcription_completed", extra={"job_id": job_id, "polls": attempt})
                return data
            if status == "error":
                raise TranscriptionServiceError(f"Transcription {job_id} failed: {data.get('error', 'unknown error')}")
            if attempt < attempts:
                self.sleep(self.settings.transcription_poll_interval_seconds)
        raise TranscriptionTimeoutError(job_id, attempts)
