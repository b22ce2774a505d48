"""AssemblyAI REST client: upload audio, start a diarized transcription job, poll it."""
import logging
from typing import Any, Dict, Optional

import requests

from coachflow.core.errors import TranscriptionServiceError
from coachflow.utils.retry import with_retry

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (requests.ConnectionError, requests.Timeout)


class AssemblyAIBackend:
    """Speech-to-text backend. Non-2xx responses raise TranscriptionServiceError; connection drops are retried first."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.assemblyai.com/v2",
        session: Optional[requests.Session] = None,
        timeout: float = 60.0,
        retries: int = 2,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        self.retries = retries

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        headers = {"authorization": self.api_key}
        headers.update(kwargs.pop("headers", {}))
        url = f"{self.base_url}{path}"
        try:
            resp = with_retry(
                lambda: self.session.request(method, url, headers=headers, timeout=self.timeout, **kwargs),
                retries=self.retries,
                retry_on=TRANSIENT_ERRORS,
            )
        except TRANSIENT_ERRORS as e:
            raise TranscriptionServiceError(f"{method} {path} failed: {e}") from e

        if not resp.ok:
            raise TranscriptionServiceError(
                f"{method} {path} returned {resp.status_code}: {resp.reason}",
                status_code=resp.status_code,
            )
        try:
            return resp.json()
        except ValueError as e:
            raise TranscriptionServiceError(f"{method} {path} returned a non-JSON body") from e

    def submit(self, audio_bytes: bytes) -> str:
        """Upload raw audio; returns the upload URL the job should read from."""
        data = self._request(
            "POST",
            "/upload",
            data=audio_bytes,
            headers={"content-type": "application/octet-stream"},
        )
        upload_url = data.get("upload_url") or data.get("url")
        if not upload_url:
            raise TranscriptionServiceError("Upload response did not include an upload_url")
        return upload_url

    def start_job(self, upload_ref: str, options: Optional[Dict[str, Any]] = None) -> str:
        payload = {
            "audio_url": upload_ref,
            "speaker_labels": True,
            "language_code": "en",
            "punctuate": True,
            "format_text": True,
        }
        payload.update(options or {})
        data = self._request("POST", "/transcript", json=payload)
        job_id = data.get("id")
        if not job_id:
            raise TranscriptionServiceError("Transcript response did not include an id")
        return job_id

    def poll(self, job_id: str) -> Dict[str, Any]:
        """Single status read. Polling cadence and bounds belong to the adapter."""
        return self._request("GET", f"/transcript/{job_id}")
