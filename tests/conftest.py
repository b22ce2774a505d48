import json
import sys
from pathlib import Path

import pytest

# Ensure repo root is on sys.path so `import coachflow...` works in tests
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from coachflow.core.config import Settings
from coachflow.extract.insights import InsightExtractor
from coachflow.pipeline.gateway import InMemoryGateway
from coachflow.pipeline.orchestrator import PipelineOrchestrator
from coachflow.planning.action_plan import ActionPlanGenerator
from coachflow.transcription.service import TranscriptionAdapter

PROBED_MINUTES = 12


class FakeLLM:
    """Stands in for OpenAILLMService. Replies are returned in order (the last one repeats); an Exception reply is raised."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls = []

    def complete(self, system_prompt, user_prompt, output_schema=None, max_tokens=2000, temperature=0.3):
        self.calls.append({"system": system_prompt, "user": user_prompt, "schema": output_schema})
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, (dict, list)):
            return json.dumps(reply)
        return reply


class FakeBackend:
    """Scripted transcription backend: poll() walks through statuses, then keeps returning the last one."""

    def __init__(self, statuses, fail_submit=None):
        self.statuses = list(statuses)
        self.fail_submit = fail_submit
        self.polls = 0
        self.submitted = None

    def submit(self, audio_bytes):
        if self.fail_submit is not None:
            raise self.fail_submit
        self.submitted = audio_bytes
        return "https://upload.example/abc"

    def start_job(self, upload_ref, options=None):
        return "job-1"

    def poll(self, job_id):
        self.polls += 1
        return self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]


def make_settings(tmp_path, **overrides) -> Settings:
    values = dict(
        openai_api_key="",
        assemblyai_api_key="",
        use_real_transcription=False,
        transcription_fallback_to_mock=True,
        transcription_poll_attempts=3,
        transcription_poll_interval_seconds=0,
        upload_dir=str(tmp_path / "uploads"),
        data_root=None,
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def mock_settings(tmp_path):
    """No credentials anywhere: every stage runs on mock data."""
    return make_settings(tmp_path)


@pytest.fixture
def llm_settings(tmp_path):
    """LLM credential set (the model itself is always a FakeLLM in tests); transcription stays mock."""
    return make_settings(tmp_path, openai_api_key="sk-test")


@pytest.fixture
def audio_file(tmp_path):
    path = tmp_path / "session.mp3"
    path.write_bytes(b"ID3 fake audio bytes")
    return str(path)


@pytest.fixture
def gateway():
    return InMemoryGateway()


@pytest.fixture
def build_orchestrator(gateway):
    """Factory: orchestrator wired to the given settings plus optional FakeLLM, FakeBackend and gateway. ffprobe is never called."""

    def _build(settings, llm=None, backend=None, store=None):
        return PipelineOrchestrator(
            gateway=store if store is not None else gateway,
            transcriber=TranscriptionAdapter(settings, backend=backend, probe=lambda path: PROBED_MINUTES, sleep=lambda s: None),
            extractor=InsightExtractor(settings, llm=llm),
            planner=ActionPlanGenerator(settings, llm=llm),
            settings=settings,
        )

    return _build
