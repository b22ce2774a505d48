#!/usr/bin/env python3
"""Print upload, transcription and API limits (from config and main app). Run from repo root: python scripts/print_limits.py"""
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT))

from coachflow.core.config import settings
from coachflow.main import RATE_LIMIT_REQUESTS, RATE_LIMIT_WINDOW_SECONDS


def main():
    """Print which backends run live vs mock, the transcription poll bound, upload size and rate limit."""
    poll_minutes = settings.transcription_poll_attempts * settings.transcription_poll_interval_seconds / 60
    print("Pipeline & API limits")
    print("---------------------")
    print(f"  Transcription         = {'real (AssemblyAI)' if settings.real_transcription_enabled else 'mock'}")
    print(f"  Insights / planning   = {'real (' + settings.chat_model + ')' if settings.llm_enabled else 'mock'}")
    print(f"  Poll bound            = {settings.transcription_poll_attempts} polls x {settings.transcription_poll_interval_seconds} s (~{poll_minutes:.1f} min)")
    print(f"  Fallback to mock      = {settings.transcription_fallback_to_mock} (when the transcription backend fails)")
    print(f"  MAX_UPLOAD_MB         = {settings.max_upload_mb} MB (max size per uploaded recording)")
    print(f"  Prompt version        = {settings.prompt_version}")
    print(f"  Rate limit            = {RATE_LIMIT_REQUESTS} requests / {RATE_LIMIT_WINDOW_SECONDS} s (per client IP)")
    print("")
    print("Env: OPENAI_API_KEY, ASSEMBLYAI_API_KEY, USE_REAL_TRANSCRIPTION, MAX_UPLOAD_MB (see .env.example)")


if __name__ == "__main__":
    main()
