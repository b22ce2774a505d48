"""Deterministic mentoring-session transcript used when no speech-to-text backend is available."""
from typing import List, Tuple

from coachflow.models.schemas import SpeakerSegment, TranscriptionResult

MENTOR = "Sarah (Mentor)"
MENTEE = "John (Mentee)"

# (speaker, text, start seconds, end seconds)
_SCRIPT: List[Tuple[str, str, int, int]] = [
    (MENTOR, "So how has your time management been going since we last spoke?", 0, 4),
    (MENTEE, "Still struggling, honestly. I say yes to too many meetings and never get focused time for the strategic work we talked about.", 5, 12),
    (MENTOR, "You set up calendar blocks last time. Did they hold?", 13, 16),
    (MENTEE, "A few, but people book right over them. I'm not firm enough about protecting that time.", 17, 23),
    (MENTOR, "You need to start treating your focus blocks like you would treat a client meeting. Would you cancel a client for a random request?", 120, 128),
    (MENTEE, "No, definitely not.", 129, 130),
    (MENTOR, "Then every Monday morning, block three two-hour focus sessions for the week and answer conflicts with the slots you do have open.", 131, 140),
    (MENTEE, "I worry about seeming unresponsive or difficult to work with.", 141, 145),
    (MENTOR, "If you are always reactive, you are not thinking ahead for your team. That is what they need from you.", 146, 153),
    (MENTOR, "Next, delegate more. Try saying 'What approaches have you already considered?' or 'What would you do if I wasn't available?'", 380, 389),
    (MENTEE, "I tend to jump in and solve things because it feels faster in the moment.", 390, 395),
    (MENTOR, "Which teaches them to depend on you. Coach them through the thinking instead of handing over answers.", 396, 402),
    (MENTOR, "One more thing. Track your energy levels throughout the day for the next two weeks and put your most important work in the peaks.", 520, 529),
    (MENTEE, "I suspect mornings are my creative time, and I've been spending them on email.", 530, 535),
    (MENTOR, "Email is reactive work. Save your peak energy for strategic thinking.", 536, 540),
]

MOCK_CONFIDENCE = 0.95


def mock_segments() -> List[SpeakerSegment]:
    return [
        SpeakerSegment(speaker=speaker, text=text, start=start, end=end, confidence=0.96 if speaker == MENTEE else 0.98)
        for speaker, text, start, end in _SCRIPT
    ]


def mock_transcript_text() -> str:
    return "\n\n".join(f"{speaker}: {text}" for speaker, text, _, _ in _SCRIPT)


def generate_mock_transcription(duration_minutes: int) -> TranscriptionResult:
    """Build the mock transcription. The same input always yields the same result."""
    return TranscriptionResult(
        transcript=mock_transcript_text(),
        speakers=mock_segments(),
        duration=max(0, int(duration_minutes)),
        confidence=MOCK_CONFIDENCE,
        language="en",
        mode="mock",
    )
