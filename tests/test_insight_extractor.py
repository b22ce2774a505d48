import json

import pytest

from conftest import FakeLLM
from coachflow.extract.insights import InsightExtractor, interpret_insights
from coachflow.extract.mock_data import MOCK_INSIGHTS_CONFIDENCE
from coachflow.models.outcome import Degraded, Real
from coachflow.models.schemas import MeetingInsights

CONTEXT = {"meeting_type": "mentor_session", "participants": ["Sarah", "John"], "duration": 12}

CANONICAL = {
    "adviceGiven": [
        {
            "id": "a1",
            "title": "Say no to low-value meetings",
            "description": "Decline recurring meetings without an agenda",
            "category": "skills",
            "impact": "high",
            "complexity": "low",
            "quote": "You don't need to be in every meeting",
            "speaker": "Sarah",
            "timestamp": 95,
            "confidence": 0.9,
        }
    ],
    "behavioralPatterns": [{"pattern": "Over-committing", "description": "Accepts every invite", "frequency": 4, "confidence": 0.8}],
    "implementationBarriers": [{"type": "time", "description": "Calendar already full", "severity": "high", "suggestions": ["Audit invites"]}],
    "successMetrics": [{"name": "Meetings declined", "description": "", "measurement": "count", "timeline": "weekly"}],
    "emotionalContext": {"motivation": 0.7, "confidence": 0.5, "concerns": ["Seeming rude"], "excitement": 0.6},
    "priorityRanking": [{"actionId": "a1", "priority": 8, "reasoning": "Frees time", "successProbability": 0.75}],
    "confidence": 0.82,
}


def _all_probabilities(insights: MeetingInsights):
    yield insights.confidence
    for a in insights.advice_given:
        yield a.confidence
    for p in insights.behavioral_patterns:
        yield p.confidence
    for r in insights.priority_ranking:
        yield r.success_probability
    ec = insights.emotional_context
    yield from (ec.motivation, ec.confidence, ec.excitement)


def test_no_credential_returns_mock(mock_settings):
    llm = FakeLLM(CANONICAL)
    outcome = InsightExtractor(mock_settings, llm=llm).extract("transcript", CONTEXT)

    assert isinstance(outcome, Degraded)
    assert outcome.reason == "no_credential"
    assert outcome.value.confidence == MOCK_INSIGHTS_CONFIDENCE
    assert len(outcome.value.advice_given) == 3
    assert llm.calls == []


def test_canonical_response_is_real(llm_settings):
    llm = FakeLLM(CANONICAL)
    outcome = InsightExtractor(llm_settings, llm=llm).extract("Sarah: You don't need to be in every meeting", CONTEXT)

    assert isinstance(outcome, Real)
    insights = outcome.value
    assert [a.id for a in insights.advice_given] == ["a1"]
    assert insights.confidence == 0.82
    assert insights.priority_ranking[0].action_id == "a1"
    assert insights.implementation_barriers[0].type == "time"

    call = llm.calls[0]
    assert "You don't need to be in every meeting" in call["user"]
    assert "Sarah, John" in call["system"]
    assert call["schema"]["title"] == "MeetingInsights"


def test_not_json_falls_back_to_mock(llm_settings):
    outcome = InsightExtractor(llm_settings, llm=FakeLLM("not json")).extract("t", CONTEXT)

    assert isinstance(outcome, Degraded)
    assert outcome.reason == "unparsable_json"
    assert outcome.value.confidence == MOCK_INSIGHTS_CONFIDENCE


def test_llm_exception_falls_back_to_mock(llm_settings):
    outcome = InsightExtractor(llm_settings, llm=FakeLLM(RuntimeError("rate limited"))).extract("t", CONTEXT)

    assert isinstance(outcome, Degraded)
    assert outcome.reason == "llm_error"
    assert len(outcome.value.advice_given) == 3


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "null",
        "[]",
        '{"adviceGiven": []}',
        '{"adviceGiven": [{"title": ""}, "oops", 7]}',
        '{"unexpected": {"deeply": "nested"}}',
        '{"adviceGiven": [{"title": "x", "confidence": "very"}], "confidence": 7}',
        '{"adviceGiven": "should be a list"',
    ],
)
def test_malformed_responses_always_yield_valid_insights(llm_settings, raw):
    outcome = InsightExtractor(llm_settings, llm=FakeLLM(raw)).extract("t", CONTEXT)

    insights = MeetingInsights.model_validate(outcome.value.model_dump())
    assert insights.advice_given
    assert all(0.0 <= p <= 1.0 for p in _all_probabilities(insights))


def test_snake_case_and_wrapped_shapes():
    snake = {"advice_given": [{"id": "s1", "title": "Track energy"}], "confidence": 0.6}
    assert interpret_insights(_dump(snake)).value.advice_given[0].id == "s1"

    wrapped = {"insights": {"adviceGiven": [{"id": "w1", "title": "Delegate"}]}}
    outcome = interpret_insights(_dump(wrapped))
    assert isinstance(outcome, Real)
    assert outcome.value.advice_given[0].title == "Delegate"


def test_generic_recommendations_list():
    outcome = interpret_insights(_dump({"recommendations": ["Block focus time every Monday morning", {"title": "Coach, don't solve"}]}))

    advice = outcome.value.advice_given
    assert [a.id for a in advice] == ["extracted-1", "extracted-2"]
    assert advice[0].description == "Block focus time every Monday morning"
    assert advice[0].speaker == "AI Analysis"
    assert advice[1].title == "Coach, don't solve"


def test_out_of_range_values_are_clamped():
    raw = {
        "adviceGiven": [{"id": "c1", "title": "Clamp me", "confidence": 1.8, "impact": "CRITICAL", "category": "management"}],
        "priorityRanking": [{"actionId": "c1", "priority": 40, "successProbability": -2}],
        "emotionalContext": {"motivation": 3, "confidence": "n/a", "excitement": -1},
        "confidence": 1.5,
    }
    insights = interpret_insights(_dump(raw)).value

    assert insights.confidence == 1.0
    assert insights.advice_given[0].confidence == 1.0
    assert insights.advice_given[0].impact == "high"
    assert insights.advice_given[0].category == "leadership"
    assert insights.priority_ranking[0].priority == 10
    assert insights.priority_ranking[0].success_probability == 0.0
    assert insights.emotional_context.motivation == 1.0
    assert insights.emotional_context.confidence == 0.5
    assert insights.emotional_context.excitement == 0.0


def test_invalid_entries_dropped_and_empty_advice_filled_from_mock():
    outcome = interpret_insights(_dump({"adviceGiven": [{"title": ""}, {"description": "no title"}], "confidence": 0.4}))

    assert isinstance(outcome, Degraded)
    assert outcome.reason == "no_valid_advice"
    assert [a.id for a in outcome.value.advice_given] == ["advice-1", "advice-2", "advice-3"]
    assert outcome.value.confidence == 0.4


def test_text_salvage_from_content_fragments():
    raw = 'Sure! {"content": "Protect two mornings a week for deep work", "content": "Ask before answering", broken'
    outcome = interpret_insights(raw)

    assert isinstance(outcome, Degraded)
    assert outcome.reason == "salvaged_from_text"
    assert [a.description for a in outcome.value.advice_given] == [
        "Protect two mornings a week for deep work",
        "Ask before answering",
    ]
    assert outcome.value.confidence == 0.7


def _dump(data) -> str:
    return json.dumps(data)
