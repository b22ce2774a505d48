"""
Insight response normalizer.

LLM output arrives in many plausible shapes. Each adapter below maps one family
of shapes onto raw canonical sections (snake_case keys) or returns None; they are
tried in order from most to least faithful. build_insights() then coerces every
entry, clamps probabilities, drops entries that still fail validation, and fills
absent sections from the mock set. Nothing outside this module guesses shapes.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from coachflow.extract.coerce import (
    as_choice,
    as_int,
    as_str_list,
    as_text,
    clamp01,
    content_fragments,
    first,
    short_title,
)
from coachflow.extract.mock_data import mock_insights_dict
from coachflow.models.schemas import (
    AdviceItem,
    BehavioralPattern,
    EmotionalContext,
    ImplementationBarrier,
    MeetingInsights,
    PriorityRank,
    SuccessMetric,
)

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

SECTION_KEYS = {
    "advice_given": ("adviceGiven", "advice_given"),
    "behavioral_patterns": ("behavioralPatterns", "behavioral_patterns"),
    "implementation_barriers": ("implementationBarriers", "implementation_barriers"),
    "success_metrics": ("successMetrics", "success_metrics"),
    "emotional_context": ("emotionalContext", "emotional_context"),
    "priority_ranking": ("priorityRanking", "priority_ranking"),
    "confidence": ("confidence", "overallConfidence", "overall_confidence"),
}

GENERIC_ADVICE_FIELDS = ("advice", "insights", "recommendations", "suggestions", "actions")
WRAPPER_FIELDS = ("insights", "analysis", "meetingInsights", "meeting_insights", "result", "data")

CATEGORIES = ("career", "skills", "leadership", "personal", "networking")
CATEGORY_ALIASES = {
    "skill": "skills",
    "skill_development": "skills",
    "productivity": "skills",
    "time_management": "skills",
    "communication": "skills",
    "management": "leadership",
    "delegation": "leadership",
    "professional_development": "career",
    "career_growth": "career",
    "wellbeing": "personal",
    "well_being": "personal",
    "relationships": "networking",
}
LEVELS = ("high", "medium", "low")
LEVEL_ALIASES = {"med": "medium", "moderate": "medium", "critical": "high", "urgent": "high", "minor": "low"}
BARRIER_TYPES = ("time", "resources", "skills", "motivation", "external")
BARRIER_ALIASES = {"resource": "resources", "skill": "skills", "money": "resources", "budget": "resources", "emotional": "motivation"}

DEFAULT_CONFIDENCE = 0.7
SALVAGE_CONFIDENCE = 0.7


@dataclass
class NormalizedInsights:
    insights: MeetingInsights
    adapter: str
    filled_from_mock: List[str] = field(default_factory=list)
    dropped: int = 0


# -------------------------
# Shape adapters: raw JSON -> canonical sections or None
# -------------------------

def _sections(data: Dict[str, Any]) -> Dict[str, Any]:
    return {name: first(data, *keys) for name, keys in SECTION_KEYS.items()}


def canonical_adapter(data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Top-level adviceGiven / advice_given list."""
    sections = _sections(data)
    return sections if isinstance(sections["advice_given"], list) else None


def wrapper_adapter(data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Canonical or generic shape nested one level down, e.g. {"insights": {...}}."""
    for key in WRAPPER_FIELDS:
        inner = data.get(key)
        if isinstance(inner, dict):
            out = canonical_adapter(inner) or generic_list_adapter(inner)
            if out is not None:
                return out
    return None


def generic_list_adapter(data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Advice under a generic list key such as {"recommendations": [...]}; other sections keep their canonical spellings."""
    for key in GENERIC_ADVICE_FIELDS:
        val = data.get(key)
        if isinstance(val, list) and val:
            sections = _sections(data)
            sections["advice_given"] = [_generic_advice(item, i) for i, item in enumerate(val)]
            return sections
    return None


ADAPTERS: List[Callable[[Dict[str, Any]], Optional[Dict[str, Any]]]] = [
    canonical_adapter,
    wrapper_adapter,
    generic_list_adapter,
]


def _generic_advice(item: Any, index: int) -> Dict[str, Any]:
    if isinstance(item, str):
        return {
            "id": f"extracted-{index + 1}",
            "title": short_title(item),
            "description": item,
            "quote": item,
            "speaker": "AI Analysis",
        }
    if not isinstance(item, dict):
        return {}
    out = dict(item)
    out.setdefault("id", f"extracted-{index + 1}")
    out["title"] = first(item, "title", "name", "advice", "recommendation") or f"Insight {index + 1}"
    out["description"] = first(item, "description", "content", "details") or ""
    out["quote"] = first(item, "quote", "supportingQuote", "supporting_quote", "content") or ""
    out["speaker"] = first(item, "speaker") or "AI Analysis"
    return out


# -------------------------
# Entry coercion
# -------------------------

def _advice(item: Dict[str, Any], index: int) -> Dict[str, Any]:
    return {
        "id": as_text(first(item, "id"), f"advice-{index + 1}"),
        "title": as_text(first(item, "title", "name", "advice")),
        "description": as_text(first(item, "description", "content", "details")),
        "category": as_choice(item.get("category"), CATEGORIES, "personal", CATEGORY_ALIASES),
        "impact": as_choice(item.get("impact"), LEVELS, "medium", LEVEL_ALIASES),
        "complexity": as_choice(first(item, "complexity", "difficulty"), LEVELS, "medium", LEVEL_ALIASES),
        "quote": as_text(first(item, "quote", "supportingQuote", "supporting_quote")),
        "speaker": as_text(item.get("speaker")),
        "timestamp": max(0, as_int(item.get("timestamp"), 0)),
        "confidence": clamp01(item.get("confidence"), DEFAULT_CONFIDENCE),
    }


def _pattern(item: Dict[str, Any], index: int) -> Dict[str, Any]:
    return {
        "pattern": as_text(first(item, "pattern", "name", "title")),
        "description": as_text(item.get("description")),
        "frequency": as_int(item.get("frequency"), 0, lo=0),
        "confidence": clamp01(item.get("confidence"), DEFAULT_CONFIDENCE),
    }


def _barrier(item: Dict[str, Any], index: int) -> Dict[str, Any]:
    return {
        "type": as_choice(first(item, "type", "category"), BARRIER_TYPES, "external", BARRIER_ALIASES),
        "description": as_text(first(item, "description", "barrier", "name")),
        "severity": as_choice(item.get("severity"), LEVELS, "medium", LEVEL_ALIASES),
        "suggestions": as_str_list(first(item, "suggestions", "mitigations")),
    }


def _metric(item: Dict[str, Any], index: int) -> Dict[str, Any]:
    return {
        "name": as_text(first(item, "name", "metric", "title")),
        "description": as_text(item.get("description")),
        "measurement": as_text(first(item, "measurement", "measure")),
        "timeline": as_text(first(item, "timeline", "frequency")),
    }


def _rank(item: Dict[str, Any], index: int) -> Dict[str, Any]:
    return {
        "action_id": as_text(first(item, "actionId", "action_id", "id"), f"advice-{index + 1}"),
        "priority": as_int(item.get("priority"), 5, lo=1, hi=10),
        "reasoning": as_text(item.get("reasoning")),
        "success_probability": clamp01(first(item, "successProbability", "success_probability"), DEFAULT_CONFIDENCE),
    }


def _emotional(item: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(item, dict):
        return None
    return {
        "motivation": clamp01(item.get("motivation"), 0.5),
        "confidence": clamp01(item.get("confidence"), 0.5),
        "concerns": as_str_list(item.get("concerns")),
        "excitement": clamp01(item.get("excitement"), 0.5),
    }


def _validated(model: Type[M], raw: Any, coerce: Callable[[Dict[str, Any], int], Dict[str, Any]]) -> tuple[List[M], int]:
    """Coerce and validate each entry; entries that are not objects or still fail validation are dropped and counted."""
    out: List[M] = []
    dropped = 0
    for i, item in enumerate(raw if isinstance(raw, list) else []):
        if not isinstance(item, dict):
            dropped += 1
            continue
        try:
            out.append(model.model_validate(coerce(item, i)))
        except ValidationError as e:
            dropped += 1
            logger.debug("insight_entry_dropped", extra={"model": model.__name__, "errors": e.error_count()})
    return out, dropped


def build_insights(sections: Dict[str, Any], adapter: str = "canonical") -> NormalizedInsights:
    """Turn raw canonical sections into validated MeetingInsights. Absent sections, and an advice list left empty after dropping, come from the mock set."""
    mock = MeetingInsights.model_validate(mock_insights_dict())
    filled: List[str] = []
    dropped = 0

    advice, n = _validated(AdviceItem, sections.get("advice_given"), _advice)
    dropped += n
    if not advice:
        advice = mock.advice_given
        filled.append("advice_given")

    def section(name: str, model: Type[M], coerce) -> List[M]:
        nonlocal dropped
        raw = sections.get(name)
        if raw is None:
            filled.append(name)
            return getattr(mock, name)
        items, n = _validated(model, raw, coerce)
        dropped += n
        return items

    patterns = section("behavioral_patterns", BehavioralPattern, _pattern)
    barriers = section("implementation_barriers", ImplementationBarrier, _barrier)
    metrics = section("success_metrics", SuccessMetric, _metric)
    ranking = section("priority_ranking", PriorityRank, _rank)

    emotional = _emotional(sections.get("emotional_context"))
    if emotional is None:
        filled.append("emotional_context")
        emotional_context = mock.emotional_context
    else:
        emotional_context = EmotionalContext.model_validate(emotional)

    insights = MeetingInsights(
        advice_given=advice,
        behavioral_patterns=patterns,
        implementation_barriers=barriers,
        success_metrics=metrics,
        emotional_context=emotional_context,
        priority_ranking=ranking,
        confidence=clamp01(sections.get("confidence"), DEFAULT_CONFIDENCE),
    )
    return NormalizedInsights(insights=insights, adapter=adapter, filled_from_mock=filled, dropped=dropped)


def normalize_insights(data: Any) -> Optional[NormalizedInsights]:
    """Run the adapter chain over parsed JSON. None when no adapter recognizes the shape."""
    if not isinstance(data, dict):
        return None
    for adapter in ADAPTERS:
        sections = adapter(data)
        if sections is not None:
            return build_insights(sections, adapter=adapter.__name__.replace("_adapter", ""))
    return None


def salvage_insights(text: str) -> Optional[MeetingInsights]:
    """Build minimal insights from quoted "content" fragments in unparsable text; None when there are none.
    Sections other than advice come from the mock set."""
    fragments = content_fragments(text)
    if not fragments:
        return None
    advice = [
        {
            "id": f"text-advice-{i + 1}",
            "title": short_title(content),
            "description": content,
            "quote": content,
            "speaker": "AI Analysis",
            "confidence": 0.8,
        }
        for i, content in enumerate(fragments)
    ]
    sections = {"advice_given": advice, "confidence": SALVAGE_CONFIDENCE}
    return build_insights(sections, adapter="text_salvage").insights
