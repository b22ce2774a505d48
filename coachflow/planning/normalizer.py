"""
Action plan response normalizer.

Same structure as the insight normalizer: ordered shape adapters produce raw
canonical sections, build_plan() coerces and validates them. Actions that have
to be invented (salvaged from text or synthesized because none survived) are
derived from the source insights, inheriting their category and barriers, so a
degraded plan still talks about what was discussed.
"""
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from coachflow.extract.coerce import (
    as_choice,
    as_str_list,
    as_text,
    clamp01,
    content_fragments,
    due_date_from,
    first,
    minutes_from,
    short_title,
    start_date_from,
    utcnow,
)
from coachflow.models.schemas import (
    ActionItem,
    ActionPlan,
    AdviceItem,
    HabitFormation,
    MeetingInsights,
    RiskMitigation,
    SchedulingEntry,
)
from coachflow.planning.mock_data import mock_action_plan_dict

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

ACTION_FRAGMENT_RE = re.compile(r'"action_\d+":\s*"([^"]+)"')

SECTION_KEYS = {
    "immediate_actions": ("immediateActions", "immediate_actions"),
    "habit_formation": ("habitFormation", "habit_formation"),
    "scheduling_strategy": ("schedulingStrategy", "scheduling_strategy"),
    "risk_mitigation": ("riskMitigation", "risk_mitigation"),
}
# Extra spellings seen inside {"action_plan": {...}} wrappers.
WRAPPED_SECTION_KEYS = {
    "immediate_actions": SECTION_KEYS["immediate_actions"] + ("actions",),
    "habit_formation": SECTION_KEYS["habit_formation"] + ("habits",),
    "scheduling_strategy": SECTION_KEYS["scheduling_strategy"] + ("schedule",),
    "risk_mitigation": SECTION_KEYS["risk_mitigation"] + ("risks",),
}
WRAPPER_FIELDS = ("action_plan", "actionPlan", "plan")
GENERIC_ACTION_LISTS = ("actions", "action_items", "actionItems", "tasks")

LEVELS = ("high", "medium", "low")
LEVEL_ALIASES = {"med": "medium", "moderate": "medium", "critical": "high", "urgent": "high", "minor": "low", "easy": "low", "hard": "high"}
NUMERIC_PRIORITY = {1: "high", 2: "medium"}


@dataclass
class PlanContext:
    """What the plan is being derived from: the insights, plus a fixed 'now' for date defaults."""

    insights: Optional[MeetingInsights] = None
    now: datetime = field(default_factory=utcnow)

    def advice_for(self, index: int) -> Optional[AdviceItem]:
        if self.insights is None or not self.insights.advice_given:
            return None
        advice = self.insights.advice_given
        return advice[index % len(advice)]

    def barriers(self) -> List[str]:
        if self.insights is None:
            return []
        found = [b.description for b in self.insights.implementation_barriers]
        return (found or list(self.insights.emotional_context.concerns))[:2]


@dataclass
class NormalizedPlan:
    plan: ActionPlan
    adapter: str
    filled_from_mock: List[str] = field(default_factory=list)
    dropped: int = 0
    synthesized_actions: bool = False


# -------------------------
# Shape adapters
# -------------------------

def _sections(data: Dict[str, Any], keys: Dict[str, tuple]) -> Dict[str, Any]:
    return {name: first(data, *spellings) for name, spellings in keys.items()}


def canonical_adapter(data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """immediateActions / immediate_actions at the top level."""
    sections = _sections(data, SECTION_KEYS)
    return sections if isinstance(sections["immediate_actions"], list) else None


def wrapper_adapter(data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """{"action_plan": {...}} with canonical or short inner keys (actions, habits, schedule, risks); missing inner lists count as empty."""
    for key in WRAPPER_FIELDS:
        inner = data.get(key)
        if isinstance(inner, dict):
            sections = _sections(inner, WRAPPED_SECTION_KEYS)
            return {name: val if val is not None else [] for name, val in sections.items()}
    return None


def generic_adapter(data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """A bare action list under a generic key, or string values under keys mentioning 'action'. Other sections come from the mock plan."""
    for key in GENERIC_ACTION_LISTS:
        val = data.get(key)
        if isinstance(val, list) and val:
            return {"immediate_actions": val}
    strings = [
        {"title": f"Action {i + 1}", "description": val, "_derived": True}
        for i, val in enumerate(v for k, v in data.items() if "action" in k.lower() and isinstance(v, str) and v.strip())
    ]
    return {"immediate_actions": strings} if strings else None


ADAPTERS: List[Callable[[Dict[str, Any]], Optional[Dict[str, Any]]]] = [
    canonical_adapter,
    wrapper_adapter,
    generic_adapter,
]


# -------------------------
# Entry coercion
# -------------------------

def _priority(value: Any) -> str:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return NUMERIC_PRIORITY.get(int(value), "low")
    return as_choice(value, LEVELS, "medium", LEVEL_ALIASES)


def _describe(specifics: Any) -> str:
    """Description text from a nested 'specifics' object."""
    if not isinstance(specifics, dict):
        return ""
    if specifics.get("description"):
        return as_text(specifics["description"])
    parts = []
    if specifics.get("duration"):
        parts.append(f"Duration: {specifics['duration']}")
    if specifics.get("frequency"):
        parts.append(f"Frequency: {specifics['frequency']}")
    if specifics.get("details"):
        parts.append(as_text(specifics["details"]))
    return ", ".join(p for p in parts if p)


def _estimated_time(item: Dict[str, Any]) -> int:
    direct = first(item, "estimatedTime", "estimated_time", "duration")
    if direct is not None:
        return minutes_from(direct)
    specifics = item.get("specifics")
    if isinstance(specifics, dict):
        return minutes_from(first(specifics, "estimatedTime", "duration"))
    return 60


def _action(item: Any, index: int, ctx: PlanContext) -> Dict[str, Any]:
    if isinstance(item, str):
        item = {"title": short_title(item), "description": item, "_derived": True}
    derived = bool(item.get("_derived"))
    source = ctx.advice_for(index) if derived else None

    title = as_text(first(item, "title", "task", "action", "name"))
    description = as_text(first(item, "description", "content")) or _describe(item.get("specifics")) or as_text(item.get("task"))
    category = as_text(item.get("category")) or (source.category if source else "general")
    barriers = as_str_list(item.get("barriers"))
    if not barriers and derived:
        barriers = ctx.barriers()
    return {
        "id": as_text(item.get("id"), f"action-{index + 1}"),
        "title": title or f"Action {index + 1}",
        "description": description,
        "category": category,
        "priority": _priority(item.get("priority")),
        "complexity": as_choice(first(item, "complexity", "difficulty"), LEVELS, "medium", LEVEL_ALIASES),
        "estimated_time": _estimated_time(item),
        "due_date": due_date_from(first(item, "dueDate", "due_date", "deadline"), ctx.now),
        "success_probability": clamp01(first(item, "successProbability", "success_probability"), 0.8),
        "barriers": barriers,
        "motivation_level": clamp01(first(item, "motivationLevel", "motivation_level"), 0.7),
    }


def _habit(item: Dict[str, Any], index: int, ctx: PlanContext) -> Dict[str, Any]:
    return {
        "habit": as_text(first(item, "habit", "name", "title")),
        "trigger": as_text(first(item, "trigger", "cue")),
        "reward": as_text(item.get("reward")),
        "frequency": as_text(item.get("frequency")),
        "start_date": start_date_from(first(item, "startDate", "start_date"), ctx.now),
    }


def _schedule(item: Dict[str, Any], index: int, ctx: PlanContext) -> Dict[str, Any]:
    return {
        "action": as_text(first(item, "action", "activity", "name", "title")),
        "optimal_time": as_text(first(item, "optimalTime", "optimal_time", "time", "when")),
        "duration": minutes_from(item.get("duration"), 30),
        "context": as_text(item.get("context")),
    }


def _risk(item: Dict[str, Any], index: int, ctx: PlanContext) -> Dict[str, Any]:
    return {
        "risk": as_text(first(item, "risk", "name", "title")),
        "probability": clamp01(first(item, "probability", "likelihood"), 0.5),
        "impact": as_text(item.get("impact")),
        "mitigation": as_text(first(item, "mitigation", "mitigation_strategy", "mitigationStrategy", "plan")),
    }


def _validated(model: Type[M], raw: Any, coerce, ctx: PlanContext) -> tuple[List[M], int]:
    out: List[M] = []
    dropped = 0
    for i, item in enumerate(raw if isinstance(raw, list) else []):
        if not isinstance(item, (dict, str)) or (isinstance(item, str) and model is not ActionItem):
            dropped += 1
            continue
        try:
            out.append(model.model_validate(coerce(item, i, ctx)))
        except ValidationError as e:
            dropped += 1
            logger.debug("plan_entry_dropped", extra={"model": model.__name__, "errors": e.error_count()})
    return out, dropped


def synthesize_actions(ctx: PlanContext, limit: int = 3) -> List[ActionItem]:
    """Actions built straight from the highest-priority advice. Falls back to the mock plan's actions when there are no insights."""
    if ctx.insights is None:
        return ActionPlan.model_validate(mock_action_plan_dict(ctx.now)).immediate_actions

    ranks = {r.action_id: r for r in ctx.insights.priority_ranking}
    advice = sorted(
        ctx.insights.advice_given,
        key=lambda a: -(ranks[a.id].priority if a.id in ranks else 0),
    )[:limit]
    barriers = ctx.barriers()
    actions = []
    for i, a in enumerate(advice):
        rank = ranks.get(a.id)
        actions.append(
            ActionItem(
                id=f"default-{i + 1}",
                title=a.title,
                description=a.description or a.title,
                category=a.category,
                priority=a.impact,
                complexity=a.complexity,
                estimated_time=60,
                due_date=ctx.now + timedelta(days=7),
                success_probability=rank.success_probability if rank else a.confidence,
                barriers=barriers,
                motivation_level=ctx.insights.emotional_context.motivation,
            )
        )
    return actions


def build_plan(sections: Dict[str, Any], ctx: PlanContext, adapter: str = "canonical") -> NormalizedPlan:
    """Validated ActionPlan from raw sections. Absent sections come from the mock plan; an empty action list is replaced by synthesized actions."""
    mock = ActionPlan.model_validate(mock_action_plan_dict(ctx.now))
    filled: List[str] = []
    dropped = 0

    def section(name: str, model: Type[M], coerce) -> List[M]:
        nonlocal dropped
        raw = sections.get(name)
        if raw is None:
            filled.append(name)
            return getattr(mock, name)
        items, n = _validated(model, raw, coerce, ctx)
        dropped += n
        return items

    actions, n = _validated(ActionItem, sections.get("immediate_actions"), _action, ctx)
    dropped += n
    synthesized = not actions
    if synthesized:
        actions = synthesize_actions(ctx)

    plan = ActionPlan(
        immediate_actions=actions,
        habit_formation=section("habit_formation", HabitFormation, _habit),
        scheduling_strategy=section("scheduling_strategy", SchedulingEntry, _schedule),
        risk_mitigation=section("risk_mitigation", RiskMitigation, _risk),
    )
    return NormalizedPlan(plan=plan, adapter=adapter, filled_from_mock=filled, dropped=dropped, synthesized_actions=synthesized)


def normalize_plan(data: Any, ctx: PlanContext) -> Optional[NormalizedPlan]:
    """Run the adapter chain; None when no adapter recognizes the shape."""
    if not isinstance(data, dict):
        return None
    for adapter in ADAPTERS:
        sections = adapter(data)
        if sections is not None:
            return build_plan(sections, ctx, adapter=adapter.__name__.replace("_adapter", ""))
    return None


def salvage_plan(text: str, ctx: PlanContext) -> Optional[ActionPlan]:
    """Actions from "action_N": "..." fragments (or "content" fragments) in unparsable text; None when there are none."""
    fragments = [m for m in ACTION_FRAGMENT_RE.findall(text or "") if len(m) > 10] or content_fragments(text)
    if not fragments:
        return None
    actions = [
        {"id": f"text-action-{i + 1}", "title": short_title(content), "description": content, "_derived": True}
        for i, content in enumerate(fragments)
    ]
    return build_plan({"immediate_actions": actions}, ctx, adapter="text_salvage").plan


def default_plan(ctx: PlanContext) -> ActionPlan:
    """Plan whose actions are synthesized from the insights; remaining sections from the mock plan."""
    return build_plan({}, ctx, adapter="default").plan
