import json
import logging
from typing import Any, Dict, Optional

from coachflow.core.config import Settings
from coachflow.core.openai_client import LLMService, OpenAILLMService
from coachflow.extract.coerce import safe_json_loads
from coachflow.models.outcome import Degraded, Real, StageOutcome
from coachflow.models.schemas import ActionPlan, MeetingInsights
from coachflow.planning.mock_data import generate_mock_action_plan
from coachflow.planning.normalizer import PlanContext, default_plan, normalize_plan, salvage_plan
from coachflow.prompts.loader import render_prompts

logger = logging.getLogger(__name__)


def interpret_plan(raw: str, insights: Optional[MeetingInsights] = None) -> StageOutcome[ActionPlan]:
    """Raw LLM text -> ActionPlan via JSON parse, shape normalization, text salvage, then insight-derived defaults.
    immediate_actions is never empty in the result."""
    ctx = PlanContext(insights=insights)
    data = safe_json_loads(raw)
    if data is None:
        salvaged = salvage_plan(raw, ctx)
        if salvaged is not None:
            logger.warning("plan_response_salvaged", extra={"action_count": len(salvaged.immediate_actions)})
            return Degraded(salvaged, "salvaged_from_text")
        logger.warning("plan_response_unparsable", extra={"raw_preview": (raw or "")[:300]})
        return Degraded(default_plan(ctx), "unparsable_json")

    normalized = normalize_plan(data, ctx)
    if normalized is None:
        logger.warning("plan_response_unrecognized_shape")
        return Degraded(default_plan(ctx), "unrecognized_shape")

    if normalized.filled_from_mock or normalized.dropped:
        logger.info(
            "plan_response_normalized",
            extra={"adapter": normalized.adapter, "filled_from_mock": normalized.filled_from_mock, "dropped": normalized.dropped},
        )
    if normalized.synthesized_actions:
        return Degraded(normalized.plan, "no_valid_actions")
    return Real(normalized.plan)


class ActionPlanGenerator:
    """MeetingInsights -> ActionPlan. plan() never raises and always returns at least one immediate action."""

    def __init__(self, settings: Settings, llm: Optional[LLMService] = None):
        self.settings = settings
        if llm is None and settings.llm_enabled:
            llm = OpenAILLMService(settings)
        self.llm = llm

    def plan(self, insights: MeetingInsights, user_context: Optional[Dict[str, Any]] = None) -> StageOutcome[ActionPlan]:
        if not self.settings.llm_enabled or self.llm is None:
            logger.info("action_planning_mock_mode")
            return Degraded(generate_mock_action_plan(), "no_credential")

        try:
            system_prompt, user_prompt = render_prompts(
                "action_plan",
                self.settings.prompt_version,
                insights=insights.model_dump_json(indent=2),
                user_context=json.dumps(user_context or {}, default=str),
            )
            raw = self.llm.complete(
                system_prompt,
                user_prompt,
                output_schema=ActionPlan.model_json_schema(),
                max_tokens=self.settings.llm_max_tokens,
                temperature=self.settings.llm_temperature,
            )
            return interpret_plan(raw, insights)
        except Exception as e:
            logger.warning("action_planning_failed", exc_info=True, extra={"error": str(e)})
            return Degraded(generate_mock_action_plan(), "llm_error")
